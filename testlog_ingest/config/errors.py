"""
Configuration errors.
"""


class ConfigError(Exception):
    """Configuration is missing, unreadable, or fails validation."""

    pass
