"""
Watch folder error hierarchy.

Raised at startup when the watch folder cannot be used. Per-file problems
never surface as exceptions from this package; an unreadable file is simply
not yet stable.
"""


class WatchFolderError(Exception):
    """Base exception for watch folder failures."""

    pass


class WatchFolderNotFoundError(WatchFolderError):
    """Watch folder path does not exist or is not a directory."""

    pass
