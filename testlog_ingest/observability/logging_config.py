"""
Logging setup for the ingestion service.

Modules log through logging.getLogger(__name__); this only configures the
root handler once at process start.
"""

import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO") -> None:
    """
    Configure root logging.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR)
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        force=True,
    )

    # watchdog is chatty at DEBUG
    logging.getLogger("watchdog").setLevel(max(numeric_level, logging.INFO))
