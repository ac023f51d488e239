"""
Service configuration (Pydantic models loaded from JSON).
"""

from .errors import ConfigError
from .settings import (
    ArchiveOperation,
    WatcherSettings,
    ProcessingSettings,
    ArchiveSettings,
    ParsingSettings,
    DatabaseSettings,
    MonitorSettings,
    LoggingSettings,
    IngestSettings,
    load_settings,
)

__all__ = [
    "ConfigError",
    "ArchiveOperation",
    "WatcherSettings",
    "ProcessingSettings",
    "ArchiveSettings",
    "ParsingSettings",
    "DatabaseSettings",
    "MonitorSettings",
    "LoggingSettings",
    "IngestSettings",
    "load_settings",
]
