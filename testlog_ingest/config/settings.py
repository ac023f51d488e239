"""
Service configuration.

Settings are loaded from a JSON file with one object per section:

    {
        "watcher":    {"path": "/data/incoming", "pattern": "*.log"},
        "processing": {"stable_wait_ms": 1500, "max_concurrency": 2},
        "archive":    {"success_path": "/data/done", "error_path": "/data/failed"},
        "parsing":    {"decimal_separator": ","},
        "database":   {"path": "/data/testlogs.db"},
        "monitor":    {"enabled": false},
        "logging":    {"level": "INFO"}
    }

All models use Pydantic with strict validation and no unknown keys.
"""

import json
import os
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigError


CONFIG_ENV_VAR = "TESTLOG_INGEST_CONFIG"


def _require_absolute(value: Optional[str]) -> Optional[str]:
    if value is not None and not Path(value).is_absolute():
        raise ValueError(f"Path must be absolute: {value}")
    return value


class ArchiveOperation(str, Enum):
    """What to do with a processed file."""

    MOVE = "move"
    COPY = "copy"


class WatcherSettings(BaseModel):
    """Watch folder location and discovery options."""

    model_config = {"extra": "forbid"}

    path: str = Field(..., description="Absolute path to the monitored directory")
    pattern: str = Field(default="*.log", description="File name glob to ingest")
    include_subdirectories: bool = Field(
        default=False, description="Whether to watch and scan subdirectories"
    )
    initial_scan: bool = Field(
        default=True, description="Queue files already present at startup"
    )
    use_notifications: bool = Field(
        default=True, description="Subscribe to live filesystem notifications"
    )

    @field_validator("path")
    @classmethod
    def validate_absolute_path(cls, v: str) -> str:
        return _require_absolute(v)

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("File pattern must not be empty")
        return v


class ProcessingSettings(BaseModel):
    """Stability window, concurrency and retry timings."""

    model_config = {"extra": "forbid"}

    stable_wait_ms: int = Field(default=1500, ge=100, le=60000)
    max_concurrency: int = Field(default=2, ge=1, le=32)
    idle_delay_ms: int = Field(default=500, ge=1)
    recheck_delay_ms: int = Field(default=200, ge=1)
    error_backoff_ms: int = Field(default=1000, ge=1)
    read_retries: int = Field(default=3, ge=1, le=10)
    read_retry_delay_ms: int = Field(default=500, ge=0)
    store_max_attempts: int = Field(default=3, ge=1, le=10)


class ArchiveSettings(BaseModel):
    """
    Archive destinations.

    A destination left unset disables archiving for that outcome (the file
    stays where it is).
    """

    model_config = {"extra": "forbid"}

    success_path: Optional[str] = None
    error_path: Optional[str] = None
    on_success: ArchiveOperation = ArchiveOperation.MOVE
    on_error: ArchiveOperation = ArchiveOperation.MOVE
    conflict_pattern: str = Field(default="{name}-{timestamp}{ext}")
    timestamp_format: str = Field(default="%Y%m%d_%H%M%S")
    preserve_subfolders: bool = False

    @field_validator("success_path", "error_path")
    @classmethod
    def validate_absolute_path(cls, v: Optional[str]) -> Optional[str]:
        return _require_absolute(v)

    @field_validator("conflict_pattern")
    @classmethod
    def validate_conflict_pattern(cls, v: str) -> str:
        for token in ("{name}", "{timestamp}"):
            if token not in v:
                raise ValueError(f"conflict_pattern must contain {token}: {v}")
        return v


class ParsingSettings(BaseModel):
    """Text decoding and number format of the log files."""

    model_config = {"extra": "forbid"}

    decimal_separator: str = Field(default=",", min_length=1, max_length=1)
    encoding: str = "utf-8-sig"


class DatabaseSettings(BaseModel):
    """Record store location."""

    model_config = {"extra": "forbid"}

    path: str = "testlog_ingest.db"


class MonitorSettings(BaseModel):
    """Read-only monitoring API."""

    model_config = {"extra": "forbid"}

    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = Field(default=9876, ge=1, le=65535)


class LoggingSettings(BaseModel):
    model_config = {"extra": "forbid"}

    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level


class IngestSettings(BaseModel):
    """Complete service configuration."""

    model_config = {"extra": "forbid"}

    watcher: WatcherSettings
    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
    archive: ArchiveSettings = Field(default_factory=ArchiveSettings)
    parsing: ParsingSettings = Field(default_factory=ParsingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    monitor: MonitorSettings = Field(default_factory=MonitorSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(
    path: Optional[Union[str, Path]] = None, **overrides
) -> IngestSettings:
    """
    Load and validate settings.

    Args:
        path: JSON config file. Falls back to $TESTLOG_INGEST_CONFIG.
        **overrides: Section dicts merged over the file contents, e.g.
            processing={"max_concurrency": 4}

    Raises:
        ConfigError: If the file is missing, unreadable, or invalid
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR)

    data: dict = {}
    if path is not None:
        config_path = Path(path)
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            raise ConfigError(f"Config file not found: {config_path}") from None
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in config file {config_path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Cannot read config file {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {config_path} must contain a JSON object")

    for section, values in overrides.items():
        if values:
            merged = dict(data.get(section) or {})
            merged.update(values)
            data[section] = merged

    try:
        return IngestSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
