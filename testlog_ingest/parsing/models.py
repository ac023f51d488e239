"""
Test log data models.

A TestLogRecord is the canonical output of parsing one final-test log file.
It is created fresh per ingested file and never mutated after it leaves the
parser: the fingerprint and version fields are filled in on copies made with
model_copy(update=...).

All models use Pydantic with strict field sets (extra="forbid").
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TestResult(str, Enum):
    """Pass/fail verdict as written in the log."""

    # Not a pytest test class despite the name
    __test__ = False

    PASS = "PASS"
    FAIL = "FAIL"

    @classmethod
    def from_token(cls, token: str) -> Optional["TestResult"]:
        """Map a PASS/FAIL token (any case) to a TestResult, or None."""
        try:
            return cls(token.strip().upper())
        except ValueError:
            return None


class SourceMetadata(BaseModel):
    """Where a record came from."""

    model_config = ConfigDict(extra="forbid")

    original_file_name: str
    ingested_at_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class IdentityFields(BaseModel):
    """
    Fields that make up the record key.

    device_serial must be non-empty; date and time are required.
    """

    model_config = ConfigDict(extra="forbid")

    device_serial: str = Field(..., min_length=1)
    date: date
    time: time


class HeaderFields(BaseModel):
    """Free-form descriptive header fields. All optional."""

    model_config = ConfigDict(extra="forbid")

    test_operator: Optional[str] = None
    mcu_serial_number: Optional[str] = None
    rf_unit_serial_number: Optional[str] = None
    reader_type: Optional[str] = None
    tagmod_version: Optional[str] = None
    rf_sweep_build_date: Optional[str] = None
    config_limit_file_version: Optional[str] = None
    read_level: Optional[int] = None


class TestSummary(BaseModel):
    """The one-line "Time for test" summary."""

    __test__ = False

    model_config = ConfigDict(extra="forbid")

    duration_seconds: int = Field(..., ge=0)
    overall_result: Optional[TestResult] = None


class CurrentMeasurement(BaseModel):
    """Supply current measurement with its limits."""

    model_config = ConfigDict(extra="forbid")

    value: Decimal
    lower_limit: Optional[Decimal] = None
    upper_limit: Optional[Decimal] = None
    unit: Optional[str] = None
    result: Optional[TestResult] = None


class Comparison(BaseModel):
    """
    Comparison line of a signal block.

    Limits are optional: a limit that cannot be parsed means "no limit".
    """

    model_config = ConfigDict(extra="forbid")

    type: Optional[str] = None
    lower_limit: Optional[Decimal] = None
    upper_limit: Optional[Decimal] = None
    measurement: Optional[Decimal] = None
    unit: Optional[str] = None
    result: Optional[TestResult] = None


class SignalBlock(BaseModel):
    """
    One "Signal Strength Data" block.

    The matrix has no declared shape; rows may differ in length.
    """

    model_config = ConfigDict(extra="forbid")

    output_power: Optional[int] = None
    result: Optional[TestResult] = None
    comparison: Optional[Comparison] = None
    frequencies: List[int] = Field(default_factory=list)
    matrix: List[List[int]] = Field(default_factory=list)
    averages: List[int] = Field(default_factory=list)
    attenuations: List[int] = Field(default_factory=list)


class SupersededVersion(BaseModel):
    """Metadata of stored content that was replaced under the same key."""

    model_config = ConfigDict(extra="forbid")

    version: int = Field(..., ge=1)
    content_sha256: str
    superseded_at_utc: datetime


class TestLogRecord(BaseModel):
    """
    A parsed final-test log.

    id is the record key ({serial}-{YYYYMMDD}-{HHMMSS}) and is the identity
    under which the record is persisted. version and superseded_versions are
    owned by the versioning resolver, never by the parser.
    """

    __test__ = False

    model_config = ConfigDict(extra="forbid")

    id: str = ""
    source: SourceMetadata
    identity: IdentityFields
    header: HeaderFields = Field(default_factory=HeaderFields)
    summary: Optional[TestSummary] = None
    current: Optional[CurrentMeasurement] = None
    signal_blocks: List[SignalBlock] = Field(default_factory=list)
    raw_text: str
    content_sha256: Optional[str] = None
    timestamp_local: datetime
    version: int = Field(default=1, ge=1)
    superseded_versions: List[SupersededVersion] = Field(default_factory=list)
