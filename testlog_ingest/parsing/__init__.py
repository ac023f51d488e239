"""
Final-test log parsing.

Public API:
    parse_test_log - raw text -> TestLogRecord
    TestLogParser - reusable parser bound to a decimal separator
    build_record_key / compute_content_sha256 / with_fingerprint - identity and hash
    FormatError - raised for missing or malformed required fields
"""

from .errors import ParsingError, FormatError
from .models import (
    TestResult,
    SourceMetadata,
    IdentityFields,
    HeaderFields,
    TestSummary,
    CurrentMeasurement,
    Comparison,
    SignalBlock,
    SupersededVersion,
    TestLogRecord,
)
from .identity import build_record_key, compute_content_sha256, with_fingerprint
from .parser import TestLogParser, parse_test_log

__all__ = [
    # Errors
    "ParsingError",
    "FormatError",
    # Models
    "TestResult",
    "SourceMetadata",
    "IdentityFields",
    "HeaderFields",
    "TestSummary",
    "CurrentMeasurement",
    "Comparison",
    "SignalBlock",
    "SupersededVersion",
    "TestLogRecord",
    # Identity
    "build_record_key",
    "compute_content_sha256",
    "with_fingerprint",
    # Parser
    "TestLogParser",
    "parse_test_log",
]
