"""
Record identity and content fingerprint.

The record key depends only on the identity fields, so two files with the
same device serial and test timestamp map to the same stored record no matter
what else differs. The fingerprint covers the full raw text, so any textual
change (whitespace included) is detected as new content.
"""

import hashlib

from .models import IdentityFields, TestLogRecord


KEY_SEPARATOR = "-"
KEY_DATE_FORMAT = "%Y%m%d"
KEY_TIME_FORMAT = "%H%M%S"


def build_record_key(identity: IdentityFields) -> str:
    """
    Build the persistence key for a record.

    Example:
        SN123 / 2024-03-15 / 14:05:09 -> "SN123-20240315-140509"
    """
    return KEY_SEPARATOR.join(
        (
            identity.device_serial,
            identity.date.strftime(KEY_DATE_FORMAT),
            identity.time.strftime(KEY_TIME_FORMAT),
        )
    )


def compute_content_sha256(raw_text: str) -> str:
    """SHA-256 of the UTF-8 bytes of the raw text, as lowercase hex."""
    return hashlib.sha256(raw_text.encode("utf-8")).hexdigest()


def with_fingerprint(record: TestLogRecord) -> TestLogRecord:
    """Return a copy of the record with content_sha256 filled in."""
    return record.model_copy(
        update={"content_sha256": compute_content_sha256(record.raw_text)}
    )
