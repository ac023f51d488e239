"""
Persistence-specific errors.
"""


class PersistenceError(Exception):
    """Base exception for persistence operations."""

    pass


class SchemaError(PersistenceError):
    """Schema creation or validation failed."""

    pass


class StoreError(PersistenceError):
    """The store rejected or failed a load/store operation."""

    pass


class ConcurrencyConflictError(PersistenceError):
    """
    The stored version changed between read and write.

    Raised by insert() when the key already exists and by replace() when the
    stored version no longer matches the version the caller read.
    """

    def __init__(self, key: str, expected_version=None, actual_version=None):
        self.key = key
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Concurrent write detected for '{key}' "
            f"(expected version: {expected_version}, stored version: {actual_version})"
        )
