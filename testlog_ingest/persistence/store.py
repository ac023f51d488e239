"""
Record store interface used by the versioning resolver.
"""

from typing import List, Optional, Protocol

from ..parsing.models import TestLogRecord


class RecordStore(Protocol):
    """
    Key/value store of TestLogRecord documents keyed by record key.

    insert() raises ConcurrencyConflictError if the key already exists;
    replace() raises it if the stored version is not expected_version.
    Any other failure is a StoreError.
    """

    def load(self, key: str) -> Optional[TestLogRecord]: ...

    def insert(self, record: TestLogRecord) -> None: ...

    def replace(self, record: TestLogRecord, expected_version: int) -> None: ...

    def count(self) -> int: ...

    def list_keys(self) -> List[str]: ...
