"""
Persistence layer for test log records.

SQLite-backed key/value document store keyed by record key, with optimistic
version checks for per-key write serialization.
"""

from .manager import SqliteRecordStore
from .store import RecordStore
from .errors import PersistenceError, StoreError, ConcurrencyConflictError, SchemaError

__all__ = [
    "RecordStore",
    "SqliteRecordStore",
    "PersistenceError",
    "StoreError",
    "ConcurrencyConflictError",
    "SchemaError",
]
