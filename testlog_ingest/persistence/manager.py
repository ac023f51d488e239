"""
SQLite record store for parsed test logs.

Single-file SQLite database. Each record is stored as a JSON document in one
row keyed by record key, with the version and content hash lifted into
columns so that writes can be checked optimistically:

- insert() fails if the key already exists
- replace() fails if the stored version is not the one the caller read

The versioning resolver retries on conflict, which serializes concurrent
ingestions of the same key without holding a lock across unrelated keys.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from ..parsing.models import TestLogRecord
from .errors import ConcurrencyConflictError, PersistenceError, SchemaError, StoreError

logger = logging.getLogger(__name__)


# Database schema version
SCHEMA_VERSION = 1

DEFAULT_DB_FILENAME = "testlog_ingest.db"


class SqliteRecordStore:
    """
    Key/value store of TestLogRecord documents.

    Stores:
    - The full record (including raw text and superseded history) as JSON
    - id, version, content_sha256, device_serial, timestamp_local as columns

    Connections are opened per operation, so one instance may be shared by
    all ingestion workers.
    """

    def __init__(self, db_path: Optional[str] = None, timeout: float = 30.0):
        """
        Initialize the record store.

        Args:
            db_path: Path to SQLite database file (defaults to ./testlog_ingest.db)
            timeout: Seconds to wait for a locked database before failing
        """
        if db_path is None:
            db_path = str(Path.cwd() / DEFAULT_DB_FILENAME)

        self.db_path = db_path
        self.timeout = timeout
        self._ensure_schema()

    @contextmanager
    def _connect(self, immediate: bool = False):
        """
        Context manager for database connections.

        With immediate=True the transaction takes the write lock up front so
        that the version check and the write happen under one lock.
        """
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open database {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            yield conn
            conn.execute("COMMIT")
        except PersistenceError:
            conn.execute("ROLLBACK")
            raise
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise StoreError(f"Database operation failed: {e}") from e
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def _ensure_schema(self):
        """Create schema if it doesn't exist."""
        try:
            with self._connect(immediate=True) as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS schema_version (
                        version INTEGER PRIMARY KEY,
                        applied_at TEXT NOT NULL
                    )
                """)

                row = conn.execute(
                    "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
                ).fetchone()
                current_version = row[0] if row else 0

                if current_version > SCHEMA_VERSION:
                    raise SchemaError(
                        f"Database schema version {current_version} is newer than "
                        f"supported version {SCHEMA_VERSION}"
                    )

                if current_version < SCHEMA_VERSION:
                    self._create_schema(conn)
        except StoreError as e:
            raise SchemaError(f"Failed to initialize schema: {e}") from e

    def _create_schema(self, conn):
        conn.execute("""
            CREATE TABLE IF NOT EXISTS test_logs (
                id TEXT PRIMARY KEY,
                version INTEGER NOT NULL,
                content_sha256 TEXT NOT NULL,
                device_serial TEXT NOT NULL,
                timestamp_local TEXT NOT NULL,
                document TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_test_logs_device_serial
            ON test_logs (device_serial)
        """)

        conn.execute(
            "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
            (SCHEMA_VERSION, datetime.now(timezone.utc).isoformat()),
        )

    # Record access

    def load(self, key: str) -> Optional[TestLogRecord]:
        """
        Load a record by key.

        Returns:
            The stored record, or None if no record exists at key

        Raises:
            StoreError: If the database fails or the stored document is corrupt
        """
        with self._connect() as conn:
            row = conn.execute(
                "SELECT document FROM test_logs WHERE id = ?", (key,)
            ).fetchone()

        if row is None:
            return None

        try:
            return TestLogRecord.model_validate_json(row["document"])
        except ValidationError as e:
            raise StoreError(f"Stored document for '{key}' is invalid: {e}") from e

    def insert(self, record: TestLogRecord) -> None:
        """
        Store a record under a key that must not exist yet.

        Raises:
            ConcurrencyConflictError: If a record already exists at record.id
            StoreError: If the database fails
        """
        self._validate(record)

        with self._connect(immediate=True) as conn:
            existing = conn.execute(
                "SELECT version FROM test_logs WHERE id = ?", (record.id,)
            ).fetchone()
            if existing is not None:
                raise ConcurrencyConflictError(record.id, None, existing["version"])

            conn.execute("""
                INSERT INTO test_logs (
                    id, version, content_sha256, device_serial,
                    timestamp_local, document, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """, self._row_values(record))

    def replace(self, record: TestLogRecord, expected_version: int) -> None:
        """
        Replace the record at record.id if its stored version is expected_version.

        Raises:
            ConcurrencyConflictError: If the stored version changed (or the row vanished)
            StoreError: If the database fails
        """
        self._validate(record)

        with self._connect(immediate=True) as conn:
            row = conn.execute(
                "SELECT version FROM test_logs WHERE id = ?", (record.id,)
            ).fetchone()
            actual_version = row["version"] if row else None
            if actual_version != expected_version:
                raise ConcurrencyConflictError(record.id, expected_version, actual_version)

            values = self._row_values(record)
            conn.execute("""
                UPDATE test_logs SET
                    version = ?,
                    content_sha256 = ?,
                    device_serial = ?,
                    timestamp_local = ?,
                    document = ?,
                    updated_at = ?
                WHERE id = ? AND version = ?
            """, values[1:] + (record.id, expected_version))

    def count(self) -> int:
        """Number of stored records."""
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM test_logs").fetchone()[0]

    def list_keys(self, device_serial: Optional[str] = None) -> List[str]:
        """
        List stored record keys in key order.

        Args:
            device_serial: Optional filter by device serial
        """
        with self._connect() as conn:
            if device_serial:
                rows = conn.execute(
                    "SELECT id FROM test_logs WHERE device_serial = ? ORDER BY id",
                    (device_serial,),
                ).fetchall()
            else:
                rows = conn.execute("SELECT id FROM test_logs ORDER BY id").fetchall()
        return [row["id"] for row in rows]

    @staticmethod
    def _validate(record: TestLogRecord) -> None:
        if not record.id:
            raise ValueError("Record id must be set before persistence")
        if not record.content_sha256:
            raise ValueError("content_sha256 must be computed before persistence")

    @staticmethod
    def _row_values(record: TestLogRecord) -> tuple:
        return (
            record.id,
            record.version,
            record.content_sha256,
            record.identity.device_serial,
            record.timestamp_local.isoformat(),
            record.model_dump_json(),
            datetime.now(timezone.utc).isoformat(),
        )
