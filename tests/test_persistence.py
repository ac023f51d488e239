"""
Tests for the SQLite record store.

These tests verify:
1. Schema is created and versioned
2. Records roundtrip through the JSON document column
3. insert/replace enforce the optimistic version checks
"""

import sqlite3
from decimal import Decimal

import pytest

from testlog_ingest.parsing import parse_test_log, with_fingerprint
from testlog_ingest.persistence import (
    ConcurrencyConflictError,
    SchemaError,
    SqliteRecordStore,
    StoreError,
)
from testlog_ingest.persistence.manager import SCHEMA_VERSION

from conftest import SAMPLE_LOG, make_log


def _record(text: str = SAMPLE_LOG):
    return with_fingerprint(parse_test_log(text, "unit.log"))


class TestSchema:
    """Tests for schema creation."""

    def test_schema_version_recorded(self, tmp_path):
        db_path = tmp_path / "records.db"
        SqliteRecordStore(str(db_path))

        conn = sqlite3.connect(str(db_path))
        try:
            version = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
        finally:
            conn.close()

        assert version == SCHEMA_VERSION

    def test_reopen_existing_database(self, tmp_path):
        db_path = str(tmp_path / "records.db")
        SqliteRecordStore(db_path).insert(_record())

        assert SqliteRecordStore(db_path).count() == 1

    def test_newer_schema_is_rejected(self, tmp_path):
        db_path = tmp_path / "records.db"
        SqliteRecordStore(str(db_path))

        conn = sqlite3.connect(str(db_path))
        conn.execute(
            "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
            (SCHEMA_VERSION + 1, "2030-01-01T00:00:00+00:00"),
        )
        conn.commit()
        conn.close()

        with pytest.raises(SchemaError):
            SqliteRecordStore(str(db_path))


class TestRecordAccess:
    """Tests for load/insert/replace."""

    def test_load_missing_returns_none(self, store):
        assert store.load("nope") is None

    def test_insert_and_load_roundtrip(self, store):
        record = _record()
        store.insert(record)

        loaded = store.load(record.id)

        assert loaded == record
        assert loaded.current.value == Decimal("0.174719")
        assert loaded.raw_text == SAMPLE_LOG

    def test_insert_existing_key_conflicts(self, store):
        store.insert(_record())

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            store.insert(_record())

        assert exc_info.value.actual_version == 1

    def test_replace_with_expected_version(self, store):
        store.insert(_record())
        updated = _record(make_log(operator="asmith")).model_copy(update={"version": 2})

        store.replace(updated, expected_version=1)

        loaded = store.load(updated.id)
        assert loaded.version == 2
        assert loaded.header.test_operator == "asmith"

    def test_replace_with_stale_version_conflicts(self, store):
        store.insert(_record())
        updated = _record(make_log(operator="asmith")).model_copy(update={"version": 3})

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            store.replace(updated, expected_version=2)

        assert exc_info.value.expected_version == 2
        assert exc_info.value.actual_version == 1
        assert store.load(updated.id).version == 1

    def test_replace_missing_key_conflicts(self, store):
        with pytest.raises(ConcurrencyConflictError):
            store.replace(_record(), expected_version=1)

    def test_record_without_fingerprint_is_rejected(self, store):
        with pytest.raises(ValueError):
            store.insert(parse_test_log(SAMPLE_LOG, "unit.log"))

    def test_count_and_list_keys(self, store):
        store.insert(_record(make_log(serial="SN2")))
        store.insert(_record(make_log(serial="SN1")))
        store.insert(_record(make_log(serial="SN1", time="09:00:00")))

        assert store.count() == 3
        assert store.list_keys() == [
            "SN1-20240315-090000",
            "SN1-20240315-140509",
            "SN2-20240315-140509",
        ]
        assert store.list_keys(device_serial="SN2") == ["SN2-20240315-140509"]

    def test_corrupt_document_raises_store_error(self, store):
        record = _record()
        store.insert(record)

        conn = sqlite3.connect(store.db_path)
        conn.execute("UPDATE test_logs SET document = ? WHERE id = ?", ("{}", record.id))
        conn.commit()
        conn.close()

        with pytest.raises(StoreError):
            store.load(record.id)
