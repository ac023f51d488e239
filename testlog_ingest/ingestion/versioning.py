"""
Versioning resolver - deduplication and versioning against the record store.

Decides, per record key:
- INSERTED: nothing stored yet; store as version 1
- DUPLICATE: stored content hash equals the new one; store nothing
- UPDATED: stored content differs; store as version N+1 and append the
  replaced version to superseded_versions

The read-then-write sequence is made atomic per key with optimistic
concurrency: the store rejects the write if another ingestion got there
first, and the whole resolve step is retried against the fresh state.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from ..parsing.models import SupersededVersion, TestLogRecord
from ..persistence.errors import ConcurrencyConflictError, StoreError
from ..persistence.store import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


class PersistenceOutcome(str, Enum):
    """Result of resolving a record against the store."""

    INSERTED = "inserted"
    UPDATED = "updated"
    DUPLICATE = "duplicate"


@dataclass
class ResolveResult:
    """Outcome of one resolve() call."""

    outcome: PersistenceOutcome
    record: TestLogRecord
    """The record as stored (INSERTED/UPDATED) or as discarded (DUPLICATE)."""

    previous_version: Optional[int] = None
    """Version that was at the key before this call, if any."""

    attempts: int = 1


class VersioningResolver:
    """
    Insert / update-as-new-version / skip-as-duplicate policy.

    The store raises ConcurrencyConflictError when the stored state no longer
    matches what was read.
    """

    def __init__(
        self,
        store: RecordStore,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.max_attempts = max_attempts
        self._clock = clock

    def resolve(self, record: TestLogRecord) -> ResolveResult:
        """
        Resolve and persist a parsed record.

        Args:
            record: Parsed record with id and content_sha256 set

        Returns:
            ResolveResult describing what happened

        Raises:
            ValueError: If the record has no id or fingerprint
            StoreError: If the store fails, or conflicts persist past max_attempts
        """
        if not record.id:
            raise ValueError("Record id must be set before resolving")
        if not record.content_sha256:
            raise ValueError("content_sha256 must be computed before resolving")

        last_conflict: Optional[ConcurrencyConflictError] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                result = self._resolve_once(record)
                result.attempts = attempt
                return result
            except ConcurrencyConflictError as e:
                last_conflict = e
                logger.info(
                    f"Concurrent write on '{record.id}' "
                    f"(attempt {attempt}/{self.max_attempts}), re-reading"
                )

        raise StoreError(
            f"Could not persist '{record.id}' after {self.max_attempts} attempts: {last_conflict}"
        )

    def _resolve_once(self, record: TestLogRecord) -> ResolveResult:
        existing = self.store.load(record.id)

        if existing is None:
            stored = record.model_copy(update={"version": 1, "superseded_versions": []})
            self.store.insert(stored)
            return ResolveResult(PersistenceOutcome.INSERTED, stored)

        if existing.content_sha256 == record.content_sha256:
            return ResolveResult(
                PersistenceOutcome.DUPLICATE, record, previous_version=existing.version
            )

        history = list(existing.superseded_versions)
        history.append(
            SupersededVersion(
                version=existing.version,
                content_sha256=existing.content_sha256,
                superseded_at_utc=self._clock(),
            )
        )
        stored = record.model_copy(
            update={"version": existing.version + 1, "superseded_versions": history}
        )
        self.store.replace(stored, expected_version=existing.version)
        return ResolveResult(
            PersistenceOutcome.UPDATED, stored, previous_version=existing.version
        )
