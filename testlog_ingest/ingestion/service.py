"""
Ingestion pipeline for one stable file.

read (with retry) -> parse -> fingerprint -> resolve against store -> archive

Every call ends in exactly one IngestionStatus and never raises for a
per-file failure. Failures are recorded as events and counted in metrics so
that one bad file cannot stop the processing loop.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from ..observability.events import EventLog, EventType
from ..observability.metrics import IngestionMetrics
from ..parsing.errors import FormatError
from ..parsing.identity import with_fingerprint
from ..parsing.parser import TestLogParser
from ..persistence.errors import PersistenceError
from .archive import ArchiveOutcome, FileArchiver
from .errors import ArchiveError, FileChangedError, IoTransientError
from .versioning import PersistenceOutcome, VersioningResolver

logger = logging.getLogger(__name__)

DEFAULT_READ_RETRIES = 3
DEFAULT_READ_RETRY_DELAY = 0.5


class IngestionStatus(str, Enum):
    """Terminal status of one ingest() call."""

    INSERTED = "inserted"
    UPDATED = "updated"
    DUPLICATE = "duplicate"
    FAILED = "failed"
    DEFERRED = "deferred"
    SKIPPED = "skipped"


_STATUS_BY_OUTCOME = {
    PersistenceOutcome.INSERTED: IngestionStatus.INSERTED,
    PersistenceOutcome.UPDATED: IngestionStatus.UPDATED,
    PersistenceOutcome.DUPLICATE: IngestionStatus.DUPLICATE,
}

_EVENT_BY_OUTCOME = {
    PersistenceOutcome.INSERTED: EventType.FILE_INSERTED,
    PersistenceOutcome.UPDATED: EventType.FILE_UPDATED,
    PersistenceOutcome.DUPLICATE: EventType.FILE_DUPLICATE,
}


@dataclass
class IngestionResult:
    """Result of ingesting a single file."""

    path: str
    status: IngestionStatus

    record_key: Optional[str] = None
    version: Optional[int] = None

    error_kind: Optional[str] = None
    """One of "format", "io", "store" when status is FAILED."""

    error_message: Optional[str] = None
    archived_to: Optional[Path] = None

    @property
    def is_error(self) -> bool:
        return self.status == IngestionStatus.FAILED


class IngestionService:
    """
    Turns one stable file into a stored record.

    Collaborators are injected so tests can swap the store, clock or sleep.
    """

    def __init__(
        self,
        parser: TestLogParser,
        resolver: VersioningResolver,
        archiver: Optional[FileArchiver] = None,
        metrics: Optional[IngestionMetrics] = None,
        events: Optional[EventLog] = None,
        encoding: str = "utf-8-sig",
        read_retries: int = DEFAULT_READ_RETRIES,
        read_retry_delay: float = DEFAULT_READ_RETRY_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.parser = parser
        self.resolver = resolver
        self.archiver = archiver
        self.metrics = metrics or IngestionMetrics()
        self.events = events or EventLog()
        self.encoding = encoding
        self.read_retries = max(1, read_retries)
        self.read_retry_delay = read_retry_delay
        self._sleep = sleep

    def ingest(self, path, expected_size: Optional[int] = None) -> IngestionResult:
        """
        Ingest one file.

        Args:
            path: File to ingest
            expected_size: Size the stability tracker declared stable. If the
                bytes read differ in length the file is DEFERRED.

        Returns:
            IngestionResult with the terminal status
        """
        file_path = Path(path)
        path_str = str(file_path)

        if not file_path.exists():
            self.metrics.increment("skipped")
            self.events.record(EventType.FILE_SKIPPED, path=path_str, reason="file does not exist")
            return IngestionResult(path_str, IngestionStatus.SKIPPED)

        try:
            data = self._read_bytes(file_path, expected_size)
        except FileChangedError as e:
            self.metrics.increment("deferred")
            self.events.record(
                EventType.FILE_DEFERRED,
                path=path_str,
                expected_size=e.expected_size,
                actual_size=e.actual_size,
            )
            return IngestionResult(path_str, IngestionStatus.DEFERRED, error_message=str(e))
        except FileNotFoundError:
            # Removed between the existence check and the read
            self.metrics.increment("skipped")
            self.events.record(EventType.FILE_SKIPPED, path=path_str, reason="file disappeared")
            return IngestionResult(path_str, IngestionStatus.SKIPPED)
        except IoTransientError as e:
            self.metrics.increment("io_errors")
            self.events.record(EventType.READ_ERROR, path=path_str, attempts=e.attempts, error=str(e.cause))
            return self._fail(file_path, "io", str(e))

        try:
            record = self.parser.parse(self._decode(data), file_path.name)
        except FormatError as e:
            self.metrics.increment("format_errors")
            self.events.record(EventType.PARSE_ERROR, path=path_str, field=e.field, error=e.message)
            return self._fail(file_path, "format", str(e))

        record = with_fingerprint(record)
        self.events.record(
            EventType.FILE_PARSED,
            path=path_str,
            record_key=record.id,
            signal_blocks=len(record.signal_blocks),
        )

        try:
            resolved = self.resolver.resolve(record)
        except PersistenceError as e:
            self.metrics.increment("store_errors")
            self.events.record(EventType.PERSIST_ERROR, path=path_str, record_key=record.id, error=str(e))
            return self._fail(file_path, "store", str(e), record_key=record.id)

        status = _STATUS_BY_OUTCOME[resolved.outcome]
        self.metrics.increment("processed")
        self.metrics.increment(status.value)
        self.events.record(
            _EVENT_BY_OUTCOME[resolved.outcome],
            path=path_str,
            record_key=record.id,
            version=resolved.record.version,
            previous_version=resolved.previous_version,
        )

        result = IngestionResult(
            path_str,
            status,
            record_key=record.id,
            version=resolved.record.version,
        )
        result.archived_to = self._archive(file_path, ArchiveOutcome.SUCCESS, record.id)
        return result

    def _read_bytes(self, file_path: Path, expected_size: Optional[int]) -> bytes:
        """
        Read the whole file, retrying transient OS errors.

        Raises:
            FileNotFoundError: File vanished
            FileChangedError: Byte length differs from expected_size
            IoTransientError: Still unreadable after read_retries attempts
        """
        last_error: Optional[OSError] = None

        for attempt in range(1, self.read_retries + 1):
            try:
                data = file_path.read_bytes()
                break
            except FileNotFoundError:
                raise
            except OSError as e:
                last_error = e
                logger.debug(
                    f"Read attempt {attempt}/{self.read_retries} failed for {file_path}: {e}"
                )
                if attempt < self.read_retries:
                    self._sleep(self.read_retry_delay)
        else:
            raise IoTransientError(str(file_path), self.read_retries, last_error)

        if expected_size is not None and len(data) != expected_size:
            raise FileChangedError(str(file_path), expected_size, len(data))

        self.events.record(EventType.FILE_READ, path=str(file_path), size_bytes=len(data))
        return data

    def _decode(self, data: bytes) -> str:
        try:
            return data.decode(self.encoding)
        except UnicodeDecodeError as e:
            # Undecodable bytes are a content problem, not an I/O one
            raise FormatError("raw_text", f"Cannot decode file as {self.encoding}: {e}") from e

    def _fail(
        self,
        file_path: Path,
        error_kind: str,
        message: str,
        record_key: Optional[str] = None,
    ) -> IngestionResult:
        self.metrics.increment("processed")
        self.metrics.increment("errored")
        result = IngestionResult(
            str(file_path),
            IngestionStatus.FAILED,
            record_key=record_key,
            error_kind=error_kind,
            error_message=message,
        )
        result.archived_to = self._archive(file_path, ArchiveOutcome.ERROR, record_key)
        return result

    def _archive(
        self, file_path: Path, outcome: ArchiveOutcome, record_key: Optional[str]
    ) -> Optional[Path]:
        if self.archiver is None:
            return None

        try:
            target = self.archiver.archive(file_path, outcome)
        except ArchiveError as e:
            self.metrics.increment("archive_errors")
            self.events.record(EventType.ARCHIVE_ERROR, path=str(file_path), record_key=record_key, error=str(e))
            return None

        if target is not None:
            self.metrics.increment("archived")
            self.events.record(
                EventType.FILE_ARCHIVED,
                path=str(file_path),
                record_key=record_key,
                outcome=outcome.value,
                destination=str(target),
            )
        return target
