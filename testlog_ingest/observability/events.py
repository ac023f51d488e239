"""
Structured ingestion events.

Every observable step of the pipeline (queued, stable, inserted, updated,
duplicate, archived, each error kind) produces one immutable IngestionEvent.
Events are logged as they are recorded and kept in a bounded in-memory
history for the monitoring API.
"""

import logging
import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 1000


class EventType(str, Enum):
    """Catalogue of ingestion events."""

    # Service lifecycle
    SERVICE_STARTED = "service_started"
    SERVICE_STOPPING = "service_stopping"
    SERVICE_STOPPED = "service_stopped"
    INITIAL_SCAN_STARTED = "initial_scan_started"
    INITIAL_SCAN_COMPLETED = "initial_scan_completed"
    INITIAL_SCAN_ERROR = "initial_scan_error"
    NOTIFICATIONS_STARTED = "notifications_started"

    # Queue and stability
    FILE_QUEUED = "file_queued"
    FILE_STABLE = "file_stable"
    FILE_NO_LONGER_EXISTS = "file_no_longer_exists"

    # Ingestion
    FILE_READ = "file_read"
    FILE_PARSED = "file_parsed"
    FILE_INSERTED = "file_inserted"
    FILE_UPDATED = "file_updated"
    FILE_DUPLICATE = "file_duplicate"
    FILE_ARCHIVED = "file_archived"
    FILE_DEFERRED = "file_deferred"
    FILE_SKIPPED = "file_skipped"

    # Errors
    READ_ERROR = "read_error"
    PARSE_ERROR = "parse_error"
    PERSIST_ERROR = "persist_error"
    ARCHIVE_ERROR = "archive_error"


ERROR_EVENTS = frozenset({
    EventType.INITIAL_SCAN_ERROR,
    EventType.READ_ERROR,
    EventType.PARSE_ERROR,
    EventType.PERSIST_ERROR,
    EventType.ARCHIVE_ERROR,
})


@dataclass(frozen=True)
class IngestionEvent:
    """
    Immutable event record.

    Timestamped at creation (UTC, ISO 8601).
    """

    event_id: str
    event_type: EventType
    timestamp: str
    path: Optional[str] = None
    record_key: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        event_type: EventType,
        path: Optional[str] = None,
        record_key: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> "IngestionEvent":
        """Create a new event with generated ID and timestamp."""
        return cls(
            event_id=str(uuid.uuid4()),
            event_type=event_type,
            timestamp=datetime.now(timezone.utc).isoformat(),
            path=path,
            record_key=record_key,
            payload=payload or {},
        )

    @property
    def is_error(self) -> bool:
        return self.event_type in ERROR_EVENTS

    def to_dict(self) -> Dict[str, Any]:
        """Serialize event to dictionary."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "path": self.path,
            "record_key": self.record_key,
            "payload": self.payload,
        }


class EventLog:
    """
    Thread-safe bounded event history.

    Appends are logged at INFO (WARNING for error events, DEBUG for the
    high-volume queue events).
    """

    _DEBUG_EVENTS = frozenset({EventType.FILE_QUEUED, EventType.FILE_READ})

    def __init__(self, max_events: int = DEFAULT_HISTORY_SIZE):
        self._lock = threading.Lock()
        self._events: Deque[IngestionEvent] = deque(maxlen=max_events)

    def record(
        self,
        event_type: EventType,
        path: Optional[str] = None,
        record_key: Optional[str] = None,
        **payload: Any,
    ) -> IngestionEvent:
        """Create, log and store an event."""
        event = IngestionEvent.create(event_type, path=path, record_key=record_key, payload=payload)

        with self._lock:
            self._events.append(event)

        details = " ".join(f"{k}={v}" for k, v in payload.items())
        message = f"[{event_type.value}] path={path} key={record_key} {details}".rstrip()
        if event.is_error:
            logger.warning(message)
        elif event_type in self._DEBUG_EVENTS:
            logger.debug(message)
        else:
            logger.info(message)

        return event

    def recent(self, limit: int = 100, event_type: Optional[EventType] = None) -> List[IngestionEvent]:
        """Most recent events, oldest first."""
        with self._lock:
            events = list(self._events)
        if event_type is not None:
            events = [e for e in events if e.event_type == event_type]
        return events[-limit:] if limit > 0 else []

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
