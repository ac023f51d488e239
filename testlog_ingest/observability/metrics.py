"""
Ingestion metrics.

Thread-safe running counts of processing outcomes. The summary is logged at
shutdown and served by the monitoring API.
"""

import threading
from typing import Dict


COUNTERS = (
    "queued",
    "processed",
    "inserted",
    "updated",
    "duplicate",
    "archived",
    "errored",
    "deferred",
    "skipped",
    "format_errors",
    "io_errors",
    "store_errors",
    "archive_errors",
)


class IngestionMetrics:
    """
    Counters for file ingestion outcomes.

    processed counts every file that reached a terminal outcome (inserted,
    updated, duplicate or errored). errored is further broken down by kind.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {name: 0 for name in COUNTERS}

    def increment(self, name: str, amount: int = 1) -> None:
        if name not in self._counts:
            raise KeyError(f"Unknown metric: {name}")
        with self._lock:
            self._counts[name] += amount

    def get(self, name: str) -> int:
        with self._lock:
            return self._counts[name]

    def to_dict(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)

    def summary(self) -> str:
        counts = self.to_dict()
        return (
            f"Queued: {counts['queued']}, Processed: {counts['processed']}, "
            f"Inserted: {counts['inserted']}, Updated: {counts['updated']}, "
            f"Duplicate: {counts['duplicate']}, Archived: {counts['archived']}, "
            f"Errors: {counts['errored']}, Deferred: {counts['deferred']}, "
            f"Skipped: {counts['skipped']}"
        )
