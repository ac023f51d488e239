"""
Tests for the processing loop.

These tests verify:
1. Queued files are gated on stability and dispatched
2. Concurrency stays within max_concurrency
3. Deferred files are re-queued
4. stop() lets in-flight ingestions finish
"""

import threading
import time
from pathlib import Path

import pytest

from testlog_ingest.ingestion.service import IngestionResult, IngestionService, IngestionStatus
from testlog_ingest.ingestion.versioning import VersioningResolver
from testlog_ingest.observability.events import EventLog, EventType
from testlog_ingest.observability.metrics import IngestionMetrics
from testlog_ingest.parsing import TestLogParser
from testlog_ingest.watchfolders import (
    FileStabilityTracker,
    LoopState,
    ProcessingLoop,
    WorkQueue,
)

from conftest import SAMPLE_LOG, make_log


FAST = dict(stable_wait_ms=0, idle_delay=0.01, recheck_delay=0.01, error_backoff=0.01)


class _RecordingService:
    """Stand-in ingestion service that records calls."""

    def __init__(self, delay: float = 0.0, statuses=None):
        self.metrics = IngestionMetrics()
        self.events = EventLog()
        self.delay = delay
        self.statuses = list(statuses or [])
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def ingest(self, path, expected_size=None):
        with self._lock:
            self.calls.append((path, expected_size))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            status = self.statuses.pop(0) if self.statuses else IngestionStatus.INSERTED
        time.sleep(self.delay)
        with self._lock:
            self.active -= 1
        return IngestionResult(str(path), status)


def _loop(service, **overrides) -> ProcessingLoop:
    options = dict(FAST)
    options.update(overrides)
    return ProcessingLoop(WorkQueue(), FileStabilityTracker(), service, **options)


class TestRunOnce:
    """Tests for draining the queue."""

    def test_stable_file_is_dispatched_with_size(self, watch_dir):
        path = watch_dir / "unit.log"
        path.write_text("hello")
        service = _RecordingService()
        loop = _loop(service)

        loop.path_observed(path)
        results = loop.run_once(timeout=5)

        assert [r.status for r in results] == [IngestionStatus.INSERTED]
        assert service.calls == [(str(path.resolve()), 5)]
        assert loop.tracker.tracked_paths() == []
        assert loop.state == LoopState.STOPPED

    def test_missing_file_is_dropped(self, watch_dir):
        service = _RecordingService()
        loop = _loop(service)

        loop.path_observed(watch_dir / "gone.log")
        results = loop.run_once(timeout=5)

        assert results == []
        assert service.calls == []
        assert service.events.recent(event_type=EventType.FILE_NO_LONGER_EXISTS)

    def test_duplicate_queue_entries_ingest_once(self, watch_dir):
        path = watch_dir / "unit.log"
        path.write_text("hello")
        service = _RecordingService(delay=0.2)
        loop = _loop(service)

        for _ in range(3):
            loop.path_observed(path)
        loop.run_once(timeout=5)

        assert len(service.calls) == 1
        assert loop.metrics.get("queued") == 3

    def test_concurrency_is_bounded(self, watch_dir):
        for i in range(6):
            (watch_dir / f"unit{i}.log").write_text(f"content {i}")
        service = _RecordingService(delay=0.1)
        loop = _loop(service, max_concurrency=2)

        for path in sorted(watch_dir.iterdir()):
            loop.path_observed(path)
        results = loop.run_once(timeout=10)

        assert len(results) == 6
        assert service.max_active == 2

    def test_deferred_file_is_requeued(self, watch_dir):
        path = watch_dir / "unit.log"
        path.write_text("hello")
        service = _RecordingService(statuses=[IngestionStatus.DEFERRED, IngestionStatus.INSERTED])
        loop = _loop(service)

        loop.path_observed(path)
        results = loop.run_once(timeout=5)

        assert [r.status for r in results] == [IngestionStatus.DEFERRED, IngestionStatus.INSERTED]
        assert len(service.calls) == 2

    def test_unstable_file_times_out(self, watch_dir):
        path = watch_dir / "unit.log"
        path.write_text("hello")
        service = _RecordingService()
        loop = _loop(service, stable_wait_ms=60000)

        loop.path_observed(path)
        results = loop.run_once(timeout=0.2)

        assert results == []
        assert len(loop.queue) == 1

    def test_cycle_error_backs_off_and_continues(self, watch_dir):
        path = watch_dir / "unit.log"
        path.write_text("hello")
        service = _RecordingService()
        loop = _loop(service)
        original_check = loop.tracker.check
        failures = []

        def flaky_check(p, window):
            if not failures:
                failures.append(p)
                raise RuntimeError("transient")
            return original_check(p, window)

        loop.tracker.check = flaky_check
        loop.path_observed(path)
        loop.path_observed(path)
        results = loop.run_once(timeout=5)

        assert failures
        assert len(results) == 1


class TestRunAndStop:
    """Tests for the long-running loop."""

    def test_stop_waits_for_in_flight(self, watch_dir):
        path = watch_dir / "unit.log"
        path.write_text("hello")
        service = _RecordingService(delay=0.3)
        loop = _loop(service)
        loop.path_observed(path)

        runner = threading.Thread(target=loop.run)
        runner.start()

        deadline = time.monotonic() + 5
        while not service.calls and time.monotonic() < deadline:
            time.sleep(0.01)
        loop.stop()
        runner.join(timeout=5)

        assert not runner.is_alive()
        assert service.active == 0
        assert len(service.calls) == 1
        assert loop.in_flight() == []
        assert loop.state == LoopState.STOPPED

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            _loop(_RecordingService(), max_concurrency=0)


@pytest.mark.slow
class TestEndToEnd:
    """Loop + real ingestion service + SQLite store."""

    def test_same_key_files_in_parallel(self, watch_dir, store):
        (watch_dir / "a.log").write_text(make_log(operator="op1"))
        (watch_dir / "b.log").write_text(make_log(operator="op2"))
        service = IngestionService(TestLogParser(), VersioningResolver(store, max_attempts=5))
        loop = _loop(service, max_concurrency=2)

        for path in sorted(watch_dir.iterdir()):
            loop.path_observed(path)
        results = loop.run_once(timeout=10)

        statuses = sorted(r.status.value for r in results)
        assert statuses == ["inserted", "updated"]
        assert store.load("SN123-20240315-140509").version == 2

    def test_identical_files_one_insert(self, watch_dir, store):
        (watch_dir / "a.log").write_text(SAMPLE_LOG)
        (watch_dir / "b.log").write_text(SAMPLE_LOG)
        service = IngestionService(TestLogParser(), VersioningResolver(store, max_attempts=5))
        loop = _loop(service, max_concurrency=2)

        for path in sorted(watch_dir.iterdir()):
            loop.path_observed(path)
        results = loop.run_once(timeout=10)

        statuses = sorted(r.status.value for r in results)
        assert statuses == ["duplicate", "inserted"]
