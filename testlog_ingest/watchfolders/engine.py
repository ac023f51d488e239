"""
Processing loop - orchestration for unattended ingestion.

Takes paths off the work queue, gates them on file stability and dispatches
stable files to a bounded pool of ingestion workers.

Per cycle:
1. IDLE: queue empty, wait idle_delay
2. CHECK_FILE: dequeue, observe, check stability
   - gone: forget it
   - already being ingested: drop the redundant entry
   - not stable: re-enqueue at the tail (unless already queued), wait
     recheck_delay
3. DISPATCH: wait for a free worker slot, submit ingestion
4. ERROR_BACKOFF: an unexpected error in the cycle, wait error_backoff

On stop, nothing new is dispatched and in-flight ingestions run to
completion. Paths still queued are abandoned; the next startup scan finds
them again.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import List, Optional, Set

from ..ingestion.service import IngestionResult, IngestionService, IngestionStatus
from ..observability.events import EventLog, EventType
from ..observability.metrics import IngestionMetrics
from .queue import WorkQueue
from .stability import FileStabilityTracker

logger = logging.getLogger(__name__)

DEFAULT_STABLE_WAIT_MS = 1500
DEFAULT_MAX_CONCURRENCY = 2
DEFAULT_IDLE_DELAY = 0.5
DEFAULT_RECHECK_DELAY = 0.2
DEFAULT_ERROR_BACKOFF = 1.0


class LoopState(str, Enum):
    """Coordinator state, exposed for monitoring."""

    IDLE = "idle"
    CHECK_FILE = "check_file"
    DISPATCH = "dispatch"
    ERROR_BACKOFF = "error_backoff"
    STOPPED = "stopped"


class ProcessingLoop:
    """
    Single coordinator over a bounded worker pool.

    Invariants:
    - At most max_concurrency ingestions run at once
    - A path is never ingested by two workers at the same time
    - An error in one cycle never ends the loop
    """

    def __init__(
        self,
        queue: WorkQueue,
        tracker: FileStabilityTracker,
        service: IngestionService,
        stable_wait_ms: float = DEFAULT_STABLE_WAIT_MS,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        idle_delay: float = DEFAULT_IDLE_DELAY,
        recheck_delay: float = DEFAULT_RECHECK_DELAY,
        error_backoff: float = DEFAULT_ERROR_BACKOFF,
        metrics: Optional[IngestionMetrics] = None,
        events: Optional[EventLog] = None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self.queue = queue
        self.tracker = tracker
        self.service = service
        self.stable_wait_ms = stable_wait_ms
        self.max_concurrency = max_concurrency
        self.idle_delay = idle_delay
        self.recheck_delay = recheck_delay
        self.error_backoff = error_backoff
        self.metrics = metrics or service.metrics
        self.events = events or service.events

        self._stop_event = threading.Event()
        self._slots = threading.BoundedSemaphore(max_concurrency)
        self._lock = threading.Lock()
        self._in_flight: Set[str] = set()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._collector: Optional[List[IngestionResult]] = None
        self._state = LoopState.IDLE

    # Producers

    def path_observed(self, path) -> None:
        """
        Callback for every path source (startup scan and live events).
        """
        self.queue.enqueue(path)
        self.metrics.increment("queued")
        self.events.record(EventType.FILE_QUEUED, path=str(path))

    # Introspection

    @property
    def state(self) -> LoopState:
        return self._state

    def in_flight(self) -> List[str]:
        with self._lock:
            return sorted(self._in_flight)

    @property
    def is_stopping(self) -> bool:
        return self._stop_event.is_set()

    # Control

    def stop(self) -> None:
        """Request termination. Returns immediately."""
        if not self._stop_event.is_set():
            logger.info("Processing loop stop requested")
            self._stop_event.set()

    def run(self) -> None:
        """
        Run until stop() is called.

        Blocks the calling thread. In-flight ingestions are awaited before
        returning.
        """
        self._start_executor()
        logger.info(
            f"Processing loop started (max_concurrency={self.max_concurrency}, "
            f"stable_wait_ms={self.stable_wait_ms})"
        )
        try:
            while not self._stop_event.is_set():
                self._run_cycle_safely()
        finally:
            self._shutdown_executor()

    def run_once(self, timeout: Optional[float] = None) -> List[IngestionResult]:
        """
        Drain the queue and return.

        Every queued file is rechecked until it is stable and dispatched.
        Files still unstable when timeout (seconds) runs out are abandoned.

        Returns:
            Results of every ingestion dispatched during this call
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        results: List[IngestionResult] = []
        self._collector = results
        self._start_executor()

        try:
            while not self._stop_event.is_set():
                if self._drained():
                    break
                if deadline is not None and time.monotonic() >= deadline:
                    logger.warning(
                        f"Gave up waiting for {len(self.queue)} unstable file(s) "
                        f"after {timeout:.1f}s"
                    )
                    break
                if len(self.queue) == 0:
                    # Only in-flight work left
                    self._stop_event.wait(min(self.recheck_delay, 0.05))
                    continue
                self._run_cycle_safely()
        finally:
            self._shutdown_executor()
            self._collector = None

        return results

    # Cycle

    def _run_cycle_safely(self) -> None:
        try:
            self.run_cycle()
        except Exception as e:
            self._state = LoopState.ERROR_BACKOFF
            logger.error(f"Processing loop error: {e}", exc_info=True)
            self._stop_event.wait(self.error_backoff)
        finally:
            if self._state != LoopState.STOPPED:
                self._state = LoopState.IDLE

    def run_cycle(self) -> None:
        """One coordinator step. Requires a running executor."""
        self._state = LoopState.CHECK_FILE
        path = self.queue.try_dequeue()

        if path is None:
            self._state = LoopState.IDLE
            self._stop_event.wait(self.idle_delay)
            return

        file_path = Path(path)
        key = str(file_path.resolve())

        if not file_path.exists():
            self.tracker.forget(file_path)
            self.events.record(EventType.FILE_NO_LONGER_EXISTS, path=path)
            return

        with self._lock:
            busy = key in self._in_flight
        if busy:
            logger.debug(f"Already being ingested, dropping queue entry: {path}")
            return

        self.tracker.observe(file_path)
        check = self.tracker.check(file_path, self.stable_wait_ms)

        if not check.is_stable:
            logger.debug(f"File not stable: {file_path.name} - {check.reason}")
            # Another entry for this path will bring it back
            if path not in self.queue:
                self.queue.enqueue(path)
            self._stop_event.wait(self.recheck_delay)
            return

        self.events.record(
            EventType.FILE_STABLE,
            path=path,
            size_bytes=check.size_bytes,
            stable_for_ms=round(check.stable_for_ms),
        )
        self._dispatch(key, check.size_bytes)

    def _dispatch(self, key: str, size_bytes: Optional[int]) -> None:
        self._state = LoopState.DISPATCH

        while not self._slots.acquire(timeout=self.idle_delay):
            if self._stop_event.is_set():
                logger.info(f"Stopping before dispatch, abandoning: {key}")
                return

        with self._lock:
            self._in_flight.add(key)

        try:
            future = self._executor.submit(self.service.ingest, key, size_bytes)
        except RuntimeError:
            # Executor already shut down
            self._release(key)
            raise

        future.add_done_callback(lambda f: self._on_done(key, f))

    def _on_done(self, key: str, future: Future) -> None:
        result: Optional[IngestionResult] = None
        try:
            result = future.result()
        except Exception as e:
            logger.error(f"Ingestion of {key} raised unexpectedly: {e}", exc_info=True)

        self.tracker.forget(key)

        with self._lock:
            self._in_flight.discard(key)
            if result is not None and result.status == IngestionStatus.DEFERRED:
                self.queue.enqueue(key)
            if result is not None and self._collector is not None:
                self._collector.append(result)

        self._slots.release()

    def _release(self, key: str) -> None:
        with self._lock:
            self._in_flight.discard(key)
        self._slots.release()

    def _drained(self) -> bool:
        with self._lock:
            return len(self.queue) == 0 and not self._in_flight

    def _start_executor(self) -> None:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_concurrency, thread_name_prefix="ingest"
            )

    def _shutdown_executor(self) -> None:
        if self._executor is None:
            return
        in_flight = self.in_flight()
        if in_flight:
            logger.info(f"Waiting for {len(in_flight)} in-flight ingestion(s) to finish")
        self._executor.shutdown(wait=True)
        self._executor = None
        self._state = LoopState.STOPPED
