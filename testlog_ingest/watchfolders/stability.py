"""
File stability detection.

A file is safe to read once its size has stayed the same for a quiescence
window. Every size change restarts the window.

The tracker is shared by the filesystem event thread and the processing
loop, so all state is guarded by a lock.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .models import FileStabilityCheck, PendingFile

logger = logging.getLogger(__name__)


class FileStabilityTracker:
    """
    Quiescence-window file stability detector.

    Configuration:
        clock: Monotonic time source in seconds (default: time.monotonic).
            Tests inject a fake clock to avoid sleeping.

    Example:
        With a 1500 ms window, a file copied in over 10 seconds becomes stable
        1.5 seconds after the last write that changed its size.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: Dict[str, PendingFile] = {}

    @staticmethod
    def _key(path) -> str:
        return str(Path(path).resolve())

    def observe(self, path) -> None:
        """
        Record the current size of a file.

        Starts tracking a new file, and restarts the quiescence window if the
        size differs from the tracked one. A file that no longer exists, or
        that we are not permitted to read, is dropped from tracking.
        """
        key = self._key(path)
        size = self._stat_size(key)

        with self._lock:
            if size is None:
                self._pending.pop(key, None)
                return
            if size < 0:
                # Transiently unreadable - keep whatever we had
                return
            self._update(key, size)

    def is_stable(self, path, quiescence_ms: float) -> bool:
        """True once the size has been unchanged for quiescence_ms."""
        return self.check(path, quiescence_ms).is_stable

    def check(self, path, quiescence_ms: float) -> FileStabilityCheck:
        """
        Check whether a file is stable.

        An untracked file is observed now and reported unstable: stability
        can only be declared after a full window has been watched.

        Returns:
            FileStabilityCheck with stability status
        """
        key = self._key(path)
        size = self._stat_size(key)
        now = self._clock()

        with self._lock:
            if size is None:
                self._pending.pop(key, None)
                return FileStabilityCheck(
                    path=key,
                    is_stable=False,
                    reason="File does not exist or is not accessible",
                )

            if size < 0:
                return FileStabilityCheck(
                    path=key,
                    is_stable=False,
                    reason="File is locked or temporarily unreadable",
                )

            pending = self._pending.get(key)
            if pending is None:
                self._update(key, size)
                return FileStabilityCheck(
                    path=key,
                    is_stable=False,
                    size_bytes=size,
                    reason="First observation",
                )

            if pending.last_size != size:
                self._update(key, size)
                return FileStabilityCheck(
                    path=key,
                    is_stable=False,
                    size_bytes=size,
                    reason=f"File size changed (prev: {pending.last_size}, current: {size})",
                )

            stable_for_ms = (now - pending.last_changed_at) * 1000.0

        if stable_for_ms >= quiescence_ms:
            return FileStabilityCheck(
                path=key,
                is_stable=True,
                size_bytes=size,
                stable_for_ms=stable_for_ms,
            )

        return FileStabilityCheck(
            path=key,
            is_stable=False,
            size_bytes=size,
            stable_for_ms=stable_for_ms,
            reason=f"Unchanged for {stable_for_ms:.0f}/{quiescence_ms:.0f} ms",
        )

    def forget(self, path) -> None:
        """Stop tracking a file (after dispatch, or when it is gone)."""
        with self._lock:
            self._pending.pop(self._key(path), None)

    def get(self, path) -> Optional[PendingFile]:
        with self._lock:
            return self._pending.get(self._key(path))

    def tracked_paths(self) -> List[str]:
        with self._lock:
            return sorted(self._pending)

    def clear(self) -> None:
        """
        Clear all file stability tracking.

        Used primarily for testing or when restarting the watcher.
        """
        with self._lock:
            self._pending.clear()

    def _update(self, key: str, size: int) -> None:
        # Caller holds the lock
        now = self._clock()
        pending = self._pending.get(key)
        if pending is not None and pending.last_size == size:
            return
        self._pending[key] = PendingFile(
            path=key,
            last_size=size,
            first_observed_at=pending.first_observed_at if pending else now,
            last_changed_at=now,
        )

    @staticmethod
    def _stat_size(key: str) -> Optional[int]:
        """
        Current size of a file.

        Returns:
            Size in bytes, None if the file is gone or access is denied,
            -1 if the file exists but cannot be inspected right now
        """
        path = Path(key)
        try:
            return path.stat().st_size
        except (FileNotFoundError, PermissionError):
            return None
        except OSError as e:
            logger.debug(f"Cannot stat {key}: {e}")
            return -1
