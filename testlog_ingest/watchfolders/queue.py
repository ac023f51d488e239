"""
Work queue of observed paths.

Unbounded FIFO shared by the initial scan, the filesystem event handler and
the processing loop. Duplicates are allowed; the loop treats a repeated path
as one more stability check.
"""

import threading
from collections import deque
from typing import Deque, List, Optional


class WorkQueue:
    """Thread-safe FIFO of file paths."""

    def __init__(self):
        self._lock = threading.Lock()
        self._items: Deque[str] = deque()

    def enqueue(self, path) -> None:
        """
        Append a path to the tail of the queue.

        Raises:
            ValueError: If path is empty or blank
        """
        path_str = str(path) if path is not None else ""
        if not path_str.strip():
            raise ValueError("Cannot enqueue an empty path")
        with self._lock:
            self._items.append(path_str)

    def try_dequeue(self) -> Optional[str]:
        """Pop the head of the queue, or None if it is empty. Never blocks."""
        with self._lock:
            if not self._items:
                return None
            return self._items.popleft()

    def snapshot(self) -> List[str]:
        """Queued paths, head first."""
        with self._lock:
            return list(self._items)

    def __contains__(self, path) -> bool:
        with self._lock:
            return str(path) in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
