"""
Live filesystem notifications for the watch folder (watchdog).

Created, modified and moved-in files are reported through the same
path-observed callback as the startup scan.
"""

import logging
import os
from typing import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .errors import WatchFolderNotFoundError
from .scanner import FileScanner

logger = logging.getLogger(__name__)


class WatchFolderEventHandler(FileSystemEventHandler):
    """
    Watchdog event handler for test log files.

    Forwards create, modify and move events to a callback when the path
    matches the scanner's filter. Ignores directory events. A move reports
    its destination path.
    """

    def __init__(self, scanner: FileScanner, callback: Callable[[str], None]):
        self.scanner = scanner
        self.callback = callback

    def _forward(self, path) -> None:
        path_str = os.fsdecode(path)
        if not self.scanner.matches(path_str):
            return
        try:
            self.callback(path_str)
        except Exception as e:
            # Keep the observer thread alive
            logger.error(f"Path-observed callback failed for {path_str}: {e}")

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.dest_path)


class WatchFolderObserver:
    """
    Runs a watchdog Observer over the watch folder.

    Example:
        >>> observer = WatchFolderObserver(scanner, queue.enqueue)
        >>> observer.start()
        >>> # ... events arrive on the observer thread ...
        >>> observer.stop()
    """

    def __init__(self, scanner: FileScanner, callback: Callable[[str], None]):
        self.scanner = scanner
        self.handler = WatchFolderEventHandler(scanner, callback)
        self._observer = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start(self) -> None:
        """
        Start watching.

        Raises:
            WatchFolderNotFoundError: If the watch folder is not a directory
        """
        if self._observer is not None:
            return

        root = self.scanner.root
        if not root.is_dir():
            raise WatchFolderNotFoundError(f"Watch folder path does not exist: {root}")

        self._observer = Observer()
        self._observer.schedule(self.handler, str(root), recursive=self.scanner.recursive)
        self._observer.daemon = True
        self._observer.start()
        logger.info(f"Watching {root} for {self.scanner.pattern} (recursive={self.scanner.recursive})")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop watching. Safe to call multiple times."""
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=timeout)
        self._observer = None
        logger.info("Stopped filesystem notifications")
