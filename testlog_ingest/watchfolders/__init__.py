"""
Watch folder - discovery, stability gating and dispatch of test log files.

Public API:
    FileStabilityTracker - quiescence-window stability detection
    WorkQueue - FIFO of observed paths
    FileScanner - startup scan and path filter
    WatchFolderObserver - live watchdog notifications
    ProcessingLoop - queue -> stability -> bounded ingestion workers
"""

from .errors import WatchFolderError, WatchFolderNotFoundError
from .models import PendingFile, FileStabilityCheck
from .stability import FileStabilityTracker
from .queue import WorkQueue
from .scanner import FileScanner
from .observer import WatchFolderEventHandler, WatchFolderObserver
from .engine import LoopState, ProcessingLoop

__all__ = [
    # Errors
    "WatchFolderError",
    "WatchFolderNotFoundError",
    # Models
    "PendingFile",
    "FileStabilityCheck",
    # Core
    "FileStabilityTracker",
    "WorkQueue",
    "FileScanner",
    "WatchFolderEventHandler",
    "WatchFolderObserver",
    "LoopState",
    "ProcessingLoop",
]
