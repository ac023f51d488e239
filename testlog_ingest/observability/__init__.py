"""
Observability - structured events, metrics and logging setup.
"""

from .events import EventType, IngestionEvent, EventLog
from .metrics import IngestionMetrics
from .logging_config import configure_logging

__all__ = [
    "EventType",
    "IngestionEvent",
    "EventLog",
    "IngestionMetrics",
    "configure_logging",
]
