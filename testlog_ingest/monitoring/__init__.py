"""
Read-only monitoring API (FastAPI).
"""

from .server import MonitorContext, create_monitor_app, start_monitor_server

__all__ = [
    "MonitorContext",
    "create_monitor_app",
    "start_monitor_server",
]
