"""
Response models for the monitoring API.

All responses are read-only views of service state.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class HealthResponse(BaseModel):
    """Response for health check endpoint."""

    model_config = ConfigDict(extra="forbid")

    status: str = "ok"
    mode: str = "read-only"


class MetricsResponse(BaseModel):
    """Ingestion counters plus live loop state."""

    model_config = ConfigDict(extra="forbid")

    counters: Dict[str, int]
    queue_depth: int
    loop_state: str
    in_flight: List[str]
    stored_records: Optional[int] = None


class EventView(BaseModel):
    model_config = ConfigDict(extra="forbid")

    event_id: str
    event_type: str
    timestamp: str
    path: Optional[str] = None
    record_key: Optional[str] = None
    payload: Dict[str, Any]


class EventListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    events: List[EventView]
    total: int
