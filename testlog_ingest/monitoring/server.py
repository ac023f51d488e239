"""
Monitoring server.

Read-only HTTP API for ingestion visibility. No control operations: files
cannot be queued, retried or deleted through it.

By default the server binds to localhost only.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request

from ..observability.events import EventLog
from ..observability.metrics import IngestionMetrics
from ..persistence.errors import PersistenceError
from .models import EventListResponse, EventView, HealthResponse, MetricsResponse

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9876


@dataclass
class MonitorContext:
    """
    Live service objects the API reads from.

    loop and store are optional so the API can run before the loop exists
    (or in tests).
    """

    metrics: IngestionMetrics
    events: EventLog
    queue: Optional[object] = None
    loop: Optional[object] = None
    store: Optional[object] = None


router = APIRouter(prefix="/monitor", tags=["monitoring"])


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.get("/metrics", response_model=MetricsResponse)
def get_metrics(request: Request):
    """
    Ingestion counters, queue depth, loop state and in-flight files.
    """
    context: MonitorContext = request.app.state.context

    stored = None
    if context.store is not None:
        try:
            stored = context.store.count()
        except PersistenceError as e:
            logger.warning(f"Cannot count stored records: {e}")

    loop = context.loop
    return MetricsResponse(
        counters=context.metrics.to_dict(),
        queue_depth=len(context.queue) if context.queue is not None else 0,
        loop_state=loop.state.value if loop is not None else "not_started",
        in_flight=loop.in_flight() if loop is not None else [],
        stored_records=stored,
    )


@router.get("/events", response_model=EventListResponse)
def list_events(
    request: Request,
    limit: int = Query(100, ge=1, le=1000, description="Maximum results"),
):
    """Most recent ingestion events, oldest first."""
    context: MonitorContext = request.app.state.context
    events = context.events.recent(limit=limit)
    return EventListResponse(
        events=[EventView(**event.to_dict()) for event in events],
        total=len(context.events),
    )


@router.get("/records/{key}")
def get_record(key: str, request: Request):
    """
    Stored record by key, without the raw file text.

    Raises:
        404: If no record is stored under the key
        503: If no store is attached or the store fails
    """
    context: MonitorContext = request.app.state.context
    if context.store is None:
        raise HTTPException(status_code=503, detail="Record store not available")

    try:
        record = context.store.load(key)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))

    if record is None:
        raise HTTPException(status_code=404, detail=f"Record not found: {key}")

    return record.model_dump(mode="json", exclude={"raw_text"})


def create_monitor_app(context: MonitorContext) -> FastAPI:
    """
    Create the read-only monitoring API application.

    Args:
        context: Service objects to read from

    Returns:
        FastAPI application with read-only endpoints
    """
    app = FastAPI(
        title="testlog-ingest Monitor API",
        description="Read-only observability API for test log ingestion.",
        version="1.0.0",
    )
    app.state.context = context
    app.include_router(router)
    return app


def start_monitor_server(
    context: MonitorContext,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> threading.Thread:
    """
    Serve the monitor API from a daemon thread.

    The thread dies with the process; there is nothing to flush.
    """
    import uvicorn

    app = create_monitor_app(context)
    config = uvicorn.Config(app, host=host, port=port, log_level="warning")
    server = uvicorn.Server(config)

    if host == "0.0.0.0":
        logger.warning("Monitor API is exposed on all interfaces without authentication")

    thread = threading.Thread(target=server.run, name="monitor-api", daemon=True)
    thread.start()
    logger.info(f"Monitor API (read-only) listening on http://{host}:{port}/monitor")
    return thread
