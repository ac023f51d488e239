"""
Watch folder data models.
"""

from typing import Optional

from pydantic import BaseModel, Field


class PendingFile(BaseModel):
    """
    Stability state of one observed file.

    Replaced on every size change, so last_changed_at is always the start of
    the current quiescence window. Times come from the tracker's clock
    (monotonic seconds by default).
    """

    model_config = {"extra": "forbid", "frozen": True}

    path: str
    last_size: int = Field(..., ge=0)
    first_observed_at: float
    last_changed_at: float


class FileStabilityCheck(BaseModel):
    """
    Result of a file stability check.

    Files are considered stable when their size has not changed for the
    whole quiescence window.
    """

    model_config = {"extra": "forbid"}

    path: str = Field(..., description="Path of the checked file")
    is_stable: bool = Field(..., description="Whether file is stable")
    size_bytes: Optional[int] = Field(
        None, description="Current file size in bytes (None if file inaccessible)"
    )
    stable_for_ms: float = Field(
        default=0.0, description="Time since the last observed size change"
    )
    reason: Optional[str] = Field(
        None, description="Human-readable explanation if unstable or inaccessible"
    )
