"""Data models for synchronization cycles."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from watermark_sync.models.watermark import ResolvedWatermark


class CyclePhase(str, Enum):
    """Where a cycle currently is."""

    IDLE = "idle"
    RESOLVING = "resolving"
    QUERYING = "querying"
    EMITTING = "emitting"


class CycleOutcome(BaseModel):
    """Report of one synchronization cycle. Used for logging and tests only."""

    attempted: bool = Field(default=True, description="Whether the cycle started at all")
    watermark: ResolvedWatermark | None = Field(
        default=None, description="Watermark resolved for this cycle"
    )
    bound_watermark: int | None = Field(
        default=None, description="Value bound to the watermark parameter of the source query"
    )
    rows_emitted: int = Field(default=0, ge=0, description="Events accepted by the sink")
    highest_watermark_emitted: int | None = Field(
        default=None, description="Largest watermark among emitted rows"
    )
    aborted: bool = Field(default=False, description="Resolution aborted; no source query issued")
    failed_phase: CyclePhase | None = Field(default=None, description="Phase that failed")
    error: str | None = Field(default=None, description="Failure description")
    start_time: datetime = Field(..., description="Cycle start timestamp")
    end_time: datetime = Field(..., description="Cycle end timestamp")

    @property
    def duration_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        """Check if the cycle completed without abort or error."""
        return self.attempted and not self.aborted and self.error is None
