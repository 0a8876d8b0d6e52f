"""Data models for the watermark synchronizer."""

from watermark_sync.models.config import (
    AppConfig,
    DestinationConfig,
    LoggingConfig,
    OutputConfig,
    QueryConfig,
    ScheduleConfig,
    SourceConfig,
    WatermarkConfig,
)
from watermark_sync.models.event import Event, Row, row_to_event
from watermark_sync.models.watermark import (
    Abort,
    FieldRef,
    Fresh,
    ResolvedWatermark,
    WatermarkSpec,
    WatermarkValue,
)

__all__ = [
    "Abort",
    "AppConfig",
    "DestinationConfig",
    "Event",
    "FieldRef",
    "Fresh",
    "LoggingConfig",
    "OutputConfig",
    "QueryConfig",
    "ResolvedWatermark",
    "Row",
    "ScheduleConfig",
    "SourceConfig",
    "WatermarkConfig",
    "WatermarkSpec",
    "WatermarkValue",
    "row_to_event",
]
