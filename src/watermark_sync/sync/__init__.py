"""Synchronization components for watermark-driven incremental sync."""

from watermark_sync.sync.cycle_runner import SyncCycle
from watermark_sync.sync.event_emitter import EventEmitter
from watermark_sync.sync.models import CycleOutcome, CyclePhase
from watermark_sync.sync.query_binder import WATERMARK_PARAMETER, BoundStatement, QueryBinder
from watermark_sync.sync.row_stream import RowStreamExecutor
from watermark_sync.sync.watermark_resolver import WatermarkResolver

__all__ = [
    "BoundStatement",
    "CycleOutcome",
    "CyclePhase",
    "EventEmitter",
    "QueryBinder",
    "RowStreamExecutor",
    "SyncCycle",
    "WATERMARK_PARAMETER",
    "WatermarkResolver",
]
