"""Turns source rows into events and hands them to the downstream sink."""

from datetime import datetime
from typing import Any, Callable, Iterable

import structlog

from watermark_sync.destination.sinks import EventSink
from watermark_sync.models.config import OutputConfig
from watermark_sync.models.event import Event, Row, row_to_event, utc_now
from watermark_sync.models.watermark import FieldRef
from watermark_sync.sync.watermark_resolver import coerce_watermark

log = structlog.stdlib.get_logger()


class EventEmitter:
    """Emits exactly one event per row, in row order, synchronously."""

    def __init__(
        self,
        sink: EventSink,
        watermark_field: FieldRef | None = None,
        output: OutputConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the emitter.

        Args:
            sink: Receives each event; must return only once it has accepted it
            watermark_field: Column tracked to report the highest emitted watermark
            output: Event decorations (type, tags, add_field)
            clock: Source of emission timestamps
        """
        self._sink = sink
        self._watermark_field = watermark_field
        self._output = output or OutputConfig()
        self._clock = clock
        self.rows_emitted = 0
        self.highest_watermark: int | None = None

    def emit(self, row: Row) -> Event:
        """Convert one row and deliver it. Returns the delivered event."""
        event = row_to_event(
            row,
            event_type=self._output.type,
            tags=self._output.tags,
            add_field=self._output.add_field,
            clock=self._clock,
        )
        self._sink.accept(event)

        self.rows_emitted += 1
        self._track_watermark(row)
        return event

    def emit_all(self, rows: Iterable[Row]) -> tuple[int, int | None]:
        """
        Emit every row; errors raised by the row source propagate unchanged.

        Returns:
            Number of rows emitted by this call, and the highest watermark
            emitted since the last reset
        """
        emitted = 0
        for row in rows:
            self.emit(row)
            emitted += 1
        return emitted, self.highest_watermark

    def reset(self) -> None:
        self.rows_emitted = 0
        self.highest_watermark = None

    def _track_watermark(self, row: Row) -> None:
        if self._watermark_field is None:
            return
        try:
            value: Any = self._watermark_field.extract(row)
            watermark = coerce_watermark(value)
        except (KeyError, ValueError):
            return
        if self.highest_watermark is None or watermark > self.highest_watermark:
            self.highest_watermark = watermark
