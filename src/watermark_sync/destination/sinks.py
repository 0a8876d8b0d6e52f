"""Downstream sinks that accept emitted events."""

import json
import queue
import sys
from typing import Any, Protocol, TextIO, runtime_checkable

import structlog
from elasticsearch import Elasticsearch

from watermark_sync.destination.query_builder import index_mappings
from watermark_sync.models.event import Event
from watermark_sync.models.watermark import WatermarkSpec

log = structlog.stdlib.get_logger()


@runtime_checkable
class EventSink(Protocol):
    """Anything that takes ownership of events, one at a time."""

    def accept(self, event: Event) -> None:
        """Accept one event. Returning means the event was taken."""
        ...


class QueueSink:
    """Hands events to a bounded in-process queue, blocking while it is full."""

    def __init__(self, target: "queue.Queue[Event] | None" = None, maxsize: int = 0):
        self.queue: "queue.Queue[Event]" = target if target is not None else queue.Queue(maxsize)

    def accept(self, event: Event) -> None:
        self.queue.put(event)


class StdoutSink:
    """Writes events as JSON lines."""

    def __init__(self, stream: TextIO | None = None):
        self._stream = stream

    def accept(self, event: Event) -> None:
        stream = self._stream or sys.stdout
        stream.write(json.dumps(event, default=str) + "\n")
        stream.flush()


class ElasticsearchSink:
    """Indexes every event into the watermark index.

    Before the first write the index is created with explicit mappings for
    the watermark (``long``) and category (``keyword``) fields; an existing
    index is left as it is.

    When the watermark is scoped to a category, the category field is set on
    each document so the next cycle's resolver sees it. This is the one
    place an event field is overwritten: a source column with the same name
    as the category field loses its value, and a warning is logged.
    """

    def __init__(self, client: Elasticsearch, spec: WatermarkSpec, id_field: str | None = None):
        self._client = client
        self._spec = spec
        self._id_field = id_field
        self._index_ready = False
        self._collision_logged = False

    def ensure_index(self) -> None:
        """Create the index with the watermark mappings unless it exists."""
        if self._index_ready:
            return
        # 400 is resource_already_exists_exception
        mappings = index_mappings(self._spec)
        self._client.options(ignore_status=400).indices.create(
            index=self._spec.index, mappings=mappings
        )
        log.info("destination_index_ensured", index=self._spec.index, mappings=mappings)
        self._index_ready = True

    def accept(self, event: Event) -> None:
        self.ensure_index()

        document: dict[str, Any] = dict(event)
        if self._spec.category is not None:
            category_field = self._spec.category_field.path
            existing = document.get(category_field)
            if existing is not None and existing != self._spec.category:
                self._log_collision(category_field, existing)
            document[category_field] = self._spec.category

        kwargs: dict[str, Any] = {"index": self._spec.index, "document": document}
        if self._id_field is not None and self._id_field in document:
            kwargs["id"] = str(document[self._id_field])

        self._client.index(**kwargs)
        log.debug("event_indexed", index=self._spec.index, document_id=kwargs.get("id"))

    def _log_collision(self, field: str, value: Any) -> None:
        if self._collision_logged:
            return
        log.warning(
            "category_field_overwrites_column",
            field=field,
            column_value=value,
            category=self._spec.category,
        )
        self._collision_logged = True
