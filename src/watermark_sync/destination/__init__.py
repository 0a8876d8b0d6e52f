"""Destination-side request building and event sinks."""

from watermark_sync.destination.query_builder import MaxWatermarkQuery, index_mappings
from watermark_sync.destination.sinks import ElasticsearchSink, EventSink, QueueSink, StdoutSink

__all__ = [
    "ElasticsearchSink",
    "EventSink",
    "MaxWatermarkQuery",
    "QueueSink",
    "StdoutSink",
    "index_mappings",
]
