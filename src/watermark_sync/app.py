"""Assembles a synchronizer from configuration."""

import structlog
from elasticsearch import Elasticsearch
from sqlalchemy import Engine

from watermark_sync.destination.sinks import EventSink
from watermark_sync.models.config import AppConfig
from watermark_sync.providers import get_destination_client, get_sink, get_source_engine
from watermark_sync.scheduling.cycle_scheduler import CycleScheduler
from watermark_sync.sync.cycle_runner import SyncCycle
from watermark_sync.sync.event_emitter import EventEmitter
from watermark_sync.sync.query_binder import QueryBinder
from watermark_sync.sync.row_stream import RowStreamExecutor
from watermark_sync.sync.watermark_resolver import WatermarkResolver

log = structlog.stdlib.get_logger()


def build_cycle(
    config: AppConfig,
    client: Elasticsearch | None = None,
    engine: Engine | None = None,
    sink: EventSink | None = None,
) -> SyncCycle:
    """
    Build a SyncCycle from configuration.

    Collaborators passed in are used as-is; missing ones come from the
    provider module.

    Raises:
        ConfigurationError: If the statement or connection settings are invalid
    """
    spec = config.watermark.to_spec()

    # Validate the statement before opening anything
    binder = QueryBinder.from_config(config.query)

    if client is None:
        client = get_destination_client(config.destination)
    if engine is None:
        engine = get_source_engine(config.source)
    if sink is None:
        sink = get_sink(config.output, spec, client=client)

    cycle = SyncCycle(
        resolver=WatermarkResolver(client, spec, config.destination),
        binder=binder,
        executor=RowStreamExecutor(engine, fetch_size=config.source.fetch_size),
        emitter=EventEmitter(sink, watermark_field=spec.field, output=config.output),
        schedule_config=config.schedule,
    )

    log.info(
        "synchronizer_built",
        index=spec.index,
        watermark_field=spec.field.path,
        category=spec.category,
        sink=type(sink).__name__,
    )
    return cycle


def build_scheduler(config: AppConfig, **collaborators) -> CycleScheduler:
    """Build the scheduler wrapping a freshly built cycle."""
    return CycleScheduler.from_config(build_cycle(config, **collaborators), config.schedule)
