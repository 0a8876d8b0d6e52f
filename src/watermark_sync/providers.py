"""Centralized provider module for the source engine, destination client and sink.

This module provides factory functions for the external collaborators the
synchronizer talks to. Swap implementations here without changing other code.

Default implementations:
- Source: SQLAlchemy Engine (any dialect with an installed driver)
- Destination: official Elasticsearch client
- Sink: JSON lines on stdout
"""

import structlog
from elasticsearch import Elasticsearch
from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, NoSuchModuleError

from watermark_sync.destination.sinks import ElasticsearchSink, EventSink, QueueSink, StdoutSink
from watermark_sync.errors import ConfigurationError
from watermark_sync.models.config import DestinationConfig, OutputConfig, SourceConfig
from watermark_sync.models.watermark import WatermarkSpec

log = structlog.stdlib.get_logger()


def get_source_engine(config: SourceConfig) -> Engine:
    """Create the SQLAlchemy engine for the source database.

    Args:
        config: Source configuration

    Returns:
        Engine instance (connections are opened lazily, per cycle)

    Raises:
        ConfigurationError: If the URL is malformed or its driver is not installed
    """
    try:
        url = make_url(config.connection_string)
        if config.user is not None:
            url = url.set(username=config.user)
        if config.password is not None:
            url = url.set(password=config.password)

        engine_kwargs: dict = {"pool_pre_ping": config.validate_connection}
        if url.get_backend_name() != "sqlite":
            engine_kwargs["pool_timeout"] = config.pool_timeout

        log.info(
            "initializing_source_engine",
            backend=url.get_backend_name(),
            driver=url.get_driver_name(),
            database=url.database,
        )
        return create_engine(url, **engine_kwargs)

    except (ArgumentError, NoSuchModuleError, ImportError) as e:
        log.error("get_source_engine_failed", error=str(e), error_type=type(e).__name__)
        raise ConfigurationError(f"Invalid source connection string: {e}") from e


def get_destination_client(config: DestinationConfig) -> Elasticsearch:
    """Create the Elasticsearch client for the destination.

    Args:
        config: Destination configuration

    Returns:
        Elasticsearch client; per-request timeouts are applied by callers
    """
    client_kwargs: dict = {"request_timeout": config.request_timeout}
    if config.api_key:
        client_kwargs["api_key"] = config.api_key
    elif config.basic_auth_user:
        client_kwargs["basic_auth"] = (config.basic_auth_user, config.basic_auth_password or "")

    log.info("initializing_destination_client", hosts=config.hosts)
    return Elasticsearch(config.hosts, **client_kwargs)


def get_sink(
    config: OutputConfig,
    spec: WatermarkSpec,
    client: Elasticsearch | None = None,
) -> EventSink:
    """Create the sink events are delivered to.

    Events indexed into Elasticsearch use the watermark value as document id,
    so a row re-emitted after a partial failure overwrites its earlier copy.
    """
    if config.sink == "stdout":
        return StdoutSink()
    if config.sink == "queue":
        return QueueSink()
    if client is None:
        raise ConfigurationError("The elasticsearch sink needs a destination client")
    return ElasticsearchSink(client, spec, id_field=spec.field.path)
