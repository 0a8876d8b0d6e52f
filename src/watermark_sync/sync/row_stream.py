"""Executes the bound statement and streams rows from the source."""

from typing import Any, Iterator

import structlog
from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from watermark_sync.errors import SourceQueryFailed
from watermark_sync.models.event import Row
from watermark_sync.sync.query_binder import BoundStatement

log = structlog.stdlib.get_logger()


class RowStreamExecutor:
    """Streams result rows without buffering the full result set."""

    def __init__(self, engine: Engine, fetch_size: int | None = None):
        """
        Initialize the executor.

        Args:
            engine: SQLAlchemy engine for the source database
            fetch_size: Rows fetched per round trip; driver default when None
        """
        self._engine = engine
        self._fetch_size = fetch_size

    def execution_options(self) -> dict[str, Any]:
        """Streaming options for the engine's dialect."""
        options: dict[str, Any] = {}
        if self._engine.dialect.supports_server_side_cursors:
            options["stream_results"] = True
            if self._fetch_size:
                options["max_row_buffer"] = self._fetch_size
        return options

    def stream(self, bound: BoundStatement) -> Iterator[Row]:
        """
        Execute the statement and yield rows one by one.

        The generator is lazy and cannot be restarted. The connection is held
        until the generator is exhausted or closed.

        Args:
            bound: Statement and parameters to execute

        Yields:
            One dict per result row, in result order

        Raises:
            SourceQueryFailed: On any execution or fetch error. Rows yielded
                before the error are not retracted.
        """
        rows_streamed = 0
        log.info("source_query_started", parameters=bound.params)

        try:
            with self._engine.connect() as connection:
                result = connection.execution_options(**self.execution_options()).execute(
                    bound.clause, bound.params
                )
                if self._fetch_size and result.cursor is not None:
                    result.cursor.arraysize = self._fetch_size

                for mapping in result.mappings():
                    rows_streamed += 1
                    yield dict(mapping)

        except SQLAlchemyError as e:
            log.error(
                "source_query_failed",
                rows_streamed=rows_streamed,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise SourceQueryFailed(f"Source query failed after {rows_streamed} rows: {e}") from e

        log.info("source_query_completed", rows_streamed=rows_streamed)
