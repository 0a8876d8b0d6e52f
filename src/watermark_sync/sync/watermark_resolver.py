"""Derives the synchronization resume point from the destination's own contents."""

from decimal import Decimal
from typing import Any, Callable

import structlog
from elasticsearch import ConnectionError as DestinationConnectionError
from elasticsearch import ConnectionTimeout, Elasticsearch, NotFoundError

from watermark_sync.destination.query_builder import MaxWatermarkQuery
from watermark_sync.errors import (
    DestinationDegraded,
    DestinationRefreshFailed,
    UnexpectedResolverError,
    WatermarkResolutionError,
)
from watermark_sync.models.config import DestinationConfig
from watermark_sync.models.watermark import (
    Abort,
    Fresh,
    ResolvedWatermark,
    WatermarkSpec,
    WatermarkValue,
)
from watermark_sync.utils.retry import exponential_backoff_retry

log = structlog.stdlib.get_logger()

HEALTH_RANK: dict[str, int] = {"red": 0, "yellow": 1, "green": 2}

RETRYABLE_ERRORS = (DestinationConnectionError, ConnectionTimeout)


def coerce_watermark(value: Any) -> int:
    """
    Interpret a stored watermark value as an integer.

    Raises:
        ValueError: If the value is not integral
    """
    if isinstance(value, bool):
        raise ValueError(f"Boolean is not a watermark: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    # NUMERIC / DECIMAL columns
    if isinstance(value, Decimal) and value.is_finite() and value == value.to_integral_value():
        return int(value)
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
    raise ValueError(f"Watermark value is not an integer: {value!r}")


class WatermarkResolver:
    """Resolves the highest watermark already stored in the destination.

    Every call checks cluster health, refreshes the index so the previous
    cycle's writes are visible, and then asks for the single document with
    the highest watermark. Nothing is cached between calls.
    """

    def __init__(
        self,
        client: Elasticsearch,
        spec: WatermarkSpec,
        config: DestinationConfig | None = None,
        sleep: Callable[[float], None] | None = None,
    ):
        """
        Initialize the resolver.

        Args:
            client: Elasticsearch client for the destination
            spec: What the watermark is and where it lives
            config: Timeouts, retry and health settings (defaults when None)
            sleep: Wait function used between retries (time.sleep when None)
        """
        self._client = client
        self._spec = spec
        self._config = config or DestinationConfig()
        self._query = MaxWatermarkQuery.for_spec(spec)

        retry_kwargs: dict[str, Any] = {
            "max_retries": self._config.max_retries,
            "base_delay": self._config.retry_base_delay,
            "exceptions": RETRYABLE_ERRORS,
        }
        if sleep is not None:
            retry_kwargs["sleep"] = sleep
        self._with_retries = exponential_backoff_retry(**retry_kwargs)

    @property
    def spec(self) -> WatermarkSpec:
        return self._spec

    def resolve(self) -> ResolvedWatermark:
        """
        Resolve the current watermark.

        Returns:
            Fresh if the destination holds nothing yet, WatermarkValue with the
            stored maximum, or Abort if the cycle must be skipped
        """
        log.info(
            "resolving_watermark",
            index=self._spec.index,
            field=self._spec.field.path,
            category=self._spec.category,
        )

        try:
            self._check_health()

            if not self._refresh():
                log.info("destination_index_missing", index=self._spec.index, phase="refresh")
                return Fresh()

            resolved = self._query_max_watermark()

        except WatermarkResolutionError as e:
            log.error(
                "watermark_resolution_aborted",
                index=self._spec.index,
                phase=e.phase,
                error=str(e),
                error_type=type(e).__name__,
            )
            return Abort(phase=e.phase, reason=str(e), error_type=type(e).__name__)

        log.info("watermark_resolved", index=self._spec.index, watermark=resolved.model_dump())
        return resolved

    def _timed_client(self) -> Elasticsearch:
        return self._client.options(request_timeout=self._config.request_timeout)

    def _check_health(self) -> None:
        try:
            health = self._with_retries(self._timed_client().cluster.health)()
            status = str(health["status"]).lower()
        except Exception as e:
            raise DestinationDegraded(f"Cluster health check failed: {e}") from e

        minimum = self._config.min_health_status
        if HEALTH_RANK.get(status, -1) < HEALTH_RANK[minimum]:
            raise DestinationDegraded(
                f"Cluster health is {status!r}, below the required {minimum!r}"
            )

        log.debug("destination_health_ok", status=status)

    def _refresh(self) -> bool:
        """Make the most recent writes visible. Returns False if the index does not exist."""
        try:
            self._with_retries(self._timed_client().indices.refresh)(index=self._spec.index)
        except NotFoundError:
            return False
        except Exception as e:
            raise DestinationRefreshFailed(
                f"Failed to refresh index {self._spec.index!r}: {e}"
            ) from e

        log.debug("destination_index_refreshed", index=self._spec.index)
        return True

    def _query_max_watermark(self) -> ResolvedWatermark:
        try:
            response = self._with_retries(self._timed_client().search)(
                **self._query.to_search_kwargs()
            )
        except NotFoundError:
            log.info("destination_index_missing", index=self._spec.index, phase="query")
            return Fresh()
        except Exception as e:
            raise UnexpectedResolverError(f"Watermark query failed: {e}") from e

        try:
            hits = response["hits"]["hits"]
            if not hits:
                log.info("no_documents_found", index=self._spec.index, category=self._spec.category)
                return Fresh()
            raw_value = self._spec.field.extract(hits[0]["_source"])
            return WatermarkValue(value=coerce_watermark(raw_value))
        except (KeyError, TypeError, ValueError) as e:
            raise UnexpectedResolverError(f"Malformed watermark response: {e!r}") from e
