"""Property-based tests for watermark resolution against the destination.

Covers fresh start, health gating, the refresh short-circuit, idempotent
resolution and the handling of malformed or failing responses.
"""

from decimal import Decimal
from unittest.mock import Mock

import pytest
from elasticsearch import ConnectionError as DestinationConnectionError
from hypothesis import given, settings
from hypothesis import strategies as st

from conftest import FakeElasticsearch, not_found
from watermark_sync.models.config import DestinationConfig
from watermark_sync.models.watermark import Abort, Fresh, WatermarkSpec, WatermarkValue
from watermark_sync.sync.watermark_resolver import WatermarkResolver, coerce_watermark


def mock_client(status: str = "green", hits: list | None = None) -> Mock:
    client = Mock()
    client.options.return_value = client
    client.cluster.health.return_value = {"status": status}
    client.indices.refresh.return_value = {"_shards": {"failed": 0}}
    client.search.return_value = {"hits": {"hits": hits or []}}
    return client


def test_missing_index_resolves_fresh(spec: WatermarkSpec, destination_config: DestinationConfig):
    """An index that does not exist yet is a first run, not an error."""
    client = FakeElasticsearch()

    resolved = WatermarkResolver(client, spec, destination_config).resolve()

    assert resolved == Fresh()


def test_missing_index_at_search_resolves_fresh(
    spec: WatermarkSpec, destination_config: DestinationConfig
):
    client = mock_client()
    client.search.side_effect = not_found()

    assert WatermarkResolver(client, spec, destination_config).resolve() == Fresh()


def test_empty_index_resolves_fresh(spec: WatermarkSpec, destination_config: DestinationConfig):
    client = mock_client(hits=[])

    assert WatermarkResolver(client, spec, destination_config).resolve() == Fresh()


def test_top_document_value_is_returned(spec: WatermarkSpec, destination_config: DestinationConfig):
    client = mock_client(hits=[{"_source": {"aiid": 9}}])

    resolved = WatermarkResolver(client, spec, destination_config).resolve()

    assert resolved == WatermarkValue(value=9)


def test_search_request_is_structured(spec: WatermarkSpec, destination_config: DestinationConfig):
    """The watermark query is a top-1 descending sort scoped to the category."""
    client = mock_client(hits=[{"_source": {"aiid": 3}}])

    WatermarkResolver(client, spec, destination_config).resolve()

    kwargs = client.search.call_args.kwargs
    assert kwargs["index"] == "songs"
    assert kwargs["size"] == 1
    assert kwargs["sort"] == [{"aiid": {"order": "desc", "unmapped_type": "long"}}]
    assert {"term": {"type": "song"}} in kwargs["query"]["bool"]["filter"]
    assert {"exists": {"field": "aiid"}} in kwargs["query"]["bool"]["filter"]


def test_zero_is_a_value_not_a_signal(spec: WatermarkSpec, destination_config: DestinationConfig):
    """A stored watermark of 0 (or -1) must not be mistaken for fresh/abort."""
    for stored in (0, -1):
        client = mock_client(hits=[{"_source": {"aiid": stored}}])
        resolved = WatermarkResolver(client, spec, destination_config).resolve()
        assert resolved == WatermarkValue(value=stored)


def test_red_cluster_aborts_before_refresh(
    spec: WatermarkSpec, destination_config: DestinationConfig
):
    """A degraded cluster is never queried."""
    client = mock_client(status="red")

    resolved = WatermarkResolver(client, spec, destination_config).resolve()

    assert isinstance(resolved, Abort)
    assert resolved.phase == "health"
    assert resolved.error_type == "DestinationDegraded"
    client.indices.refresh.assert_not_called()
    client.search.assert_not_called()


def test_min_health_status_is_configurable(spec: WatermarkSpec):
    client = mock_client(status="yellow", hits=[{"_source": {"aiid": 1}}])

    strict = WatermarkResolver(client, spec, DestinationConfig(min_health_status="green"))
    lenient = WatermarkResolver(client, spec, DestinationConfig(min_health_status="yellow"))

    assert isinstance(strict.resolve(), Abort)
    assert lenient.resolve() == WatermarkValue(value=1)


def test_health_check_failure_aborts(spec: WatermarkSpec, destination_config: DestinationConfig):
    client = mock_client()
    client.cluster.health.side_effect = DestinationConnectionError("connection refused")

    resolved = WatermarkResolver(client, spec, destination_config).resolve()

    assert isinstance(resolved, Abort)
    assert resolved.phase == "health"
    client.search.assert_not_called()


def test_refresh_failure_short_circuits(spec: WatermarkSpec, destination_config: DestinationConfig):
    """A failed refresh aborts and no watermark query is issued."""
    client = FakeElasticsearch()
    client.index(index="songs", document={"aiid": 1, "type": "song"})
    client.fail_refresh = True

    resolved = WatermarkResolver(client, spec, destination_config).resolve()

    assert isinstance(resolved, Abort)
    assert resolved.phase == "refresh"
    assert "search" not in client.calls


def test_refresh_makes_recent_writes_visible(
    spec: WatermarkSpec, destination_config: DestinationConfig
):
    """Documents written since the last refresh count towards the watermark."""
    client = FakeElasticsearch()
    for value in (5, 7, 9):
        client.index(index="songs", document={"aiid": value, "type": "song"}, id=str(value))

    resolved = WatermarkResolver(client, spec, destination_config).resolve()

    assert resolved == WatermarkValue(value=9)
    assert client.calls[:3] == ["index", "index", "index"]
    assert client.calls[-3:] == ["health", "refresh", "search"]


def test_other_categories_are_ignored(spec: WatermarkSpec, destination_config: DestinationConfig):
    client = FakeElasticsearch()
    client.index(index="songs", document={"aiid": 100, "type": "album"})
    client.index(index="songs", document={"aiid": 4, "type": "song"})

    resolved = WatermarkResolver(client, spec, destination_config).resolve()

    assert resolved == WatermarkValue(value=4)


@pytest.mark.parametrize(
    "response",
    [
        {"hits": {"hits": [{"_source": {}}]}},
        {"hits": {"hits": [{"_source": {"aiid": "not-a-number"}}]}},
        {"hits": {"hits": [{"_source": {"aiid": 1.5}}]}},
        {"hits": {}},
        {"unexpected": True},
    ],
)
def test_malformed_response_aborts(
    spec: WatermarkSpec, destination_config: DestinationConfig, response: dict
):
    client = mock_client()
    client.search.return_value = response

    resolved = WatermarkResolver(client, spec, destination_config).resolve()

    assert isinstance(resolved, Abort)
    assert resolved.phase == "query"


def test_unexpected_search_error_aborts(spec: WatermarkSpec, destination_config: DestinationConfig):
    client = mock_client()
    client.search.side_effect = RuntimeError("boom")

    resolved = WatermarkResolver(client, spec, destination_config).resolve()

    assert isinstance(resolved, Abort)
    assert resolved.error_type == "UnexpectedResolverError"
    assert "boom" in resolved.reason


def test_transport_errors_are_retried(spec: WatermarkSpec):
    client = mock_client(hits=[{"_source": {"aiid": 12}}])
    client.cluster.health.side_effect = [
        DestinationConnectionError("reset"),
        DestinationConnectionError("reset"),
        {"status": "green"},
    ]
    sleeps: list[float] = []

    resolver = WatermarkResolver(
        client,
        spec,
        DestinationConfig(max_retries=2, retry_base_delay=0.5),
        sleep=sleeps.append,
    )

    assert resolver.resolve() == WatermarkValue(value=12)
    assert sleeps == [0.5, 1.0]


def test_request_timeout_is_applied(spec: WatermarkSpec):
    client = mock_client(hits=[])

    WatermarkResolver(client, spec, DestinationConfig(request_timeout=3.5)).resolve()

    client.options.assert_called_with(request_timeout=3.5)


@given(stored=st.lists(st.integers(min_value=-10**6, max_value=10**12), min_size=1, max_size=30))
@settings(max_examples=50)
def test_property_idempotent_resolution(stored: list[int]) -> None:
    """With no writes in between, resolving twice yields the same value."""
    spec = WatermarkSpec(field="aiid", index="songs")
    client = FakeElasticsearch()
    for value in stored:
        client.index(index="songs", document={"aiid": value})

    resolver = WatermarkResolver(client, spec, DestinationConfig(max_retries=0))
    first = resolver.resolve()
    second = resolver.resolve()

    assert first == second == WatermarkValue(value=max(stored))


@given(value=st.integers(min_value=-10**15, max_value=10**15))
def test_coerce_accepts_integral_representations(value: int) -> None:
    assert coerce_watermark(value) == value
    assert coerce_watermark(str(value)) == value
    assert coerce_watermark(Decimal(value)) == value
    if abs(value) < 2**53:
        assert coerce_watermark(float(value)) == value


@pytest.mark.parametrize(
    "value", [True, None, "1.5", "", 2.25, [1], Decimal("1.5"), Decimal("NaN"), Decimal("Infinity")]
)
def test_coerce_rejects_non_integers(value):
    with pytest.raises(ValueError):
        coerce_watermark(value)


def test_integral_decimal_from_a_numeric_column():
    assert coerce_watermark(Decimal("9")) == 9
    assert coerce_watermark(Decimal("9.000")) == 9
