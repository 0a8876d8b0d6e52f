"""Shared fixtures: an in-memory Elasticsearch stand-in and a SQLite source."""

import re
from types import SimpleNamespace
from typing import Any
from unittest.mock import Mock

import pytest
from elasticsearch import ConnectionError as DestinationConnectionError
from elasticsearch import NotFoundError
from sqlalchemy import Engine, create_engine, text
from sqlalchemy.pool import StaticPool

from watermark_sync.models.config import DestinationConfig
from watermark_sync.models.watermark import WatermarkSpec


def not_found(index: str = "songs") -> NotFoundError:
    return NotFoundError(f"no such index [{index}]", meta=Mock(status=404), body={})


class FakeElasticsearch:
    """Just enough of the Elasticsearch client for resolution and indexing.

    Indexed documents stay invisible to search until the index is refreshed,
    like a near-real-time search backend.
    """

    def __init__(self, status: str = "green"):
        self.status = status
        self.fail_refresh = False
        self.calls: list[str] = []
        self._visible: dict[str, dict[str, dict[str, Any]]] = {}
        self._pending: dict[str, list[tuple[str, dict[str, Any]]]] = {}
        self._next_id = 0
        self.cluster = SimpleNamespace(health=self._health)
        self.mappings: dict[str, dict[str, Any]] = {}
        self.indices = SimpleNamespace(refresh=self._refresh, create=self._create)

    def options(self, **kwargs: Any) -> "FakeElasticsearch":
        return self

    def _health(self) -> dict[str, Any]:
        self.calls.append("health")
        return {"status": self.status}

    def _refresh(self, index: str) -> dict[str, Any]:
        self.calls.append("refresh")
        if self.fail_refresh:
            raise DestinationConnectionError("refresh timed out")
        if index not in self._visible:
            raise not_found(index)
        for doc_id, document in self._pending.pop(index, []):
            self._visible[index][doc_id] = document
        return {"_shards": {"failed": 0}}

    def _create(self, index: str, mappings: dict[str, Any] | None = None) -> dict[str, Any]:
        self.calls.append("create")
        if index in self._visible:
            # What the client returns for an existing index under ignore_status=400
            return {"error": {"type": "resource_already_exists_exception"}, "status": 400}
        self._visible[index] = {}
        self.mappings[index] = mappings or {"properties": {}}
        return {"acknowledged": True, "index": index}

    def index(self, index: str, document: dict[str, Any], id: str | None = None) -> dict:
        self.calls.append("index")
        self._visible.setdefault(index, {})
        if id is None:
            self._next_id += 1
            id = f"auto-{self._next_id}"
        self._pending.setdefault(index, []).append((id, dict(document)))
        return {"_id": id, "result": "created"}

    def search(self, index: str, query: dict, sort: list, size: int, source: list) -> dict:
        self.calls.append("search")
        if index not in self._visible:
            raise not_found(index)

        filters = query["bool"]["filter"]
        field = next(f["exists"]["field"] for f in filters if "exists" in f)
        terms = [f["term"] for f in filters if "term" in f]

        documents = [
            doc
            for doc in self._visible[index].values()
            if field in doc
            and all(
                self._term_matches(index, k, doc.get(k), v) for term in terms for k, v in term.items()
            )
        ]
        documents.sort(key=lambda doc: doc[field], reverse=True)

        hits = [{"_source": {f: doc[f] for f in source if f in doc}} for doc in documents[:size]]
        return {"hits": {"hits": hits}}

    def _term_matches(self, index: str, field: str, stored: Any, wanted: Any) -> bool:
        """Exact match on keyword fields; token match on dynamically mapped strings."""
        mapping = self.mappings.get(index, {}).get("properties", {}).get(field, {})
        if isinstance(stored, str) and mapping.get("type") != "keyword":
            # Dynamic mapping indexes strings as analyzed text: lowercased word tokens
            return wanted in re.findall(r"\w+", stored.lower())
        return stored == wanted

    def document_count(self, index: str) -> int:
        return len(self._visible.get(index, {})) + len(self._pending.get(index, []))


@pytest.fixture
def fake_es() -> FakeElasticsearch:
    return FakeElasticsearch()


@pytest.fixture
def spec() -> WatermarkSpec:
    return WatermarkSpec(field="aiid", index="songs", category="song")


@pytest.fixture
def destination_config() -> DestinationConfig:
    return DestinationConfig(max_retries=0, retry_base_delay=0.0)


def make_source(watermarks: list[int] | None = None) -> Engine:
    """In-memory SQLite source with a ``songs`` table."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    with engine.begin() as connection:
        connection.execute(
            text("CREATE TABLE songs (aiid INTEGER PRIMARY KEY, title TEXT, artist TEXT)")
        )
    if watermarks:
        insert_songs(engine, watermarks)
    return engine


def insert_songs(engine: Engine, watermarks: list[int], artist: str = "Beethoven") -> None:
    with engine.begin() as connection:
        connection.execute(
            text("INSERT INTO songs (aiid, title, artist) VALUES (:aiid, :title, :artist)"),
            [{"aiid": w, "title": f"Song {w}", "artist": artist} for w in watermarks],
        )


@pytest.fixture
def source_engine() -> Engine:
    return make_source()
