"""Structured search requests against the destination index."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from watermark_sync.models.watermark import FieldRef, WatermarkSpec


class MaxWatermarkQuery(BaseModel):
    """
    Top-1 search for the document holding the highest watermark.

    Equivalent to "match all documents of this category, sort by the
    watermark field descending, return 1 result". Field references are
    typed, so nothing configured is ever spliced into request text.
    """

    model_config = ConfigDict(frozen=True)

    index: str
    field: FieldRef
    category: str | None = None
    category_field: FieldRef | None = None
    size: int = Field(default=1, ge=1)

    @classmethod
    def for_spec(cls, spec: WatermarkSpec) -> "MaxWatermarkQuery":
        return cls(
            index=spec.index,
            field=spec.field,
            category=spec.category,
            category_field=spec.category_field if spec.category is not None else None,
        )

    def query(self) -> dict[str, Any]:
        filters: list[dict[str, Any]] = [{"exists": {"field": self.field.path}}]
        if self.category is not None and self.category_field is not None:
            filters.append({"term": {self.category_field.path: self.category}})
        return {"bool": {"filter": filters}}

    def sort(self) -> list[dict[str, Any]]:
        # unmapped_type keeps an empty index from failing the sort
        return [{self.field.path: {"order": "desc", "unmapped_type": "long"}}]

    def to_search_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``Elasticsearch.search``."""
        return {
            "index": self.index,
            "query": self.query(),
            "sort": self.sort(),
            "size": self.size,
            "source": [self.field.path],
        }

    def to_body(self) -> dict[str, Any]:
        """The equivalent raw request body, as sent to ``_search``."""
        return {
            "query": self.query(),
            "sort": self.sort(),
            "size": self.size,
            "_source": [self.field.path],
        }


def index_mappings(spec: WatermarkSpec) -> dict[str, Any]:
    """
    Explicit mappings for the fields the watermark query relies on.

    Without them dynamic mapping turns a string category into an analyzed
    ``text`` field, which an exact ``term`` filter on the original value
    would not match.
    """
    properties: dict[str, Any] = {spec.field.path: {"type": "long"}}
    if spec.category is not None:
        properties[spec.category_field.path] = {"type": "keyword"}
    return {"properties": properties}
