"""Watermark specification and resolution result models."""

import re
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

_SEGMENT_PATTERN = re.compile(r"^[A-Za-z_@][A-Za-z0-9_@\-]*$")


class FieldRef(BaseModel):
    """A typed reference to a (possibly nested) document field.

    Field paths are validated segment by segment so that a configured name can
    never smuggle wildcards, query syntax or JSON into a destination request.
    """

    model_config = ConfigDict(frozen=True)

    segments: tuple[str, ...] = Field(default=..., min_length=1)

    @field_validator("segments")
    @classmethod
    def validate_segments(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        for segment in v:
            if not _SEGMENT_PATTERN.match(segment):
                raise ValueError(f"Invalid field name segment: {segment!r}")
        return v

    @classmethod
    def parse(cls, path: str) -> "FieldRef":
        """Build a reference from a dotted path such as ``"meta.id"``."""
        return cls(segments=tuple(path.split(".")))

    @property
    def path(self) -> str:
        return ".".join(self.segments)

    def extract(self, source: dict[str, Any]) -> Any:
        """
        Read the referenced value out of a document source.

        A flattened key (``{"meta.id": 1}``) is accepted as well as a nested
        object (``{"meta": {"id": 1}}``).

        Raises:
            KeyError: If the field is not present
        """
        if self.path in source:
            return source[self.path]

        value: Any = source
        for segment in self.segments:
            if not isinstance(value, dict) or segment not in value:
                raise KeyError(self.path)
            value = value[segment]
        return value

    def __str__(self) -> str:
        return self.path


class WatermarkSpec(BaseModel):
    """Defines what "progress" means for one synchronizer."""

    model_config = ConfigDict(frozen=True)

    field: FieldRef = Field(default=..., description="Watermark column / document field")
    index: str = Field(default=..., min_length=1, description="Destination index name")
    category: str | None = Field(
        default=None, description="Restrict to documents of this category (document type)"
    )
    category_field: FieldRef = Field(
        default_factory=lambda: FieldRef.parse("type"),
        description="Document field holding the category",
    )

    @field_validator("field", "category_field", mode="before")
    @classmethod
    def parse_field_ref(cls, v: Any) -> Any:
        if isinstance(v, str):
            return FieldRef.parse(v)
        return v

    @field_validator("index")
    @classmethod
    def validate_index(cls, v: str) -> str:
        if any(ch in v for ch in "*?/\\,\"<>| #"):
            raise ValueError(f"Invalid index name: {v!r}")
        return v


class Fresh(BaseModel):
    """No prior data in the destination; start from the beginning."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["fresh"] = "fresh"


class WatermarkValue(BaseModel):
    """Highest watermark currently stored in the destination."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["value"] = "value"
    value: int


class Abort(BaseModel):
    """Resolution failed; the cycle must be skipped."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["abort"] = "abort"
    phase: str = Field(default=..., description="Resolution phase that failed")
    reason: str = Field(default="", description="Human readable failure reason")
    error_type: str | None = None


ResolvedWatermark = Annotated[Union[Fresh, WatermarkValue, Abort], Field(discriminator="kind")]
