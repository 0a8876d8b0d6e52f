"""Row and event types, and the conversion between them."""

from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Callable

Row = dict[str, Any]
Event = dict[str, Any]

TIMESTAMP_FIELD = "@timestamp"
VERSION_FIELD = "@version"
EVENT_VERSION = "1"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_field_value(value: Any) -> Any:
    """Normalize a source scalar into a JSON-friendly event value."""
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Decimal):
        if value.is_finite() and value == value.to_integral_value():
            return int(value)
        return float(value)
    return value


def row_to_event(
    row: Row,
    *,
    event_type: str | None = None,
    tags: list[str] | None = None,
    add_field: dict[str, Any] | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> Event:
    """
    Convert a source row into a normalized event.

    Row columns become event fields in column order. The event is decorated
    with ingestion metadata and, optionally, a type, tags and static fields.
    Columns never get overwritten by decorations.

    Args:
        row: Source row (column name -> scalar)
        event_type: Optional value for the ``type`` field
        tags: Optional tags to attach
        add_field: Optional static fields to add
        clock: Source of the emission timestamp

    Returns:
        A new event mapping; the row is not modified
    """
    event: Event = {column: _to_field_value(value) for column, value in row.items()}

    if event_type is not None and "type" not in event:
        event["type"] = event_type
    if tags:
        existing = event.get("tags")
        merged = list(existing) if isinstance(existing, list) else []
        merged.extend(tag for tag in tags if tag not in merged)
        event["tags"] = merged
    for key, value in (add_field or {}).items():
        event.setdefault(key, value)

    event.setdefault(TIMESTAMP_FIELD, clock().isoformat())
    event[VERSION_FIELD] = EVENT_VERSION
    return event
