"""
Event Filters - Predicates accepted by EventStore.query()

All predicates are combined with AND. Values are always bound as
parameters, never interpolated into SQL.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from lifelog.errors import ValidationError
from lifelog.models.event import EventType, parse_instant


class SortOrder(str, Enum):
    """Timestamp ordering"""

    ASC = "asc"
    DESC = "desc"


def _as_instant(value: str | datetime | None, name: str) -> datetime | None:
    if value is None:
        return None
    try:
        return parse_instant(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} must be an ISO-8601 instant, got {value!r}") from e


@dataclass(frozen=True)
class EventFilter:
    """
    Filter over the event log.

    Attributes:
        start: Inclusive lower timestamp bound
        end: Inclusive upper timestamp bound
        event_types: Allow-list of event types (empty = all)
        source_ids: Allow-list of source driver ids (empty = all)
        text: Case-insensitive substring matched against the serialized payload
    """

    start: datetime | None = None
    end: datetime | None = None
    event_types: tuple[EventType, ...] = field(default_factory=tuple)
    source_ids: tuple[str, ...] = field(default_factory=tuple)
    text: str | None = None

    @classmethod
    def build(
        cls,
        start: str | datetime | None = None,
        end: str | datetime | None = None,
        event_types: Iterable[str | EventType] | None = None,
        source_ids: Iterable[str] | None = None,
        text: str | None = None,
    ) -> "EventFilter":
        """
        Validate raw inputs and build a filter.

        Raises:
            ValidationError: On malformed instants, unknown event types or start > end
        """
        start_dt = _as_instant(start, "start")
        end_dt = _as_instant(end, "end")
        if start_dt and end_dt and start_dt > end_dt:
            raise ValidationError(f"start ({start_dt.isoformat()}) is after end ({end_dt.isoformat()})")

        types: list[EventType] = []
        for value in event_types or ():
            try:
                types.append(EventType(value))
            except ValueError as e:
                raise ValidationError(f"Unknown event type: {value!r}") from e

        sources = tuple(s for s in (source_ids or ()) if s)
        if text is not None and not isinstance(text, str):
            raise ValidationError("text must be a string")

        return cls(
            start=start_dt,
            end=end_dt,
            event_types=tuple(types),
            source_ids=sources,
            text=text or None,
        )

    def to_sql(self) -> tuple[str, dict[str, Any]]:
        """
        Render the WHERE clause body and its parameters.

        Returns:
            Tuple of (sql, params); sql is "TRUE" when no predicate applies
        """
        clauses: list[str] = []
        params: dict[str, Any] = {}

        if self.start is not None:
            clauses.append("timestamp >= $start")
            params["start"] = self.start.replace(tzinfo=None)
        if self.end is not None:
            clauses.append("timestamp <= $end")
            params["end"] = self.end.replace(tzinfo=None)
        if self.event_types:
            clauses.append("event_type IN (SELECT UNNEST($event_types))")
            params["event_types"] = [t.value for t in self.event_types]
        if self.source_ids:
            clauses.append("source_driver_id IN (SELECT UNNEST($source_ids))")
            params["source_ids"] = list(self.source_ids)
        if self.text:
            clauses.append("strpos(lower(data), lower($text)) > 0")
            params["text"] = self.text

        return (" AND ".join(clauses) if clauses else "TRUE"), params
