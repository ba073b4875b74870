"""
Query Engine - Search, timeline and analytics over the event store

All reads go through EventStore.query() / query_frame() / count(); the engine only
translates request shapes into EventFilter values and, for analytics,
aggregates the returned frame with pandas.
"""

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

import pandas as pd

from lifelog.errors import QueryNotImplementedError, ValidationError
from lifelog.models import Event, EventType
from lifelog.services.event_store import EventFilter, EventStore, SortOrder

DATE_RANGES = {
    "all": None,
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "365d": timedelta(days=365),
}

BUCKETS = ["hour", "day", "week", "month"]


def _as_list(value: Any) -> list[str]:
    if value is None or value == "":
        return []
    if isinstance(value, Enum):
        return [value.value]
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple, set, frozenset)):
        return [v.value if isinstance(v, Enum) else str(v) for v in value]
    raise ValidationError(f"Expected a string or list, got {type(value).__name__}")


def _bucket_start(timestamps: pd.Series, bucket: str) -> pd.Series:
    if bucket == "hour":
        return timestamps.dt.floor("h")
    if bucket == "day":
        return timestamps.dt.floor("D")
    if bucket == "week":
        return timestamps.dt.to_period("W-SUN").dt.start_time
    return timestamps.dt.to_period("M").dt.start_time


def _iso_utc(value: pd.Timestamp) -> str:
    return value.to_pydatetime().replace(tzinfo=timezone.utc).isoformat()


class QueryEngine:
    """
    High-level read API used by the boundary layer.

    Usage:
        engine = QueryEngine(store)
        hits = engine.search("radiohead", limit=20)
        day = engine.get_timeline("2024-01-01T00:00:00Z", "2024-01-01T23:59:59Z")
        counts = engine.get_analytics({"type": "source_counts", "filters": {"dateRange": "30d"}})
    """

    def __init__(
        self,
        store: EventStore,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] | None = None,
        default_limit: int = 50,
        max_limit: int = 1000,
        default_top_limit: int = 10,
    ):
        """
        Args:
            store: Event store to read from
            logger: Component logger (defaults to lifelog.query)
            clock: Returns the current aware UTC time, for relative date ranges
            default_limit: search() limit when none is given
            max_limit: Upper bound for any caller-supplied limit
            default_top_limit: top_list length when none is given
        """
        self.store = store
        self.logger = logger or logging.getLogger("lifelog.query")
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.default_limit = default_limit
        self.max_limit = max_limit
        self.default_top_limit = default_top_limit

        self._analytics: dict[str, Callable[[Mapping[str, Any]], Any]] = {
            "music_counts": self._music_counts,
            "source_counts": self._source_counts,
            "total": self._total,
            "trend": self._trend,
            "top_list": self._top_list,
        }

    @property
    def analytics_types(self) -> list[str]:
        return list(self._analytics)

    # =========================================================================
    # Input normalization
    # =========================================================================

    def _check_limit(self, limit: Any, name: str = "limit") -> int:
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= self.max_limit:
            raise ValidationError(f"{name} must be an integer between 1 and {self.max_limit}, got {limit!r}")
        return limit

    def build_filter(self, filters: EventFilter | Mapping[str, Any] | None) -> EventFilter:
        """
        Build an EventFilter from a request mapping.

        Accepted keys: startDate, endDate, dateRange (all/24h/7d/30d/365d),
        eventType / eventTypes, sourceDriverId / sources. Explicit dates
        take precedence over dateRange.

        Raises:
            ValidationError: On malformed values
        """
        if filters is None:
            return EventFilter()
        if isinstance(filters, EventFilter):
            return filters
        if not isinstance(filters, Mapping):
            raise ValidationError(f"filters must be a mapping, got {type(filters).__name__}")

        start = filters.get("startDate")
        end = filters.get("endDate")

        date_range = filters.get("dateRange")
        if date_range is not None:
            if date_range not in DATE_RANGES:
                raise ValidationError(
                    f"Unknown dateRange {date_range!r}; expected one of {', '.join(DATE_RANGES)}"
                )
            window = DATE_RANGES[date_range]
            if window is not None and start is None and end is None:
                now = self._clock()
                start, end = now - window, now

        return EventFilter.build(
            start=start,
            end=end,
            event_types=_as_list(filters.get("eventTypes", filters.get("eventType"))),
            source_ids=_as_list(filters.get("sources", filters.get("sourceDriverId"))),
        )

    # =========================================================================
    # Search and timeline
    # =========================================================================

    def search(
        self,
        text: str,
        filters: EventFilter | Mapping[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        """
        Substring search over event payloads.

        Case-insensitive match against the serialized payload, AND the
        given filters. Newest first.

        Args:
            text: Substring to look for (empty matches everything)
            filters: EventFilter or request mapping (see build_filter)
            limit: 1..max_limit (default 50)

        Raises:
            ValidationError: On a bad limit or malformed filters
        """
        if not isinstance(text, str):
            raise ValidationError("search text must be a string")
        limit = self._check_limit(self.default_limit if limit is None else limit)

        event_filter = replace(self.build_filter(filters), text=text or None)
        self.logger.info(f'Performing search for: "{text}"')
        return self.store.query(event_filter, order=SortOrder.DESC, limit=limit)

    def get_timeline(self, start: str | datetime | None, end: str | datetime | None) -> list[Event]:
        """
        All events with start <= timestamp <= end, oldest first.

        Raises:
            ValidationError: If either bound is missing or malformed, or start > end
        """
        if start is None or end is None or start == "" or end == "":
            raise ValidationError("Both start and end are required")
        event_filter = EventFilter.build(start=start, end=end)
        self.logger.info(
            f"Fetching timeline from {event_filter.start.isoformat()} to {event_filter.end.isoformat()}"
        )
        return self.store.query(event_filter, order=SortOrder.ASC)

    # =========================================================================
    # Analytics
    # =========================================================================

    def get_analytics(self, config: Mapping[str, Any]) -> Any:
        """
        Run a named aggregate query.

        Args:
            config: {"type": <name>, "filters": {...}, ...type-specific keys}

        Raises:
            ValidationError: If type is missing or not a string, or options are malformed
            QueryNotImplementedError: If the type is not supported
        """
        if not isinstance(config, Mapping):
            raise ValidationError("Analytics config must be a mapping")
        query_type = config.get("type")
        if not isinstance(query_type, str) or not query_type:
            raise ValidationError('Analytics config is missing "type"')

        handler = self._analytics.get(query_type)
        if handler is None:
            raise QueryNotImplementedError(f"Analytics type '{query_type}' not implemented.")

        self.logger.debug(f"Running analytics query: {query_type}")
        return handler(config)

    def _frame(self, event_filter: EventFilter) -> pd.DataFrame:
        return self.store.query_frame(event_filter, order=SortOrder.ASC)

    def _counts_by_source(self, event_filter: EventFilter) -> list[dict[str, Any]]:
        frame = self._frame(event_filter)
        if frame.empty:
            return []
        counts = frame.groupby("source_driver_id").size().sort_values(ascending=False, kind="stable")
        return [{"sourceDriverId": source, "eventCount": int(count)} for source, count in counts.items()]

    def _music_counts(self, config: Mapping[str, Any]) -> list[dict[str, Any]]:
        event_filter = replace(
            self.build_filter(config.get("filters")),
            event_types=(EventType.MUSIC_LISTEN,),
        )
        return self._counts_by_source(event_filter)

    def _source_counts(self, config: Mapping[str, Any]) -> list[dict[str, Any]]:
        return self._counts_by_source(self.build_filter(config.get("filters")))

    def _total(self, config: Mapping[str, Any]) -> dict[str, Any]:
        count = self.store.count(self.build_filter(config.get("filters")))
        return {"label": config.get("label", "Total events"), "value": count}

    def _trend(self, config: Mapping[str, Any]) -> dict[str, Any]:
        bucket = config.get("bucket", "day")
        if bucket not in BUCKETS:
            raise ValidationError(f"Unknown bucket {bucket!r}; expected one of {', '.join(BUCKETS)}")

        streams = config.get("streams")
        if streams is None:
            streams = [{"label": config.get("label", "Events"), "filters": {}}]
        if not isinstance(streams, list) or not streams:
            raise ValidationError("trend requires a non-empty list of streams")

        base = config.get("filters") or {}
        if not isinstance(base, Mapping):
            raise ValidationError("filters must be a mapping")

        series = []
        for index, stream in enumerate(streams):
            if not isinstance(stream, Mapping):
                raise ValidationError(f"stream {index} must be a mapping")
            operation = stream.get("operation", "count")
            if operation != "count":
                raise QueryNotImplementedError(f"Stream operation '{operation}' not implemented.")

            stream_filters = stream.get("filters") or {}
            if not isinstance(stream_filters, Mapping):
                raise ValidationError(f"stream {index} filters must be a mapping")
            merged = {**base, **stream_filters}
            frame = self._frame(self.build_filter(merged))
            points = []
            if not frame.empty:
                counts = _bucket_start(frame["timestamp"], bucket).value_counts().sort_index()
                points = [{"bucket": _iso_utc(ts), "count": int(n)} for ts, n in counts.items()]
            series.append({"label": stream.get("label", f"Series {index + 1}"), "points": points})

        return {"bucket": bucket, "series": series}

    def _top_list(self, config: Mapping[str, Any]) -> list[dict[str, Any]]:
        field = config.get("field", "artist")
        if not isinstance(field, str) or not field:
            raise ValidationError("top_list field must be a non-empty string")
        limit = self._check_limit(config.get("limit", self.default_top_limit))

        frame = self._frame(self.build_filter(config.get("filters")))
        if frame.empty:
            return []

        if field == "tags":
            values = frame["tags"].map(json.loads).explode()
        else:
            values = frame["data"].map(lambda raw: json.loads(raw).get(field))
        values = values.dropna()
        scalar = values.map(lambda v: isinstance(v, (str, int, float)) and v != "").to_numpy(dtype=bool)
        values = values[scalar]
        if values.empty:
            return []

        counts = values.astype(str).value_counts()
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:limit]
        return [{"value": value, "count": int(count)} for value, count in ranked]
