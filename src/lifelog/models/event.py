"""
Event Models - Normalized record type for the unified event log

Every driver converts its raw source records into Event instances.
Storage columns and wire names use the camelCase names of the dashboard API
(sourceDriverId, eventType, msPlayed, rawFileRef) through aliases.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator


class EventType(str, Enum):
    """Closed set of event kinds"""

    LOCATION = "LOCATION"
    SEARCH = "SEARCH"
    MUSIC_LISTEN = "MUSIC_LISTEN"
    PHOTO = "PHOTO"
    GENERIC = "GENERIC"


# ---------------------------------------------------------------------------
# Payload variants
# ---------------------------------------------------------------------------


class LocationData(BaseModel):
    """A single position fix."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    altitude: float | None = None
    accuracy: float | None = None
    activity: str | None = None


class SearchData(BaseModel):
    """A search query issued by the user."""

    model_config = ConfigDict(frozen=True)

    query: str
    url: str | None = None
    engine: str | None = None


class MusicData(BaseModel):
    """A single track play."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    artist: str
    track: str
    album: str | None = None
    ms_played: int = Field(default=0, ge=0, alias="msPlayed")


class GenericData(BaseModel):
    """Free-form payload. Extra keys are kept as-is."""

    model_config = ConfigDict(frozen=True, extra="allow")

    title: str
    content: str = ""


EventData = Union[LocationData, SearchData, MusicData, GenericData]

PAYLOAD_MODELS: dict[EventType, type[BaseModel]] = {
    EventType.LOCATION: LocationData,
    EventType.SEARCH: SearchData,
    EventType.MUSIC_LISTEN: MusicData,
    EventType.PHOTO: GenericData,
    EventType.GENERIC: GenericData,
}


def make_event_id(source: str, *parts: Any) -> str:
    """
    Build a deterministic event id from source-native identifying fields.

    Re-ingesting the same raw record always yields the same id.

    Args:
        source: Driver id
        *parts: Fields that identify the record in its source

    Returns:
        Id string of the form "<source>-<hex digest prefix>"
    """
    key = "\x1f".join("" if p is None else str(p) for p in parts)
    digest = hashlib.sha1(f"{source}\x1e{key}".encode("utf-8")).hexdigest()
    return f"{source}-{digest[:20]}"


def to_utc(value: datetime) -> datetime:
    """Return value as an aware UTC datetime (naive input is taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_instant(value: str | datetime) -> datetime:
    """Parse an ISO-8601 string (trailing Z allowed) into an aware UTC datetime."""
    if isinstance(value, datetime):
        return to_utc(value)
    if not isinstance(value, str):
        raise TypeError(f"expected an ISO-8601 string, got {type(value).__name__}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return to_utc(datetime.fromisoformat(text))


# ---------------------------------------------------------------------------
# Event
# ---------------------------------------------------------------------------


class Event(BaseModel):
    """
    One normalized, immutable record of a personal-data occurrence.

    The payload model is chosen by event_type; a plain mapping passed as
    data is validated into that model.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    timestamp: datetime
    source_driver_id: str = Field(alias="sourceDriverId", min_length=1)
    event_type: EventType = Field(alias="eventType")
    data: EventData
    tags: frozenset[str] = Field(default_factory=frozenset)
    raw_file_ref: str | None = Field(default=None, alias="rawFileRef")

    @model_validator(mode="before")
    @classmethod
    def _coerce_payload(cls, values: Any) -> Any:
        if not isinstance(values, Mapping):
            return values
        raw_type = values.get("event_type", values.get("eventType"))
        data = values.get("data")
        try:
            event_type = EventType(raw_type)
        except ValueError:
            return values
        if isinstance(data, Mapping):
            values = dict(values)
            values["data"] = PAYLOAD_MODELS[event_type].model_validate(data)
        return values

    @model_validator(mode="after")
    def _check_payload_shape(self) -> Event:
        expected = PAYLOAD_MODELS[self.event_type]
        if type(self.data) is not expected:
            raise ValueError(
                f"{self.event_type.value} events require {expected.__name__}, "
                f"got {type(self.data).__name__}"
            )
        return self

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, v: datetime) -> datetime:
        return to_utc(v)

    @field_serializer("tags")
    def _serialize_tags(self, tags: frozenset[str]) -> list[str]:
        return sorted(tags)

    # =========================================================================
    # Storage row conversion
    # =========================================================================

    def payload_json(self) -> str:
        """Serialized payload as stored in the data column"""
        return json.dumps(
            self.data.model_dump(by_alias=True, exclude_none=True),
            sort_keys=True,
            ensure_ascii=False,
        )

    def to_row(self) -> dict[str, Any]:
        """Convert to a storage row (timestamp as naive UTC, JSON text columns)"""
        return {
            "id": self.id,
            "source_driver_id": self.source_driver_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.replace(tzinfo=None),
            "data": self.payload_json(),
            "tags": json.dumps(sorted(self.tags), ensure_ascii=False),
            "raw_file_ref": self.raw_file_ref,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Event:
        """Decode a storage row back into an Event"""
        ts = row["timestamp"]
        if hasattr(ts, "to_pydatetime"):
            ts = ts.to_pydatetime()
        data = row["data"]
        tags = row.get("tags")
        return cls(
            id=row["id"],
            timestamp=ts,
            source_driver_id=row["source_driver_id"],
            event_type=row["event_type"],
            data=json.loads(data) if isinstance(data, str) else data,
            tags=json.loads(tags) if isinstance(tags, str) else (tags or []),
            raw_file_ref=row.get("raw_file_ref"),
        )
