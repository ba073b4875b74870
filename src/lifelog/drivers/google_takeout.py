"""
Google Takeout driver - location history and search activity

Reads, relative to the driver's raw directory (or a nested Takeout/ folder):
- Location History/Records.json -> LOCATION events
- My Activity/Search/MyActivity.json -> SEARCH events
"""

import json
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from lifelog.drivers.base import FileDriver, register_driver
from lifelog.models import (
    DriverMetadata,
    Event,
    EventType,
    LocationData,
    SearchData,
    make_event_id,
    parse_instant,
)

LOCATION_FILE = Path("Location History") / "Records.json"
SEARCH_FILE = Path("My Activity") / "Search" / "MyActivity.json"

SEARCH_PREFIX = "Searched for "


def _location_timestamp(record: dict[str, Any]) -> datetime:
    if "timestamp" in record:
        return parse_instant(record["timestamp"])
    if "timestampMs" in record:
        return datetime.fromtimestamp(int(record["timestampMs"]) / 1000, tz=timezone.utc)
    raise KeyError("timestamp")


def _activity_type(record: dict[str, Any]) -> str | None:
    activities = record.get("activity")
    if not isinstance(activities, list) or not activities or not isinstance(activities[0], dict):
        return None
    candidates = activities[0].get("activity")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return None
    return candidates[0].get("type")


@register_driver("google_takeout")
class GoogleTakeoutDriver(FileDriver):
    metadata = DriverMetadata(
        id="google_takeout",
        name="Google Takeout",
        description="Parses location history and search activity from Google Takeout archives.",
        is_automatic=True,
    )

    def iter_source_files(self) -> Iterable[Path]:
        for root in [self.raw_dir, self.raw_dir / "Takeout"]:
            for relative in [LOCATION_FILE, SEARCH_FILE]:
                path = root / relative
                if path.is_file():
                    yield path

    def parse_file(self, path: Path) -> list[Event]:
        with open(path, encoding="utf-8") as f:
            payload = json.load(f)

        if path.name == LOCATION_FILE.name:
            if not isinstance(payload, dict) or not isinstance(payload.get("locations"), list):
                raise ValueError("expected an object with a 'locations' array")
            return self._collect(payload["locations"], path, self._location_event)

        if not isinstance(payload, list):
            raise ValueError("expected a JSON array of activity items")
        return self._collect(payload, path, self._search_event)

    def _collect(self, records: list, path: Path, convert) -> list[Event]:
        events = []
        for index, record in enumerate(records):
            try:
                if not isinstance(record, dict):
                    raise TypeError(f"expected an object, got {type(record).__name__}")
                event = convert(record, path)
            except (KeyError, TypeError, ValueError) as e:
                self.warn(f"{path.name}[{index}]: {e}")
                continue
            if event is not None:
                events.append(event)
        return events

    def _location_event(self, record: dict[str, Any], path: Path) -> Event:
        timestamp = _location_timestamp(record)
        lat_e7 = int(record["latitudeE7"])
        lon_e7 = int(record["longitudeE7"])
        return Event(
            id=make_event_id(self.id, "location", timestamp.isoformat(), lat_e7, lon_e7),
            timestamp=timestamp,
            source_driver_id=self.id,
            event_type=EventType.LOCATION,
            data=LocationData(
                latitude=lat_e7 / 1e7,
                longitude=lon_e7 / 1e7,
                altitude=record.get("altitude"),
                accuracy=record.get("accuracy"),
                activity=_activity_type(record),
            ),
            tags=frozenset({"location"}),
            raw_file_ref=str(path),
        )

    def _search_event(self, record: dict[str, Any], path: Path) -> Event | None:
        title = record["title"]
        if not isinstance(title, str):
            raise TypeError(f"title must be a string, got {type(title).__name__}")
        # Visits and other activity share the file; only searches are indexed
        if not title.startswith(SEARCH_PREFIX):
            return None
        timestamp = parse_instant(record["time"])
        query = title[len(SEARCH_PREFIX):]
        return Event(
            id=make_event_id(self.id, "search", timestamp.isoformat(), query),
            timestamp=timestamp,
            source_driver_id=self.id,
            event_type=EventType.SEARCH,
            data=SearchData(query=query, url=record.get("titleUrl"), engine="google"),
            tags=frozenset({"search"}),
            raw_file_ref=str(path),
        )
