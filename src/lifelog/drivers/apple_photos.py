"""
Apple Photos driver - photo manifests from device backups

Each *.csv manifest has the columns filename, date_taken, latitude,
longitude, album. Coordinates and album are optional.
"""

import csv
from collections.abc import Iterable
from pathlib import Path

from lifelog.drivers.base import FileDriver, register_driver
from lifelog.models import DriverMetadata, Event, EventType, GenericData, make_event_id, parse_instant

REQUIRED_COLUMNS = {"filename", "date_taken"}


def _optional_float(value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    return float(value)


@register_driver("apple_photos")
class ApplePhotosDriver(FileDriver):
    metadata = DriverMetadata(
        id="apple_photos",
        name="Apple Photos",
        description="Indexes photo manifests exported from device backups.",
        is_automatic=False,
    )

    def iter_source_files(self) -> Iterable[Path]:
        return sorted(self.raw_dir.rglob("*.csv"))

    def parse_file(self, path: Path) -> list[Event]:
        events = []
        with open(path, newline="", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            missing = REQUIRED_COLUMNS - set(reader.fieldnames or [])
            if missing:
                raise ValueError(f"missing columns: {', '.join(sorted(missing))}")

            for line, row in enumerate(reader, start=2):
                try:
                    events.append(self._to_event(row, path))
                except (KeyError, TypeError, ValueError) as e:
                    self.warn(f"{path.name}:{line}: {e}")
        return events

    def _to_event(self, row: dict[str, str], path: Path) -> Event:
        filename = (row.get("filename") or "").strip()
        if not filename:
            raise ValueError("empty filename")
        timestamp = parse_instant(row["date_taken"])
        album = (row.get("album") or "").strip() or None

        extra = {}
        latitude = _optional_float(row.get("latitude"))
        longitude = _optional_float(row.get("longitude"))
        if latitude is not None and longitude is not None:
            extra = {"latitude": latitude, "longitude": longitude}
        if album:
            extra["album"] = album

        tags = {"photo"}
        if album:
            tags.add(album)

        return Event(
            id=make_event_id(self.id, filename, timestamp.isoformat()),
            timestamp=timestamp,
            source_driver_id=self.id,
            event_type=EventType.PHOTO,
            data=GenericData(title=filename, content=album or "", **extra),
            tags=frozenset(tags),
            raw_file_ref=str(path),
        )
