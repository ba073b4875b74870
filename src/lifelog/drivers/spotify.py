"""
Spotify driver - parses "My Data" streaming history exports

Two export flavors are understood:
- Extended streaming history: endsong_*.json / Streaming_History_Audio_*.json
  (ts, master_metadata_track_name, master_metadata_album_artist_name,
  master_metadata_album_album_name, ms_played)
- Account data: StreamingHistory*.json (endTime, artistName, trackName, msPlayed)
"""

import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from lifelog.drivers.base import FileDriver, register_driver
from lifelog.models import DriverMetadata, Event, EventType, MusicData, make_event_id, parse_instant

EXTENDED_PATTERNS = ["endsong_*.json", "Streaming_History_Audio_*.json"]
BASIC_PATTERN = "StreamingHistory*.json"


@register_driver("spotify")
class SpotifyDriver(FileDriver):
    metadata = DriverMetadata(
        id="spotify",
        name="Spotify",
        description='Parses "MyData" Spotify exports.',
        is_automatic=True,
    )

    def iter_source_files(self) -> Iterable[Path]:
        seen: set[Path] = set()
        for pattern in [*EXTENDED_PATTERNS, BASIC_PATTERN]:
            for path in sorted(self.raw_dir.rglob(pattern)):
                if path not in seen:
                    seen.add(path)
                    yield path

    def parse_file(self, path: Path) -> list[Event]:
        with open(path, encoding="utf-8") as f:
            records = json.load(f)
        if not isinstance(records, list):
            raise ValueError("expected a JSON array of plays")

        extended = not path.name.startswith("StreamingHistory")
        events = []
        skipped = 0
        for index, record in enumerate(records):
            try:
                if not isinstance(record, dict):
                    raise TypeError(f"expected an object, got {type(record).__name__}")
                event = self._to_event(record, path, extended)
            except (KeyError, TypeError, ValueError) as e:
                self.warn(f"{path.name}[{index}]: {e}")
                continue
            if event is None:
                skipped += 1
                continue
            events.append(event)

        if skipped:
            self.logger.debug(f"{path.name}: skipped {skipped} non-track entries")
        return events

    def _to_event(self, record: dict[str, Any], path: Path, extended: bool) -> Event | None:
        if extended:
            track = record.get("master_metadata_track_name")
            artist = record.get("master_metadata_album_artist_name")
            album = record.get("master_metadata_album_album_name")
            played = record.get("ms_played", 0)
            ts = record["ts"]
        else:
            track = record.get("trackName")
            artist = record.get("artistName")
            album = None
            played = record.get("msPlayed", 0)
            ts = record["endTime"]

        # Podcast episodes and videos carry no track/artist
        if not track or not artist:
            return None

        timestamp = parse_instant(ts)
        return Event(
            id=make_event_id(self.id, timestamp.isoformat(), track, artist),
            timestamp=timestamp,
            source_driver_id=self.id,
            event_type=EventType.MUSIC_LISTEN,
            data=MusicData(artist=artist, track=track, album=album, ms_played=int(played or 0)),
            tags=frozenset({"music", artist}),
            raw_file_ref=str(path),
        )
