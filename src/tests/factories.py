"""
Test data builders shared across the suite
"""

import threading
from datetime import datetime, timezone

from lifelog.drivers import Driver
from lifelog.errors import DriverError
from lifelog.models import (
    DriverMetadata,
    DriverStatus,
    Event,
    EventType,
    FetchResult,
    GenericData,
    LocationData,
    MusicData,
    SearchData,
)
from lifelog.services.event_store import EventStore


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def make_event(
    event_id: str,
    timestamp: datetime,
    source: str = "spotify",
    event_type: EventType = EventType.MUSIC_LISTEN,
    data=None,
    tags=(),
) -> Event:
    if data is None:
        data = {
            EventType.MUSIC_LISTEN: MusicData(artist="Radiohead", track="Airbag", ms_played=1000),
            EventType.LOCATION: LocationData(latitude=52.37, longitude=4.89),
            EventType.SEARCH: SearchData(query="python duckdb"),
            EventType.PHOTO: GenericData(title="IMG_0001.JPG"),
            EventType.GENERIC: GenericData(title="note"),
        }[event_type]
    return Event(
        id=event_id,
        timestamp=timestamp,
        source_driver_id=source,
        event_type=event_type,
        data=data,
        tags=frozenset(tags),
    )


class FakeDriver(Driver):
    """In-memory driver with controllable failures and blocking"""

    def __init__(
        self,
        driver_id: str = "fake",
        store: EventStore | None = None,
        events=(),
        automatic: bool = True,
        schedule: str | None = None,
        fail_init: bool = False,
        fetch_error: Exception | None = None,
        gate: threading.Event | None = None,
        name: str | None = None,
    ):
        self.metadata = DriverMetadata(
            id=driver_id,
            name=name or driver_id.title(),
            is_automatic=automatic,
            schedule=schedule,
        )
        self.store = store
        self.events = list(events)
        self.fail_init = fail_init
        self.fetch_error = fetch_error
        self.gate = gate
        self.started = threading.Event()
        self.finished = threading.Event()
        self.calls = 0
        self.initialized = False

    def init(self):
        if self.fail_init:
            raise DriverError(self.metadata.id, "mount point missing")
        self.initialized = True

    def parse_data(self):
        return list(self.events)

    def run_fetch(self):
        self.calls += 1
        self.started.set()
        try:
            if self.gate is not None:
                self.gate.wait(5)
            if self.fetch_error is not None:
                raise self.fetch_error
            inserted = self.store.add_events(self.events) if self.store and self.events else 0
            return FetchResult(new_events=inserted, warnings=[])
        finally:
            self.finished.set()

    def get_status(self):
        return DriverStatus(message="fake driver")
