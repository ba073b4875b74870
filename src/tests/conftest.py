"""
Shared test fixtures for pytest
"""

import pytest

from lifelog.models import EventType, MusicData, SearchData
from lifelog.services.event_store import EventStore
from lifelog.services.logger import cleanup_logging, setup_logging
from tests.factories import make_event, utc


@pytest.fixture(autouse=True, scope="session")
def setup_test_logging(tmp_path_factory):
    """Setup logging for all tests"""
    setup_logging({"log_dir": str(tmp_path_factory.mktemp("logs")), "colored_output": False})
    yield
    cleanup_logging()


@pytest.fixture
def store():
    """Initialized in-memory EventStore"""
    s = EventStore(":memory:")
    s.init()
    yield s
    s.close()


@pytest.fixture
def sample_events():
    """Mixed events spread over three days"""
    return [
        make_event("m1", utc(2024, 1, 1, 9, 0), tags=["music", "Radiohead"]),
        make_event(
            "m2",
            utc(2024, 1, 1, 21, 30),
            data=MusicData(artist="Björk", track="Hyperballad", ms_played=320000),
            tags=["music", "Björk"],
        ),
        make_event(
            "m3",
            utc(2024, 1, 2, 8, 15),
            data=MusicData(artist="Radiohead", track="Reckoner", ms_played=290000),
            tags=["music", "Radiohead"],
        ),
        make_event("l1", utc(2024, 1, 2, 12, 0), source="google_takeout", event_type=EventType.LOCATION),
        make_event(
            "s1",
            utc(2024, 1, 3, 10, 0),
            source="google_takeout",
            event_type=EventType.SEARCH,
            data=SearchData(query="Radiohead tour dates", engine="google"),
        ),
        make_event("p1", utc(2024, 1, 3, 18, 45), source="apple_photos", event_type=EventType.PHOTO),
    ]


@pytest.fixture
def populated_store(store, sample_events):
    store.add_events(sample_events)
    return store
