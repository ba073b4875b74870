"""
Tests for the Apple Photos manifest driver
"""

import pytest

from lifelog.drivers import ApplePhotosDriver
from lifelog.models import EventType, GenericData

MANIFEST = """filename,date_taken,latitude,longitude,album
IMG_0001.HEIC,2023-07-14T18:02:11Z,48.8584,2.2945,Paris
IMG_0002.HEIC,2023-07-15T09:00:00+02:00,,,
IMG_0003.HEIC,someday,,,
"""


@pytest.fixture
def driver(store, tmp_path):
    d = ApplePhotosDriver(store, tmp_path / "raw")
    d.init()
    return d


def test_manual_driver():
    assert ApplePhotosDriver.metadata.is_automatic is False


def test_manifest_rows_become_photo_events(driver):
    (driver.raw_dir / "manifest.csv").write_text(MANIFEST, encoding="utf-8")
    events = driver.parse_data()

    assert len(events) == 2
    paris, plain = events
    assert paris.event_type == EventType.PHOTO
    assert isinstance(paris.data, GenericData)
    assert paris.data.title == "IMG_0001.HEIC"
    assert paris.data.model_dump()["latitude"] == pytest.approx(48.8584)
    assert paris.tags == frozenset({"photo", "Paris"})
    assert plain.timestamp.hour == 7
    assert "latitude" not in plain.data.model_dump()

    assert len(driver._warnings) == 1
    assert "manifest.csv:4" in driver._warnings[0]


def test_missing_columns_skip_file(driver):
    (driver.raw_dir / "other.csv").write_text("name,when\nx,y\n", encoding="utf-8")
    assert driver.parse_data() == []
    assert "missing columns" in driver._warnings[0]


def test_run_fetch_counts_inserted(driver):
    (driver.raw_dir / "manifest.csv").write_text(MANIFEST, encoding="utf-8")
    result = driver.run_fetch()
    assert result.new_events == 2
    assert len(result.warnings) == 1


def test_short_row_is_a_warning(driver):
    (driver.raw_dir / "manifest.csv").write_text("filename,date_taken\nIMG_0009.HEIC\n", encoding="utf-8")
    assert driver.parse_data() == []
    assert "manifest.csv:2" in driver._warnings[0]
