"""
Tests for QueryEngine search, timeline and analytics
"""

import pytest

from lifelog.core.query_engine import QueryEngine
from lifelog.errors import QueryNotImplementedError, ValidationError
from lifelog.models import EventType, MusicData
from tests.factories import make_event, utc


@pytest.fixture
def engine(populated_store):
    return QueryEngine(populated_store, clock=lambda: utc(2024, 1, 3, 20, 0))


class TestSearch:
    def test_substring_newest_first(self, engine):
        results = engine.search("radiohead")
        assert [e.id for e in results] == ["s1", "m3", "m1"]

    def test_limit_caps_results(self, engine):
        results = engine.search("radiohead", limit=2)
        assert [e.id for e in results] == ["s1", "m3"]

    @pytest.mark.parametrize("limit", [0, -5, 1001, "10", True])
    def test_limit_out_of_range(self, engine, limit):
        with pytest.raises(ValidationError):
            engine.search("x", limit=limit)

    def test_filters_are_anded(self, engine):
        results = engine.search("radiohead", filters={"eventTypes": ["MUSIC_LISTEN"]})
        assert [e.id for e in results] == ["m3", "m1"]

        results = engine.search(
            "radiohead",
            filters={"startDate": "2024-01-02T00:00:00Z", "sources": ["spotify"]},
        )
        assert [e.id for e in results] == ["m3"]

    def test_no_match(self, engine):
        assert engine.search("nirvana") == []

    def test_empty_text_matches_all(self, engine):
        assert len(engine.search("")) == 6

    def test_non_string_text(self, engine):
        with pytest.raises(ValidationError):
            engine.search(None)


class TestTimeline:
    def test_inclusive_range_ascending(self, engine):
        results = engine.get_timeline("2024-01-01T21:30:00Z", "2024-01-02T12:00:00Z")
        assert [e.id for e in results] == ["m2", "m3", "l1"]

    def test_bounds_match_exact_timestamps(self, engine):
        results = engine.get_timeline(utc(2024, 1, 3, 18, 45), utc(2024, 1, 3, 18, 45))
        assert [e.id for e in results] == ["p1"]

    def test_empty_range(self, engine):
        assert engine.get_timeline("2023-01-01T00:00:00Z", "2023-12-31T23:59:59Z") == []

    @pytest.mark.parametrize(
        "start,end",
        [
            (None, "2024-01-02T00:00:00Z"),
            ("2024-01-01T00:00:00Z", None),
            ("", "2024-01-02T00:00:00Z"),
            ("not a date", "2024-01-02T00:00:00Z"),
            ("2024-01-03T00:00:00Z", "2024-01-01T00:00:00Z"),
        ],
    )
    def test_invalid_ranges(self, engine, start, end):
        with pytest.raises(ValidationError):
            engine.get_timeline(start, end)


class TestAnalyticsDispatch:
    def test_missing_type(self, engine):
        with pytest.raises(ValidationError):
            engine.get_analytics({})

    def test_non_string_type(self, engine):
        with pytest.raises(ValidationError):
            engine.get_analytics({"type": 7})

    def test_unknown_type(self, engine):
        with pytest.raises(QueryNotImplementedError) as exc_info:
            engine.get_analytics({"type": "heatmap"})
        assert isinstance(exc_info.value, NotImplementedError)
        assert "heatmap" in str(exc_info.value)

    def test_supported_types(self, engine):
        assert set(engine.analytics_types) == {"music_counts", "source_counts", "total", "trend", "top_list"}


class TestAnalytics:
    def test_music_counts(self, engine, populated_store):
        populated_store.add_events(
            [make_event("x1", utc(2024, 1, 2), source="lastfm", data=MusicData(artist="A", track="B"))]
        )
        assert engine.get_analytics({"type": "music_counts"}) == [
            {"sourceDriverId": "spotify", "eventCount": 3},
            {"sourceDriverId": "lastfm", "eventCount": 1},
        ]

    def test_source_counts_with_type_filter(self, engine):
        result = engine.get_analytics(
            {"type": "source_counts", "filters": {"eventType": ["LOCATION", "PHOTO"]}}
        )
        assert result == [
            {"sourceDriverId": "apple_photos", "eventCount": 1},
            {"sourceDriverId": "google_takeout", "eventCount": 1},
        ] or result == [
            {"sourceDriverId": "google_takeout", "eventCount": 1},
            {"sourceDriverId": "apple_photos", "eventCount": 1},
        ]

    def test_total_with_date_range(self, engine):
        # Clock is 2024-01-03 20:00, so 24h covers s1 and p1
        assert engine.get_analytics({"type": "total", "filters": {"dateRange": "24h"}})["value"] == 2
        assert engine.get_analytics({"type": "total", "filters": {"dateRange": "all"}})["value"] == 6

    def test_unknown_date_range(self, engine):
        with pytest.raises(ValidationError):
            engine.get_analytics({"type": "total", "filters": {"dateRange": "fortnight"}})

    def test_explicit_dates_win_over_date_range(self, engine):
        result = engine.get_analytics(
            {
                "type": "total",
                "filters": {
                    "dateRange": "24h",
                    "startDate": "2024-01-01T00:00:00Z",
                    "endDate": "2024-01-01T23:59:59Z",
                },
            }
        )
        assert result["value"] == 2

    def test_trend_daily_streams(self, engine):
        result = engine.get_analytics(
            {
                "type": "trend",
                "bucket": "day",
                "streams": [
                    {"label": "Music", "filters": {"eventType": "MUSIC_LISTEN"}},
                    {"label": "Google", "filters": {"sourceDriverId": "google_takeout"}},
                ],
            }
        )
        assert result["bucket"] == "day"
        music, google = result["series"]
        assert music["label"] == "Music"
        assert music["points"] == [
            {"bucket": "2024-01-01T00:00:00+00:00", "count": 2},
            {"bucket": "2024-01-02T00:00:00+00:00", "count": 1},
        ]
        assert google["points"] == [
            {"bucket": "2024-01-02T00:00:00+00:00", "count": 1},
            {"bucket": "2024-01-03T00:00:00+00:00", "count": 1},
        ]

    def test_trend_monthly_single_series(self, engine):
        result = engine.get_analytics({"type": "trend", "bucket": "month"})
        assert result["series"][0]["points"] == [{"bucket": "2024-01-01T00:00:00+00:00", "count": 6}]

    def test_trend_empty_stream(self, engine):
        result = engine.get_analytics(
            {"type": "trend", "streams": [{"label": "None", "filters": {"sourceDriverId": "nobody"}}]}
        )
        assert result["series"][0]["points"] == []

    def test_trend_bad_bucket(self, engine):
        with pytest.raises(ValidationError):
            engine.get_analytics({"type": "trend", "bucket": "fortnight"})

    def test_trend_unsupported_operation(self, engine):
        with pytest.raises(QueryNotImplementedError):
            engine.get_analytics({"type": "trend", "streams": [{"label": "x", "operation": "median"}]})

    def test_trend_stream_filters_must_be_mapping(self, engine):
        with pytest.raises(ValidationError):
            engine.get_analytics({"type": "trend", "streams": [{"filters": ["spotify"]}]})
        with pytest.raises(ValidationError):
            engine.get_analytics({"type": "trend", "streams": [{"filters": "spotify"}]})

    def test_total_counts_in_store(self, engine, monkeypatch):
        def no_frames(*args, **kwargs):
            raise AssertionError("total must not load a frame")

        monkeypatch.setattr(engine.store, "query_frame", no_frames)
        result = engine.get_analytics({"type": "total", "filters": {"sourceDriverId": "spotify"}})
        assert result == {"label": "Total events", "value": 3}

    def test_top_artists(self, engine):
        result = engine.get_analytics({"type": "top_list", "filters": {"eventType": "MUSIC_LISTEN"}})
        assert result == [{"value": "Radiohead", "count": 2}, {"value": "Björk", "count": 1}]

    def test_top_list_limit_and_field(self, engine):
        result = engine.get_analytics({"type": "top_list", "field": "track", "limit": 1})
        assert len(result) == 1

    def test_top_tags(self, engine):
        result = engine.get_analytics({"type": "top_list", "field": "tags", "limit": 2})
        assert result[0] == {"value": "music", "count": 3}

    def test_top_list_missing_field_gives_empty(self, engine):
        assert engine.get_analytics({"type": "top_list", "field": "nonexistent"}) == []

    def test_top_list_bad_limit(self, engine):
        with pytest.raises(ValidationError):
            engine.get_analytics({"type": "top_list", "limit": 0})

    def test_filter_values_validated(self, engine):
        with pytest.raises(ValidationError):
            engine.get_analytics({"type": "total", "filters": {"eventType": "PODCAST"}})
        with pytest.raises(ValidationError):
            engine.get_analytics({"type": "total", "filters": "spotify"})


def test_location_type_filter_via_enum(engine):
    results = engine.search("", filters={"eventTypes": [EventType.LOCATION]})
    assert [e.id for e in results] == ["l1"]


def test_single_enum_type_filter(engine):
    results = engine.search("", filters={"eventType": EventType.SEARCH})
    assert [e.id for e in results] == ["s1"]
