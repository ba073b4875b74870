"""
Models Module - Event log record types and driver descriptors
"""

from .driver import DriverMetadata, DriverStatus, FetchResult, Health
from .event import (
    Event,
    EventType,
    GenericData,
    LocationData,
    MusicData,
    SearchData,
    make_event_id,
    parse_instant,
    to_utc,
)

__all__ = [
    "DriverMetadata",
    "DriverStatus",
    "Event",
    "EventType",
    "FetchResult",
    "GenericData",
    "Health",
    "LocationData",
    "MusicData",
    "SearchData",
    "make_event_id",
    "parse_instant",
    "to_utc",
]
