"""
Event Store Module - Unified, append-only event index

Single writer for all persistence: every driver hands its batches to
EventStore, and every reader (query engine, status views) goes through
EventStore.query().
"""

from .filters import EventFilter, SortOrder
from .paths import EventStorePaths, get_data_dir
from .schema import EVENTS_TABLE, SCHEMA_VERSION
from .store import EventStore, StoreStats

__all__ = [
    "EVENTS_TABLE",
    "SCHEMA_VERSION",
    "EventFilter",
    "EventStore",
    "EventStorePaths",
    "SortOrder",
    "StoreStats",
    # Convenience path functions
    "get_data_dir",
]
