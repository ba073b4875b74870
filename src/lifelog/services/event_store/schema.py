"""
Event Store Schema - Table layout, indexes and Arrow batch schema

Schema Version: 1.0.0
"""

from typing import Any

import pyarrow as pa

EVENTS_TABLE = "log_events"
META_TABLE = "store_meta"

# Schema version for migrations
SCHEMA_VERSION = "1.0.0"

CREATE_EVENTS_TABLE = f"""
    CREATE TABLE IF NOT EXISTS {EVENTS_TABLE} (
        id VARCHAR PRIMARY KEY,
        source_driver_id VARCHAR NOT NULL,
        event_type VARCHAR NOT NULL,
        timestamp TIMESTAMP NOT NULL,
        data VARCHAR NOT NULL,
        tags VARCHAR NOT NULL,
        raw_file_ref VARCHAR
    )
"""

CREATE_META_TABLE = f"""
    CREATE TABLE IF NOT EXISTS {META_TABLE} (
        key VARCHAR PRIMARY KEY,
        value VARCHAR NOT NULL
    )
"""

CREATE_INDEXES = [
    f"CREATE INDEX IF NOT EXISTS idx_events_source ON {EVENTS_TABLE}(source_driver_id)",
    f"CREATE INDEX IF NOT EXISTS idx_events_type ON {EVENTS_TABLE}(event_type)",
    f"CREATE INDEX IF NOT EXISTS idx_events_timestamp ON {EVENTS_TABLE}(timestamp)",
    # Composite index for typical timeline queries
    f"CREATE INDEX IF NOT EXISTS idx_timestamp_event ON {EVENTS_TABLE}(timestamp, event_type)",
]

COLUMNS = [
    "id",
    "source_driver_id",
    "event_type",
    "timestamp",
    "data",
    "tags",
    "raw_file_ref",
]

ARROW_SCHEMA = pa.schema(
    [
        ("id", pa.string()),
        ("source_driver_id", pa.string()),
        ("event_type", pa.string()),
        ("timestamp", pa.timestamp("us")),
        ("data", pa.string()),
        ("tags", pa.string()),
        ("raw_file_ref", pa.string()),
    ]
)


def rows_to_table(rows: list[dict[str, Any]]) -> pa.Table:
    """
    Convert storage rows (from Event.to_row()) to a PyArrow Table.

    Args:
        rows: List of row dicts

    Returns:
        PyArrow Table matching ARROW_SCHEMA
    """
    arrays = {}
    for field in ARROW_SCHEMA:
        values = [row.get(field.name) for row in rows]
        arrays[field.name] = pa.array(values, type=field.type)
    return pa.Table.from_pydict(arrays, schema=ARROW_SCHEMA)
