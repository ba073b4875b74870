"""
Event Store - Append-only, deduplicating DuckDB index of Events

Features:
- Idempotent schema creation (table, indexes, schema version)
- Batch inserts in one transaction with insert-or-ignore on id
- One read primitive (query / query_frame) shared by all consumers
- Single connection guarded by one lock: one writer at a time, readers
  see a batch either fully or not at all
"""

import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import duckdb
import pandas as pd

from lifelog.errors import StorageError, ValidationError
from lifelog.models.event import Event, to_utc
from lifelog.services.event_store.filters import EventFilter, SortOrder
from lifelog.services.event_store.schema import (
    COLUMNS,
    CREATE_EVENTS_TABLE,
    CREATE_INDEXES,
    CREATE_META_TABLE,
    EVENTS_TABLE,
    META_TABLE,
    SCHEMA_VERSION,
    rows_to_table,
)

MEMORY_DB = ":memory:"


@dataclass
class StoreStats:
    """Aggregate counts over the whole log"""

    total_events: int = 0
    by_type: dict[str, int] = field(default_factory=dict)
    by_source: dict[str, int] = field(default_factory=dict)
    earliest: datetime | None = None
    latest: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalEvents": self.total_events,
            "byType": dict(self.by_type),
            "bySource": dict(self.by_source),
            "earliest": self.earliest.isoformat() if self.earliest else None,
            "latest": self.latest.isoformat() if self.latest else None,
        }


class EventStore:
    """
    DuckDB-backed event index.

    Usage:
        store = EventStore(paths.index_db)
        store.init()
        inserted = store.add_events(events)
        recent = store.query(EventFilter.build(text="radiohead"), limit=20)
        store.close()
    """

    def __init__(self, db_path: Path | str = MEMORY_DB, logger: logging.Logger | None = None):
        """
        Initialize EventStore (does not open the database yet).

        Args:
            db_path: Database file path, or ":memory:" for an in-process store
            logger: Component logger (defaults to this module's logger)
        """
        self._db_path = str(db_path)
        self._log = logger or logging.getLogger(__name__)
        self._conn: duckdb.DuckDBPyConnection | None = None
        self._lock = threading.RLock()
        self._initialized = False
        self._closed = False

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def is_initialized(self) -> bool:
        return self._initialized and not self._closed

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def init(self) -> None:
        """
        Ensure the schema exists. Safe to call repeatedly.

        Raises:
            StorageError: If the database cannot be opened or the schema
                cannot be created/verified
        """
        with self._lock:
            if self._closed:
                raise StorageError("Event store is closed")
            if self._initialized:
                return

            self._log.info(f"Initializing event index at {self._db_path}")
            try:
                if self._db_path != MEMORY_DB:
                    Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
                self._conn = duckdb.connect(self._db_path)

                self._conn.execute(CREATE_EVENTS_TABLE)
                self._conn.execute(CREATE_META_TABLE)
                for statement in CREATE_INDEXES:
                    self._conn.execute(statement)
                self._conn.execute(
                    f"INSERT OR IGNORE INTO {META_TABLE} VALUES ('schema_version', $version)",
                    {"version": SCHEMA_VERSION},
                )
                row = self._conn.execute(
                    f"SELECT value FROM {META_TABLE} WHERE key = 'schema_version'"
                ).fetchone()
            except (duckdb.Error, OSError) as e:
                self._log.error(f"Failed to initialize event index: {e}")
                self._discard_connection()
                raise StorageError(f"Failed to initialize event index at {self._db_path}: {e}") from e

            if row is None or row[0] != SCHEMA_VERSION:
                found = row[0] if row else None
                self._discard_connection()
                raise StorageError(
                    f"Unsupported schema version {found!r} (expected {SCHEMA_VERSION})"
                )

            self._initialized = True
            self._log.info("Event index schema ready")

    def close(self) -> None:
        """
        Release the connection. Every later operation raises StorageError.

        Safe to call multiple times.
        """
        with self._lock:
            if self._closed:
                return
            self._discard_connection()
            self._closed = True
            self._log.debug("Event store closed")

    def _discard_connection(self) -> None:
        if self._conn is not None:
            try:
                self._conn.close()
            except duckdb.Error as e:
                self._log.warning(f"Error closing event index connection: {e}")
            self._conn = None

    def _require_connection(self) -> duckdb.DuckDBPyConnection:
        """Must be called with lock held"""
        if self._closed:
            raise StorageError("Event store is closed")
        if not self._initialized or self._conn is None:
            raise StorageError("Event store is not initialized. Call init() first.")
        return self._conn

    def __enter__(self) -> "EventStore":
        self.init()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # =========================================================================
    # Writes
    # =========================================================================

    def add_events(self, events: Sequence[Event]) -> int:
        """
        Insert a batch of events in one transaction.

        Rows whose id already exists are left untouched. Duplicate ids
        inside the batch collapse to their first occurrence.

        Args:
            events: Ordered batch of Events (empty batch is a no-op)

        Returns:
            Number of rows actually inserted

        Raises:
            StorageError: If not initialized, closed, or the transaction fails
            ValidationError: If the batch contains something other than Events
        """
        with self._lock:
            conn = self._require_connection()
            if not events:
                return 0

            rows: list[dict[str, Any]] = []
            seen: set[str] = set()
            for event in events:
                if not isinstance(event, Event):
                    raise ValidationError(f"Expected Event, got {type(event).__name__}")
                if event.id in seen:
                    continue
                seen.add(event.id)
                rows.append(event.to_row())

            table = rows_to_table(rows)
            column_list = ", ".join(COLUMNS)

            try:
                conn.begin()
                before = conn.execute(f"SELECT COUNT(*) FROM {EVENTS_TABLE}").fetchone()[0]
                conn.register("incoming_events", table)
                try:
                    conn.execute(
                        f"INSERT OR IGNORE INTO {EVENTS_TABLE} ({column_list}) "
                        f"SELECT {column_list} FROM incoming_events"
                    )
                finally:
                    conn.unregister("incoming_events")
                after = conn.execute(f"SELECT COUNT(*) FROM {EVENTS_TABLE}").fetchone()[0]
                conn.commit()
            except duckdb.Error as e:
                self._rollback(conn)
                self._log.error(f"Error batch-inserting {len(rows)} events: {e}")
                raise StorageError(f"Failed to insert events: {e}") from e

            inserted = after - before
            self._log.info(
                f"Added {inserted} new events ({len(rows) - inserted} already indexed)"
            )
            return inserted

    def _rollback(self, conn: duckdb.DuckDBPyConnection) -> None:
        try:
            conn.rollback()
        except duckdb.Error as e:
            # No active transaction (begin itself failed)
            self._log.debug(f"Rollback skipped: {e}")

    # =========================================================================
    # Reads
    # =========================================================================

    def _build_select(
        self,
        filters: EventFilter | None,
        order: SortOrder | str,
        limit: int | None,
    ) -> tuple[str, dict[str, Any]]:
        try:
            order = SortOrder(order)
        except ValueError as e:
            raise ValidationError(f"order must be 'asc' or 'desc', got {order!r}") from e

        where_sql, params = (filters or EventFilter()).to_sql()
        direction = order.value.upper()
        sql = (
            f"SELECT {', '.join(COLUMNS)} FROM {EVENTS_TABLE} "
            f"WHERE {where_sql} "
            f"ORDER BY timestamp {direction}, id {direction}"
        )
        if limit is not None:
            if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
                raise ValidationError(f"limit must be a non-negative integer, got {limit!r}")
            sql += " LIMIT $limit"
            params["limit"] = limit
        return sql, params

    def query(
        self,
        filters: EventFilter | None = None,
        order: SortOrder | str = SortOrder.DESC,
        limit: int | None = None,
    ) -> list[Event]:
        """
        Read events matching filters.

        Args:
            filters: AND-combined predicates (None = all events)
            order: Timestamp ordering ("asc" or "desc")
            limit: Result cap (None = unbounded)

        Returns:
            Decoded Events
        """
        sql, params = self._build_select(filters, order, limit)
        with self._lock:
            conn = self._require_connection()
            try:
                cursor = conn.execute(sql, params) if params else conn.execute(sql)
                names = [d[0] for d in cursor.description]
                records = cursor.fetchall()
            except duckdb.Error as e:
                self._log.error(f"Event query failed: {e}")
                raise StorageError(f"Event query failed: {e}") from e
        return [Event.from_row(dict(zip(names, record))) for record in records]

    def query_frame(
        self,
        filters: EventFilter | None = None,
        order: SortOrder | str = SortOrder.ASC,
        limit: int | None = None,
    ) -> pd.DataFrame:
        """
        Same primitive as query(), returned as a pandas DataFrame.

        Columns are the storage columns; data and tags stay JSON text.
        """
        sql, params = self._build_select(filters, order, limit)
        with self._lock:
            conn = self._require_connection()
            try:
                return conn.execute(sql, params).df() if params else conn.execute(sql).df()
            except duckdb.Error as e:
                self._log.error(f"Event frame query failed: {e}")
                raise StorageError(f"Event query failed: {e}") from e

    def count(self, filters: EventFilter | None = None) -> int:
        """Number of events matching filters, counted in DuckDB"""
        where_sql, params = (filters or EventFilter()).to_sql()
        sql = f"SELECT COUNT(*) FROM {EVENTS_TABLE} WHERE {where_sql}"
        with self._lock:
            conn = self._require_connection()
            try:
                cursor = conn.execute(sql, params) if params else conn.execute(sql)
                return int(cursor.fetchone()[0])
            except duckdb.Error as e:
                self._log.error(f"Event count failed: {e}")
                raise StorageError(f"Event count failed: {e}") from e

    def get_stats(self) -> StoreStats:
        """
        Count events overall, per type and per source.

        Returns:
            StoreStats
        """
        with self._lock:
            conn = self._require_connection()
            try:
                total, earliest, latest = conn.execute(
                    f"SELECT COUNT(*), MIN(timestamp), MAX(timestamp) FROM {EVENTS_TABLE}"
                ).fetchone()
                by_type = conn.execute(
                    f"SELECT event_type, COUNT(*) FROM {EVENTS_TABLE} GROUP BY event_type"
                ).fetchall()
                by_source = conn.execute(
                    f"SELECT source_driver_id, COUNT(*) FROM {EVENTS_TABLE} GROUP BY source_driver_id"
                ).fetchall()
            except duckdb.Error as e:
                self._log.error(f"Failed to compute index stats: {e}")
                raise StorageError(f"Failed to compute index stats: {e}") from e

        return StoreStats(
            total_events=int(total),
            by_type={k: int(v) for k, v in by_type},
            by_source={k: int(v) for k, v in by_source},
            earliest=to_utc(earliest) if earliest else None,
            latest=to_utc(latest) if latest else None,
        )
