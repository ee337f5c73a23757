"""
SQLite Event Store - Append-only event log

The event store owns the events table. It provides:
- Append-only semantics (events never modified or deleted)
- A global, strictly increasing event id assigned at append
- Cursor-based reads ordered by (created_at, id), globally or per aggregate

Appends run on the connection of the caller's atomic scope, so an event is
committed together with the mutation that caused it or not at all. Reads
open their own connection and need no scope.

Fun fact: The append-only log pattern is one of the oldest database techniques,
dating back to the 1960s IMS database. Accountants got there even earlier!
"""

import sqlite3
from datetime import datetime

from userlog.kernel.errors import InvalidCommand, PersistenceError
from userlog.kernel.events import Event
from userlog.kernel.logging import get_logger
from userlog.kernel.metrics import events_appended_total, events_loaded_total
from userlog.kernel.storage import Database
from userlog.kernel.time import (
    RealTimeProvider,
    TimeProvider,
    format_timestamp,
    parse_timestamp,
)

logger = get_logger(__name__)

_COLUMNS = "id, aggregate_id, aggregate_kind, kind, version, created_at, payload"


class SQLiteEventStore:
    """
    SQLite-based event store with append-only semantics

    Schema (created by Database):
    - events table: append-only event log, id INTEGER PRIMARY KEY AUTOINCREMENT
    - Indices: (created_at, id) and (aggregate_id, created_at, id) for cursor reads
    """

    def __init__(
        self, database: Database, time_provider: TimeProvider | None = None
    ) -> None:
        """
        Initialize event store

        Args:
            database: Injected storage handle
            time_provider: Source of created_at timestamps (real time if None)
        """
        self.database = database
        self.time_provider = time_provider or RealTimeProvider()

    def append(
        self,
        aggregate_id: int,
        aggregate_kind: str,
        kind: str,
        version: str,
        payload: bytes,
        *,
        conn: sqlite3.Connection,
    ) -> Event:
        """
        Append one event inside the caller's atomic scope

        Args:
            aggregate_id: Id of the aggregate the event belongs to
            aggregate_kind: Type of aggregate (e.g. "user")
            kind: Event variant (e.g. "UserCreated")
            version: Payload schema version (e.g. "v1")
            payload: Encoded payload bytes
            conn: Connection of the open transaction

        Returns:
            The appended event with its assigned id and created_at

        Raises:
            PersistenceError: On any database error
        """
        created_at = self.time_provider.now()
        try:
            cursor = conn.execute(
                """
                INSERT INTO events (
                    aggregate_id, aggregate_kind, kind, version, created_at, payload
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    aggregate_id,
                    aggregate_kind,
                    kind,
                    version,
                    format_timestamp(created_at),
                    sqlite3.Binary(payload),
                ),
            )
        except (sqlite3.Error, OverflowError) as e:
            raise PersistenceError(f"Failed to append {kind} event: {e}") from e

        event = Event(
            id=cursor.lastrowid,
            aggregate_id=aggregate_id,
            aggregate_kind=aggregate_kind,
            kind=kind,
            version=version,
            created_at=parse_timestamp(format_timestamp(created_at)),
            payload=bytes(payload),
        )
        events_appended_total.labels(aggregate_kind=aggregate_kind, kind=kind).inc()
        logger.debug(
            "Event appended",
            event_id=event.id,
            aggregate_id=aggregate_id,
            kind=kind,
        )
        return event

    def query_global(self, since: datetime, limit: int) -> list[Event]:
        """
        Load events across all aggregates from a cursor

        Args:
            since: Only events with created_at >= since
            limit: Maximum number of events to return

        Returns:
            Events ordered by created_at, then id (empty if none match)
        """
        events = self._query("", (), since, limit)
        events_loaded_total.labels(scope="global").inc(len(events))
        return events

    def query_by_aggregate(
        self, aggregate_id: int, since: datetime, limit: int
    ) -> list[Event]:
        """
        Load one aggregate's events from a cursor

        Args:
            aggregate_id: Aggregate to filter by
            since: Only events with created_at >= since
            limit: Maximum number of events to return

        Returns:
            Events ordered by created_at, then id (empty if none match)
        """
        events = self._query("aggregate_id = ? AND", (aggregate_id,), since, limit)
        events_loaded_total.labels(scope="aggregate").inc(len(events))
        return events

    def _query(
        self, condition: str, params: tuple, since: datetime, limit: int
    ) -> list[Event]:
        if limit < 1:
            raise InvalidCommand(f"limit must be at least 1, got {limit}")

        query = f"""
            SELECT {_COLUMNS}
            FROM events
            WHERE {condition} created_at >= ?
            ORDER BY created_at ASC, id ASC
            LIMIT ?
        """
        with self.database.connect() as conn:
            try:
                cursor = conn.execute(query, (*params, format_timestamp(since), limit))
                rows = cursor.fetchall()
            except (sqlite3.Error, OverflowError) as e:
                raise PersistenceError(f"Failed to query events: {e}") from e
        return [self._row_to_event(row) for row in rows]

    def count_events(self) -> int:
        """Get total number of events in store"""
        with self.database.connect() as conn:
            try:
                return conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to count events: {e}") from e

    def _row_to_event(self, row: sqlite3.Row) -> Event:
        """Convert SQLite row to Event object"""
        return Event(
            id=row["id"],
            aggregate_id=row["aggregate_id"],
            aggregate_kind=row["aggregate_kind"],
            kind=row["kind"],
            version=row["version"],
            created_at=parse_timestamp(row["created_at"]),
            payload=bytes(row["payload"]),
        )
