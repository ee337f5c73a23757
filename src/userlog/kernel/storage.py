"""
Database - the injected storage handle

Everything that touches SQLite gets a Database passed in at construction:
the repository, the event store and the transaction coordinator. It owns
three things:

- the schema (users + events tables)
- short-lived read connections
- the atomic scope used by write commands

SQLite runs in WAL mode so readers always see the last committed state and
never a half-written transaction.

Fun fact: SQLite's AUTOINCREMENT keyword exists for exactly one guarantee:
a rowid is never reused, even after the highest row is deleted. Without it,
SQLite is free to hand out max(rowid)+1 again.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from userlog.kernel.errors import PersistenceError
from userlog.kernel.logging import get_logger
from userlog.kernel.metrics import transactions_total
from userlog.kernel.retry import retry_on_sqlite_lock

logger = get_logger(__name__)


SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        credential_secret TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        aggregate_id INTEGER NOT NULL REFERENCES users(id),
        aggregate_kind TEXT NOT NULL,
        kind TEXT NOT NULL,
        version TEXT NOT NULL,
        created_at TEXT NOT NULL,
        payload BLOB NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_events_time ON events(created_at, id)",
    "CREATE INDEX IF NOT EXISTS idx_events_aggregate "
    "ON events(aggregate_id, created_at, id)",
)


class Database:
    """
    SQLite storage handle

    Connections are opened per operation and closed when the operation ends,
    so one Database can be shared by request threads without sharing a
    connection between them.
    """

    def __init__(self, db_path: str | Path, busy_timeout_ms: int = 5000) -> None:
        """
        Initialize the handle and make sure the schema exists

        Args:
            db_path: Path to SQLite database file
            busy_timeout_ms: How long to wait on a locked database

        Raises:
            PersistenceError: If the database cannot be opened or initialized
        """
        self.db_path = Path(db_path)
        self.busy_timeout_ms = busy_timeout_ms
        try:
            self._initialize_schema()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to initialize database {self.db_path}: {e}") from e
        logger.debug("Database ready", db_path=str(self.db_path))

    @retry_on_sqlite_lock()
    def _initialize_schema(self) -> None:
        """Create tables and indices if they don't exist"""
        conn = self._open()
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            with conn:
                for statement in SCHEMA:
                    conn.execute(statement)
        finally:
            conn.close()

    def _open(self) -> sqlite3.Connection:
        # isolation_level=None: transactions are started explicitly by transaction()
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """
        Context manager for a read connection

        Raises:
            PersistenceError: If the connection cannot be opened
        """
        try:
            conn = self._open()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to connect to {self.db_path}: {e}") from e
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Atomic scope for a write command

        BEGIN IMMEDIATE takes the write lock up front, so concurrent writers
        queue instead of interleaving, and autoincrement ids follow commit
        order. The body commits only if it finishes normally; any exception,
        including KeyboardInterrupt, rolls back before propagating.

        Raises:
            PersistenceError: If begin, commit or rollback fails
        """
        with self.connect() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to begin transaction: {e}") from e

            try:
                yield conn
            except BaseException:
                self._rollback(conn)
                raise

            try:
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                self._rollback(conn)
                raise PersistenceError(f"Failed to commit transaction: {e}") from e
            transactions_total.labels(outcome="committed").inc()

    def _rollback(self, conn: sqlite3.Connection) -> None:
        transactions_total.labels(outcome="rolled_back").inc()
        if not conn.in_transaction:
            return
        try:
            conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to roll back transaction: {e}") from e
