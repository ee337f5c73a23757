"""
User Repository - persisted state of the user aggregate

The repository owns the users table. Writes take the connection of the
coordinator's atomic scope; reads may pass one too (to see uncommitted
state inside that scope) or let the repository open its own.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

from userlog.kernel.errors import PersistenceError, UpdateConflict, UserNotFound
from userlog.kernel.logging import get_logger
from userlog.kernel.metrics import update_conflicts_total
from userlog.kernel.storage import Database
from userlog.kernel.time import (
    RealTimeProvider,
    TimeProvider,
    format_timestamp,
    parse_timestamp,
    to_utc,
)
from userlog.users.models import User

logger = get_logger(__name__)

_COLUMNS = "id, name, credential_secret, created_at, updated_at"


class UserRepository:
    """SQLite-backed store of current user state"""

    def __init__(
        self, database: Database, time_provider: TimeProvider | None = None
    ) -> None:
        """
        Initialize repository

        Args:
            database: Injected storage handle
            time_provider: Source of created_at/updated_at (real time if None)
        """
        self.database = database
        self.time_provider = time_provider or RealTimeProvider()

    @contextmanager
    def _use(self, conn: sqlite3.Connection | None) -> Iterator[sqlite3.Connection]:
        """Use the caller's connection, or open a short-lived one"""
        if conn is not None:
            yield conn
            return
        with self.database.connect() as own:
            yield own

    def create(
        self, name: str, credential_secret: str, *, conn: sqlite3.Connection
    ) -> User:
        """
        Insert a new user

        Args:
            name: Display name
            credential_secret: Secret to store
            conn: Connection of the open transaction

        Returns:
            The created user with its assigned id

        Raises:
            PersistenceError: On any database error
        """
        now = format_timestamp(self.time_provider.now())
        try:
            cursor = conn.execute(
                """
                INSERT INTO users (name, credential_secret, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (name, credential_secret, now, now),
            )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to create user: {e}") from e

        logger.debug("User row inserted", user_id=cursor.lastrowid)
        return User(
            id=cursor.lastrowid,
            name=name,
            credential_secret=credential_secret,
            created_at=parse_timestamp(now),
            updated_at=parse_timestamp(now),
        )

    def update(
        self,
        user_id: int,
        name: str,
        credential_secret: str,
        *,
        conn: sqlite3.Connection,
        expected_updated_at: datetime | None = None,
    ) -> User:
        """
        Overwrite a user's name and secret

        updated_at becomes max(now, previous updated_at) so it never moves
        backwards, even if the clock does.

        Args:
            user_id: User to update
            name: New display name
            credential_secret: New secret (may equal the old one)
            conn: Connection of the open transaction
            expected_updated_at: If given, the stored updated_at must match

        Returns:
            The user as stored after the update

        Raises:
            UserNotFound: If the user doesn't exist
            UpdateConflict: If expected_updated_at doesn't match
            PersistenceError: On any database error
        """
        current = self.get_by_id(user_id, conn=conn)

        if expected_updated_at is not None and to_utc(expected_updated_at) != current.updated_at:
            update_conflicts_total.inc()
            raise UpdateConflict(user_id, to_utc(expected_updated_at), current.updated_at)

        updated_at = max(to_utc(self.time_provider.now()), current.updated_at)
        try:
            conn.execute(
                """
                UPDATE users
                SET name = ?, credential_secret = ?, updated_at = ?
                WHERE id = ?
                """,
                (name, credential_secret, format_timestamp(updated_at), user_id),
            )
        except (sqlite3.Error, OverflowError) as e:
            raise PersistenceError(f"Failed to update user {user_id}: {e}") from e

        return self.get_by_id(user_id, conn=conn)

    def get_by_id(self, user_id: int, *, conn: sqlite3.Connection | None = None) -> User:
        """
        Load one user

        Raises:
            UserNotFound: If the user doesn't exist
            PersistenceError: On any database error
        """
        with self._use(conn) as c:
            try:
                row = c.execute(
                    f"SELECT {_COLUMNS} FROM users WHERE id = ?", (user_id,)
                ).fetchone()
            except (sqlite3.Error, OverflowError) as e:
                raise PersistenceError(f"Failed to load user {user_id}: {e}") from e

        if row is None:
            raise UserNotFound(user_id)
        return self._row_to_user(row)

    def list_all(self, *, conn: sqlite3.Connection | None = None) -> list[User]:
        """
        Load every user, ordered by id

        Returns:
            All users (empty list if there are none)
        """
        with self._use(conn) as c:
            try:
                rows = c.execute(f"SELECT {_COLUMNS} FROM users ORDER BY id ASC").fetchall()
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to list users: {e}") from e
        return [self._row_to_user(row) for row in rows]

    def count(self) -> int:
        """Get total number of users"""
        with self.database.connect() as conn:
            try:
                return conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to count users: {e}") from e

    def _row_to_user(self, row: sqlite3.Row) -> User:
        """Convert SQLite row to User object"""
        return User(
            id=row["id"],
            name=row["name"],
            credential_secret=row["credential_secret"],
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )
