"""
Custom exceptions for userlog

A small, explicit hierarchy lets callers tell "you asked for something
that isn't there" apart from "the database let us down", without parsing
error strings.

Fun fact: SQLite's own error codes fit in a single byte for the primary
code - extended result codes were only added in version 3.3.8 (2006).
"""

from datetime import datetime


class UserLogError(Exception):
    """Base exception for all userlog errors"""

    pass


class InvalidCommand(UserLogError):
    """
    Raised when command or query input is malformed

    The request layer validates commands before they reach the core, so
    inside the core this mostly guards query arguments (e.g. limit < 1).
    """

    def __init__(self, message: str, errors: list[dict] | None = None) -> None:
        self.errors = errors or []
        super().__init__(message)


class NotFound(UserLogError):
    """Base class for missing-entity errors"""

    pass


class UserNotFound(NotFound):
    """Raised when user does not exist"""

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class PersistenceError(UserLogError):
    """
    Raised on any storage-layer failure

    Connection problems, constraint violations and begin/commit/rollback
    failures all surface as this error, chained to the sqlite3 original.
    """

    pass


class DecodeError(UserLogError):
    """Raised when a stored event payload cannot be decoded"""

    pass


class UpdateConflict(UserLogError):
    """
    Raised when an update carries a stale expected_updated_at token

    Only raised for callers that opt in to the check - plain updates are
    last-writer-wins.
    """

    def __init__(
        self, user_id: int, expected_updated_at: datetime, actual_updated_at: datetime
    ) -> None:
        self.user_id = user_id
        self.expected_updated_at = expected_updated_at
        self.actual_updated_at = actual_updated_at
        super().__init__(
            f"User {user_id} was modified concurrently: "
            f"expected updated_at {expected_updated_at.isoformat()}, "
            f"got {actual_updated_at.isoformat()}"
        )
