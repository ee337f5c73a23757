"""
UserLog - Main façade class

This is the primary interface to the system. It wires the storage handle,
repository, event store, codec and coordinator together and exposes the
operations the HTTP API and CLI call.

Example:
    >>> from userlog import UserLog
    >>> log = UserLog("users.db")
    >>> alice = log.create_user("alice", "s3cr3t")
    >>> log.update_user(alice.id, "alice", "n3w-s3cr3t")
    >>> [e.kind for e in log.list_user_events(alice.id)]
    ['UserCreated', 'UserUpdated']
"""

from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from userlog.kernel.codec import EventCodec
from userlog.kernel.errors import InvalidCommand
from userlog.kernel.event_store import SQLiteEventStore
from userlog.kernel.events import Event
from userlog.kernel.logging import LogOperation, get_logger
from userlog.kernel.settings import Settings
from userlog.kernel.storage import Database
from userlog.kernel.time import RealTimeProvider, TimeProvider, to_utc
from userlog.kernel.transaction import TransactionCoordinator
from userlog.users.commands import CreateUser, UpdateUser
from userlog.users.events import PAYLOADS
from userlog.users.handlers import UserCommandHandlers
from userlog.users.models import MAX_USER_ID, User
from userlog.users.repository import UserRepository

logger = get_logger(__name__)


class UserLog:
    """
    userlog main façade

    Provides a unified API for:
    - Creating and updating users (each change recorded as an event)
    - Listing users
    - Reading the event log, globally or per user, with a time cursor
    """

    def __init__(
        self,
        sqlite_path: str | Path | None = None,
        settings: Settings | None = None,
        time_provider: TimeProvider | None = None,
    ) -> None:
        """
        Initialize the system

        Args:
            sqlite_path: Path to SQLite database (overrides settings.db_path)
            settings: Configuration (defaults if None)
            time_provider: Time provider (uses real time if None)
        """
        self.settings = settings or Settings()
        if sqlite_path is not None:
            self.settings = self.settings.model_copy(update={"db_path": Path(sqlite_path)})
        self.sqlite_path = self.settings.db_path
        self.time_provider = time_provider or RealTimeProvider()

        # Infrastructure, all sharing one injected storage handle
        self.database = Database(self.sqlite_path, busy_timeout_ms=self.settings.busy_timeout_ms)
        self.codec = EventCodec(PAYLOADS)
        self.event_store = SQLiteEventStore(self.database, self.time_provider)
        self.user_repository = UserRepository(self.database, self.time_provider)
        self.coordinator = TransactionCoordinator(self.database, self.event_store, self.codec)
        self.user_handlers = UserCommandHandlers(self.user_repository, self.coordinator)

    # Commands

    def create_user(self, name: str, credential_secret: str) -> User:
        """
        Create a user and record UserCreated

        Raises:
            InvalidCommand: If name or secret is empty
            PersistenceError: On storage failure (nothing is written)
        """
        command = _validate(CreateUser, name=name, credential_secret=credential_secret)
        with LogOperation(logger, "create_user", name=name):
            user, _ = self.user_handlers.handle_create_user(command)
        return user

    def update_user(
        self,
        user_id: int,
        name: str,
        credential_secret: str,
        expected_updated_at: datetime | None = None,
    ) -> User:
        """
        Overwrite a user's name and secret and record UserUpdated

        Concurrent updates are last-writer-wins unless expected_updated_at is
        passed, in which case a stale value raises UpdateConflict.

        Raises:
            InvalidCommand: If input is malformed
            UserNotFound: If the user doesn't exist
            UpdateConflict: If expected_updated_at is stale
            PersistenceError: On storage failure (nothing is written)
        """
        command = _validate(
            UpdateUser,
            user_id=user_id,
            name=name,
            credential_secret=credential_secret,
            expected_updated_at=expected_updated_at,
        )
        with LogOperation(logger, "update_user", user_id=user_id):
            user, _ = self.user_handlers.handle_update_user(command)
        return user

    # Queries

    def get_user(self, user_id: int) -> User:
        """Get a user by id (raises UserNotFound)"""
        return self.user_repository.get_by_id(_check_user_id(user_id))

    def list_users(self) -> list[User]:
        """List all users ordered by id"""
        return self.user_repository.list_all()

    def list_events(
        self, since: datetime | None = None, limit: int | None = None
    ) -> list[Event]:
        """
        List events across all users

        Args:
            since: Cursor - only events created at or after this time
                   (defaults to one window before now)
            limit: Page size (defaults to settings.default_limit)
        """
        since, limit = self._window(since, limit)
        return self.event_store.query_global(since, limit)

    def list_user_events(
        self, user_id: int, since: datetime | None = None, limit: int | None = None
    ) -> list[Event]:
        """List one user's events; same cursor semantics as list_events"""
        since, limit = self._window(since, limit)
        return self.event_store.query_by_aggregate(_check_user_id(user_id), since, limit)

    def describe_event(self, event: Event) -> dict[str, Any]:
        """
        Render an event with its payload decoded to a generic mapping

        Raises:
            DecodeError: If the stored payload is malformed
        """
        return {
            "id": event.id,
            "aggregateId": event.aggregate_id,
            "aggregateKind": event.aggregate_kind,
            "kind": event.kind,
            "version": event.version,
            "createdAt": event.created_at.isoformat(),
            "data": self.codec.decode(event.payload),
        }

    def _window(self, since: datetime | None, limit: int | None) -> tuple[datetime, int]:
        if since is None:
            since = self.time_provider.now() - self.settings.default_window
        if limit is None:
            limit = self.settings.default_limit
        if limit < 1 or limit > self.settings.max_limit:
            raise InvalidCommand(
                f"limit must be between 1 and {self.settings.max_limit}, got {limit}"
            )
        return to_utc(since), limit


def _validate(model: type[CreateUser] | type[UpdateUser], **values: Any) -> Any:
    try:
        return model.model_validate(values)
    except PydanticValidationError as e:
        raise InvalidCommand(
            f"Invalid {model.__name__} command",
            errors=e.errors(include_url=False, include_context=False, include_input=False),
        ) from e


def _check_user_id(user_id: int) -> int:
    if not 1 <= user_id <= MAX_USER_ID:
        raise InvalidCommand(f"invalid user id: {user_id}")
    return user_id
