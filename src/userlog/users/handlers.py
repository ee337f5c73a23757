"""
User Command Handlers - Command -> (mutation, event) pairs

Each handler builds two closures and gives them to the coordinator:
- the mutation, wrapping one repository call on the scope's connection
- the event builder, turning the mutated user into an event draft

The coordinator does the rest (atomic scope, encoding, append, commit).
"""

import sqlite3

from userlog.kernel.events import Event, EventDraft
from userlog.kernel.logging import get_logger
from userlog.kernel.metrics import track_command_duration
from userlog.kernel.transaction import TransactionCoordinator
from userlog.users.commands import CreateUser, UpdateUser
from userlog.users.events import USER_CREATED, USER_UPDATED, V1, UserCreated, UserUpdated
from userlog.users.models import User
from userlog.users.repository import UserRepository

logger = get_logger(__name__)


class UserCommandHandlers:
    """
    Command handlers for the user aggregate

    Stateless: everything they touch is injected.
    """

    def __init__(
        self, repository: UserRepository, coordinator: TransactionCoordinator
    ) -> None:
        self.repository = repository
        self.coordinator = coordinator

    @track_command_duration("CreateUser")
    def handle_create_user(self, command: CreateUser) -> tuple[User, Event]:
        """
        Handle CreateUser command

        Returns:
            The created user and its UserCreated event
        """

        def mutate(conn: sqlite3.Connection) -> User:
            return self.repository.create(
                command.name, command.credential_secret, conn=conn
            )

        def build_event(user: User) -> EventDraft:
            return EventDraft(
                kind=USER_CREATED,
                version=V1,
                payload=UserCreated(id=user.id, name=user.name),
            )

        return self.coordinator.execute(mutate, build_event)

    @track_command_duration("UpdateUser")
    def handle_update_user(self, command: UpdateUser) -> tuple[User, Event]:
        """
        Handle UpdateUser command

        The previous secret is read inside the same scope as the update, so
        passwordChanged reflects exactly the row this update replaced.

        Returns:
            The updated user and its UserUpdated event

        Raises:
            UserNotFound: If the user doesn't exist (nothing is written)
            UpdateConflict: If expected_updated_at is stale (nothing is written)
        """
        previous: dict[str, User] = {}

        def mutate(conn: sqlite3.Connection) -> User:
            previous["user"] = self.repository.get_by_id(command.user_id, conn=conn)
            return self.repository.update(
                command.user_id,
                command.name,
                command.credential_secret,
                conn=conn,
                expected_updated_at=command.expected_updated_at,
            )

        def build_event(user: User) -> EventDraft:
            return EventDraft(
                kind=USER_UPDATED,
                version=V1,
                payload=UserUpdated(
                    id=user.id,
                    name=user.name,
                    password_changed=(
                        user.credential_secret != previous["user"].credential_secret
                    ),
                ),
            )

        return self.coordinator.execute(mutate, build_event)
