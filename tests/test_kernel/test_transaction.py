"""
Tests for the Transaction Coordinator

The coordinator's whole job is atomicity: a mutation and its event commit
together or not at all. These tests inject failures at each step and check
that neither table changed.
"""

import sqlite3
from typing import Callable

import pytest

from userlog.kernel.errors import PersistenceError, UserNotFound
from userlog.kernel.event_store import SQLiteEventStore
from userlog.kernel.events import EventDraft
from userlog.kernel.metrics import transactions_total
from userlog.kernel.storage import Database
from userlog.kernel.transaction import TransactionCoordinator
from userlog.users.events import UserCreated
from userlog.users.models import User
from userlog.users.repository import UserRepository


class FailingEventStore(SQLiteEventStore):
    """Event store whose append always fails"""

    def __init__(self, inner: SQLiteEventStore, error: Exception) -> None:
        super().__init__(inner.database, inner.time_provider)
        self.error = error

    def append(self, *args, **kwargs):  # type: ignore[override]
        raise self.error


def created_draft(user: User) -> EventDraft:
    return EventDraft(kind="UserCreated", version="v1", payload=UserCreated(id=user.id, name=user.name))


def test_execute_commits_mutation_and_event(
    coordinator: TransactionCoordinator,
    user_repository: UserRepository,
    count_rows: Callable[[str], int],
) -> None:
    """Test a successful execute leaves exactly one row in each table"""
    user, event = coordinator.execute(
        lambda conn: user_repository.create("alice", "pw", conn=conn), created_draft
    )

    assert user.id == 1
    assert event.aggregate_id == user.id
    assert event.aggregate_kind == "user"
    assert event.kind == "UserCreated"
    assert event.payload == b'{"id":1,"name":"alice"}'
    assert count_rows("users") == 1
    assert count_rows("events") == 1


def test_append_failure_rolls_back_mutation(
    database: Database,
    event_store: SQLiteEventStore,
    codec,
    user_repository: UserRepository,
    count_rows: Callable[[str], int],
) -> None:
    """Test an append failure after a successful insert leaves zero rows"""
    failing = TransactionCoordinator(
        database, FailingEventStore(event_store, PersistenceError("disk full")), codec
    )

    with pytest.raises(PersistenceError, match="disk full"):
        failing.execute(
            lambda conn: user_repository.create("alice", "pw", conn=conn), created_draft
        )

    assert count_rows("users") == 0
    assert count_rows("events") == 0


def test_append_failure_leaves_updated_aggregate_unchanged(
    coordinator: TransactionCoordinator,
    database: Database,
    event_store: SQLiteEventStore,
    codec,
    user_repository: UserRepository,
    count_rows: Callable[[str], int],
) -> None:
    """Test a failed append after an update restores the old row"""
    user, _ = coordinator.execute(
        lambda conn: user_repository.create("alice", "pw", conn=conn), created_draft
    )
    failing = TransactionCoordinator(
        database, FailingEventStore(event_store, PersistenceError("boom")), codec
    )

    with pytest.raises(PersistenceError):
        failing.execute(
            lambda conn: user_repository.update(user.id, "mallory", "other", conn=conn),
            created_draft,
        )

    assert user_repository.get_by_id(user.id) == user
    assert count_rows("events") == 1


def test_raw_sqlite_error_is_wrapped(
    database: Database,
    event_store: SQLiteEventStore,
    codec,
    user_repository: UserRepository,
    count_rows: Callable[[str], int],
) -> None:
    """Test a bare sqlite3 error surfaces as PersistenceError and rolls back"""
    failing = TransactionCoordinator(
        database,
        FailingEventStore(event_store, sqlite3.OperationalError("database is locked")),
        codec,
    )

    with pytest.raises(PersistenceError) as exc_info:
        failing.execute(
            lambda conn: user_repository.create("alice", "pw", conn=conn), created_draft
        )

    assert isinstance(exc_info.value.__cause__, sqlite3.OperationalError)
    assert count_rows("users") == 0


def test_event_builder_failure_rolls_back(
    coordinator: TransactionCoordinator,
    user_repository: UserRepository,
    count_rows: Callable[[str], int],
) -> None:
    """Test an exception from the event builder aborts the scope"""

    def broken_builder(user: User) -> EventDraft:
        raise ValueError("cannot build event")

    with pytest.raises(ValueError):
        coordinator.execute(
            lambda conn: user_repository.create("alice", "pw", conn=conn), broken_builder
        )

    assert count_rows("users") == 0
    assert count_rows("events") == 0


def test_domain_error_propagates_unchanged(
    coordinator: TransactionCoordinator,
    user_repository: UserRepository,
    count_rows: Callable[[str], int],
) -> None:
    """Test NotFound from the mutation reaches the caller as-is"""
    with pytest.raises(UserNotFound) as exc_info:
        coordinator.execute(
            lambda conn: user_repository.update(999, "x", "y", conn=conn), created_draft
        )

    assert exc_info.value.user_id == 999
    assert count_rows("users") == 0
    assert count_rows("events") == 0


def test_base_exception_rolls_back(
    coordinator: TransactionCoordinator,
    user_repository: UserRepository,
    count_rows: Callable[[str], int],
) -> None:
    """Test non-Exception exits (e.g. KeyboardInterrupt) also roll back"""

    def interrupted(user: User) -> EventDraft:
        raise KeyboardInterrupt

    with pytest.raises(KeyboardInterrupt):
        coordinator.execute(
            lambda conn: user_repository.create("alice", "pw", conn=conn), interrupted
        )

    assert count_rows("users") == 0


def test_uncommitted_state_invisible_to_readers(
    coordinator: TransactionCoordinator,
    user_repository: UserRepository,
    event_store: SQLiteEventStore,
) -> None:
    """Test a reader on another connection sees nothing before commit"""
    observed: dict[str, int] = {}

    def build_and_peek(user: User) -> EventDraft:
        observed["users"] = len(user_repository.list_all())
        observed["events"] = event_store.count_events()
        return created_draft(user)

    coordinator.execute(
        lambda conn: user_repository.create("alice", "pw", conn=conn), build_and_peek
    )

    assert observed == {"users": 0, "events": 0}
    assert len(user_repository.list_all()) == 1
    assert event_store.count_events() == 1


def test_transaction_metrics(
    coordinator: TransactionCoordinator, user_repository: UserRepository
) -> None:
    """Test committed and rolled back scopes are counted"""
    committed_before = transactions_total.labels(outcome="committed")._value.get()
    rolled_back_before = transactions_total.labels(outcome="rolled_back")._value.get()

    coordinator.execute(
        lambda conn: user_repository.create("alice", "pw", conn=conn), created_draft
    )
    with pytest.raises(UserNotFound):
        coordinator.execute(
            lambda conn: user_repository.update(42, "x", "y", conn=conn), created_draft
        )

    assert transactions_total.labels(outcome="committed")._value.get() == committed_before + 1
    assert transactions_total.labels(outcome="rolled_back")._value.get() == rolled_back_before + 1
