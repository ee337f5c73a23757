"""
Tests for the User Repository

The repository only sees the users table; these tests drive it through
plain atomic scopes, without the coordinator.
"""

from datetime import timedelta

import pytest

from userlog.kernel.errors import PersistenceError, UpdateConflict, UserNotFound
from userlog.kernel.storage import Database
from userlog.kernel.time import TestTimeProvider
from userlog.users.models import User
from userlog.users.repository import UserRepository


def create(database: Database, repository: UserRepository, name: str, secret: str = "pw") -> User:
    with database.transaction() as conn:
        return repository.create(name, secret, conn=conn)


def test_create_assigns_sequential_ids(
    database: Database, user_repository: UserRepository, test_time: TestTimeProvider
) -> None:
    """Test ids are assigned by storage, starting at 1"""
    alice = create(database, user_repository, "alice")
    bob = create(database, user_repository, "bob")

    assert alice.id == 1
    assert bob.id == 2
    assert alice.created_at == test_time.now()
    assert alice.updated_at == alice.created_at


def test_get_by_id_round_trips(database: Database, user_repository: UserRepository) -> None:
    """Test a created user reads back identical"""
    alice = create(database, user_repository, "alice", "s3cr3t")

    loaded = user_repository.get_by_id(alice.id)

    assert loaded == alice
    assert loaded.credential_secret == "s3cr3t"


def test_get_by_id_missing_raises_not_found(user_repository: UserRepository) -> None:
    """Test an unknown id raises UserNotFound carrying the id"""
    with pytest.raises(UserNotFound) as exc_info:
        user_repository.get_by_id(999)

    assert exc_info.value.user_id == 999


def test_oversized_id_raises_persistence_error(user_repository: UserRepository) -> None:
    """Test an id wider than 64 bits is a typed storage error"""
    with pytest.raises(PersistenceError):
        user_repository.get_by_id(2**63)


def test_list_all_orders_by_id(database: Database, user_repository: UserRepository) -> None:
    """Test list_all returns every user, lowest id first"""
    for name in ["carol", "alice", "bob"]:
        create(database, user_repository, name)

    users = user_repository.list_all()

    assert [u.id for u in users] == [1, 2, 3]
    assert [u.name for u in users] == ["carol", "alice", "bob"]
    assert user_repository.count() == 3


def test_list_all_empty(user_repository: UserRepository) -> None:
    """Test an empty table lists as an empty list"""
    assert user_repository.list_all() == []
    assert user_repository.count() == 0


def test_update_overwrites_fields(
    database: Database, user_repository: UserRepository, test_time: TestTimeProvider
) -> None:
    """Test update replaces name and secret, keeps created_at"""
    alice = create(database, user_repository, "alice", "old")
    test_time.advance_minutes(5)

    with database.transaction() as conn:
        updated = user_repository.update(alice.id, "alicia", "new", conn=conn)

    assert updated.name == "alicia"
    assert updated.credential_secret == "new"
    assert updated.created_at == alice.created_at
    assert updated.updated_at == alice.updated_at + timedelta(minutes=5)
    assert user_repository.get_by_id(alice.id) == updated


def test_update_missing_user_raises_not_found(
    database: Database, user_repository: UserRepository
) -> None:
    """Test updating an unknown id writes nothing"""
    with pytest.raises(UserNotFound):
        with database.transaction() as conn:
            user_repository.update(999, "ghost", "pw", conn=conn)

    assert user_repository.count() == 0


def test_updated_at_never_moves_backwards(
    database: Database, user_repository: UserRepository, test_time: TestTimeProvider
) -> None:
    """Test a clock that steps back doesn't rewind updated_at"""
    alice = create(database, user_repository, "alice")
    test_time.advance_minutes(-30)

    with database.transaction() as conn:
        updated = user_repository.update(alice.id, "alice", "pw", conn=conn)

    assert updated.updated_at == alice.updated_at


def test_update_with_matching_token_applies(
    database: Database, user_repository: UserRepository, test_time: TestTimeProvider
) -> None:
    """Test expected_updated_at equal to the stored value lets the update through"""
    alice = create(database, user_repository, "alice")
    test_time.advance_seconds(1)

    with database.transaction() as conn:
        updated = user_repository.update(
            alice.id, "alicia", "pw", conn=conn, expected_updated_at=alice.updated_at
        )

    assert updated.name == "alicia"


def test_update_with_stale_token_raises_conflict(
    database: Database, user_repository: UserRepository, test_time: TestTimeProvider
) -> None:
    """Test a second writer holding an old updated_at is rejected"""
    alice = create(database, user_repository, "alice")
    test_time.advance_seconds(1)
    with database.transaction() as conn:
        user_repository.update(alice.id, "first", "pw", conn=conn)

    with pytest.raises(UpdateConflict) as exc_info:
        with database.transaction() as conn:
            user_repository.update(
                alice.id, "second", "pw", conn=conn, expected_updated_at=alice.updated_at
            )

    assert exc_info.value.expected_updated_at == alice.updated_at
    assert user_repository.get_by_id(alice.id).name == "first"


def test_create_in_aborted_scope_is_rolled_back(
    database: Database, user_repository: UserRepository
) -> None:
    """Test an insert inside an aborted scope never becomes visible"""
    with pytest.raises(RuntimeError):
        with database.transaction() as conn:
            user_repository.create("alice", "pw", conn=conn)
            raise RuntimeError("abort")

    assert user_repository.count() == 0


def test_storage_failure_wraps_as_persistence_error(
    database: Database, user_repository: UserRepository
) -> None:
    """Test sqlite errors surface as PersistenceError"""
    with database.transaction() as conn:
        conn.execute("DROP TABLE events")
        conn.execute("DROP TABLE users")

    with pytest.raises(PersistenceError):
        user_repository.list_all()


def test_secret_hidden_from_repr(database: Database, user_repository: UserRepository) -> None:
    """Test the stored secret never shows up in a repr"""
    alice = create(database, user_repository, "alice", "hunter2")

    assert "hunter2" not in repr(alice)
    assert "credential_secret" not in alice.to_public_dict()
