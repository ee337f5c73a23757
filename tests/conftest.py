"""
Pytest configuration and shared fixtures

Fun fact: Files named conftest.py are discovered automatically by pytest, and
their fixtures are available to every test in the same directory and below.
"""

from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

import pytest

from userlog.app import UserLog
from userlog.kernel.codec import EventCodec
from userlog.kernel.event_store import SQLiteEventStore
from userlog.kernel.settings import Settings
from userlog.kernel.storage import Database
from userlog.kernel.time import TestTimeProvider
from userlog.kernel.transaction import TransactionCoordinator
from userlog.users.events import PAYLOADS
from userlog.users.handlers import UserCommandHandlers
from userlog.users.repository import UserRepository


@pytest.fixture
def temp_db(tmp_path: Path) -> Path:
    """Path for a fresh database file inside the test's temp directory"""
    return tmp_path / "test.db"


@pytest.fixture
def test_time() -> TestTimeProvider:
    """
    Provide a controllable time provider for deterministic tests

    Default time: 2025-01-15 12:00:00 UTC
    """
    return TestTimeProvider(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def database(temp_db: Path) -> Database:
    """Provide a fresh storage handle with the schema created"""
    return Database(temp_db)


@pytest.fixture
def codec() -> EventCodec:
    return EventCodec(PAYLOADS)


@pytest.fixture
def event_store(database: Database, test_time: TestTimeProvider) -> SQLiteEventStore:
    """Provide a fresh event store for each test"""
    return SQLiteEventStore(database, test_time)


@pytest.fixture
def user_repository(database: Database, test_time: TestTimeProvider) -> UserRepository:
    return UserRepository(database, test_time)


@pytest.fixture
def coordinator(
    database: Database, event_store: SQLiteEventStore, codec: EventCodec
) -> TransactionCoordinator:
    return TransactionCoordinator(database, event_store, codec)


@pytest.fixture
def handlers(
    user_repository: UserRepository, coordinator: TransactionCoordinator
) -> UserCommandHandlers:
    """Provide command handlers wired to the test database"""
    return UserCommandHandlers(user_repository, coordinator)


@pytest.fixture
def userlog(temp_db: Path, test_time: TestTimeProvider) -> UserLog:
    """Provide a façade on a fresh database with deterministic time"""
    return UserLog(settings=Settings(db_path=temp_db), time_provider=test_time)


@pytest.fixture
def count_rows(database: Database) -> Callable[[str], int]:
    """Count rows of a table through a fresh connection (committed state only)"""

    def _count(table: str) -> int:
        with database.connect() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

    return _count
