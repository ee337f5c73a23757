"""
Kernel - transactional event log infrastructure

The kernel provides the machinery every aggregate module builds upon: the
storage handle, the append-only event store, the payload codec and the
coordinator that commits a mutation and its event as one unit.
"""

from userlog.kernel.codec import EventCodec
from userlog.kernel.errors import (
    DecodeError,
    InvalidCommand,
    NotFound,
    PersistenceError,
    UpdateConflict,
    UserLogError,
    UserNotFound,
)
from userlog.kernel.event_store import SQLiteEventStore
from userlog.kernel.events import Event, EventDraft
from userlog.kernel.settings import Settings
from userlog.kernel.storage import Database
from userlog.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider
from userlog.kernel.transaction import TransactionCoordinator

__all__ = [
    # Storage
    "Database",
    "SQLiteEventStore",
    "TransactionCoordinator",
    # Events
    "Event",
    "EventDraft",
    "EventCodec",
    # Time
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    # Config
    "Settings",
    # Errors
    "UserLogError",
    "InvalidCommand",
    "NotFound",
    "UserNotFound",
    "PersistenceError",
    "DecodeError",
    "UpdateConflict",
]
