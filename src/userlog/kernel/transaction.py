"""
Transaction Coordinator - one mutation, one event, one commit

The coordinator is the only place where aggregate state and the event log
are written together. For every command it:

1. Opens an atomic scope on the injected Database
2. Runs the mutation (a closure around a repository call)
3. Asks the event builder for kind, version and payload
4. Encodes the payload and appends the event on the same connection
5. Commits

If any step raises, the scope rolls back and nothing is visible to readers:
no aggregate change without its event, no event without its change.
"""

import sqlite3
from collections.abc import Callable
from typing import ClassVar, Protocol, TypeVar

from userlog.kernel.codec import EventCodec
from userlog.kernel.errors import PersistenceError
from userlog.kernel.event_store import SQLiteEventStore
from userlog.kernel.events import Event, EventDraft
from userlog.kernel.logging import LogOperation, get_logger
from userlog.kernel.storage import Database

logger = get_logger(__name__)


class Aggregate(Protocol):
    """What the coordinator needs to know about an aggregate"""

    aggregate_kind: ClassVar[str]

    @property
    def id(self) -> int: ...


A = TypeVar("A", bound=Aggregate)

Mutation = Callable[[sqlite3.Connection], A]
EventBuilder = Callable[[A], EventDraft]


class TransactionCoordinator:
    """
    Couples an aggregate mutation with an event append

    Stateless apart from its collaborators, so a single instance serves
    every request thread.
    """

    def __init__(
        self,
        database: Database,
        event_store: SQLiteEventStore,
        codec: EventCodec,
    ) -> None:
        """
        Initialize coordinator with dependencies

        Args:
            database: Storage handle providing the atomic scope
            event_store: Where the event is appended
            codec: Encodes the event payload
        """
        self.database = database
        self.event_store = event_store
        self.codec = codec

    def execute(
        self,
        mutate: Mutation[A],
        build_event: EventBuilder[A],
    ) -> tuple[A, Event]:
        """
        Run a mutation and append its event atomically

        Args:
            mutate: Receives the transaction's connection, returns the mutated aggregate
            build_event: Receives the mutated aggregate, returns the event draft

        Returns:
            (aggregate, event) as committed

        Raises:
            PersistenceError: On any storage failure (sqlite3 errors are wrapped)
            UserLogError: Domain errors raised by mutate propagate unchanged
        """
        with LogOperation(logger, "atomic_scope"):
            try:
                with self.database.transaction() as conn:
                    aggregate = mutate(conn)
                    draft = build_event(aggregate)
                    event = self.event_store.append(
                        aggregate.id,
                        type(aggregate).aggregate_kind,
                        draft.kind,
                        draft.version,
                        self.codec.encode(draft.payload),
                        conn=conn,
                    )
            except sqlite3.Error as e:
                raise PersistenceError(f"Storage failure in atomic scope: {e}") from e

        logger.info(
            "Mutation committed with event",
            aggregate_kind=event.aggregate_kind,
            aggregate_id=event.aggregate_id,
            event_id=event.id,
            kind=event.kind,
        )
        return aggregate, event
