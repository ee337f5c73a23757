"""
Event record for the append-only log

An Event is what the store hands back: the envelope fields the store
assigned (id, created_at) around an opaque payload the codec produced.
An EventDraft is what a command handler hands in: just the variant, the
schema version and the typed payload.

Fun fact: Events are named in the past tense because they describe facts
that already happened - "UserUpdated", never "UpdateUser".
"""

from datetime import datetime

from pydantic import BaseModel, Field


class Event(BaseModel):
    """
    A persisted event

    Events are:
    - Immutable (never modified after append)
    - Globally ordered (id is assigned by the store in commit order)
    - Timestamped (created_at is the read-side pagination cursor)
    - Versioned (version tags the payload schema, not the stream)
    """

    id: int = Field(
        ...,
        ge=1,
        description="Global, strictly increasing event id assigned at append",
    )

    aggregate_id: int = Field(
        ...,
        description="Id of the aggregate that produced this event",
    )

    aggregate_kind: str = Field(
        ...,
        description="Type of aggregate: 'user'",
    )

    kind: str = Field(
        ...,
        description="Event variant: 'UserCreated', 'UserUpdated'",
    )

    version: str = Field(
        ...,
        description="Payload schema version tag, e.g. 'v1'",
    )

    created_at: datetime = Field(
        ...,
        description="UTC timestamp assigned at append time",
    )

    payload: bytes = Field(
        ...,
        description="Encoded payload (see EventCodec)",
    )

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "id": 1,
                    "aggregate_id": 1,
                    "aggregate_kind": "user",
                    "kind": "UserCreated",
                    "version": "v1",
                    "created_at": "2025-01-15T12:00:00.000000+00:00",
                    "payload": '{"id":1,"name":"alice"}',
                }
            ]
        },
    }


class EventDraft(BaseModel):
    """Event produced by a command handler, before encoding and append"""

    kind: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)
    payload: BaseModel

    model_config = {"frozen": True}
