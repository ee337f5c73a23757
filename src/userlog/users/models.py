"""
User Domain Model - the aggregate this service tracks

A user is a mutable row whose every change is mirrored by an event.
"""

from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, Field

# Largest value an SQLite INTEGER column can hold
MAX_USER_ID = 2**63 - 1


class User(BaseModel):
    """
    A user aggregate as currently stored

    Attributes:
        id: Assigned by storage on create, never changes
        name: Display name, mutable
        credential_secret: Password as stored; compared on update to detect changes
        created_at: When the user was created
        updated_at: When the user last changed (never moves backwards)
    """

    aggregate_kind: ClassVar[str] = "user"

    id: int = Field(..., ge=1, le=MAX_USER_ID)
    name: str
    credential_secret: str = Field(..., repr=False)
    created_at: datetime
    updated_at: datetime

    model_config = {"frozen": True}

    def to_public_dict(self) -> dict[str, Any]:
        """Render the user for API and CLI output - the secret is left out"""
        return {
            "id": self.id,
            "name": self.name,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
