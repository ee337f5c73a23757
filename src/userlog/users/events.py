"""
User Events - payloads recorded for each user mutation

Payload keys are part of the stored format and are read by consumers that
never import this module, so they are pinned with aliases.
"""

from pydantic import BaseModel, Field

from userlog.kernel.codec import PayloadRegistry

USER_CREATED = "UserCreated"
USER_UPDATED = "UserUpdated"
V1 = "v1"


class UserCreated(BaseModel):
    """A new user was created"""

    id: int
    name: str


class UserUpdated(BaseModel):
    """
    A user's name and/or secret were overwritten

    The secret itself is never recorded, only whether it changed.
    """

    id: int
    name: str
    password_changed: bool = Field(..., alias="passwordChanged")

    model_config = {"populate_by_name": True}


PAYLOADS: PayloadRegistry = {
    (USER_CREATED, V1): UserCreated,
    (USER_UPDATED, V1): UserUpdated,
}
