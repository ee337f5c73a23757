"""
User Commands - intentions to change a user

Commands are validated at the edge (HTTP body, CLI options, facade call)
before they reach the coordinator. The "password" alias matches the JSON
body clients send.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from userlog.users.models import MAX_USER_ID


class CreateUser(BaseModel):
    """Create a new user"""

    name: str = Field(..., min_length=1, max_length=200)
    credential_secret: str = Field(..., min_length=1, alias="password", repr=False)

    model_config = {"populate_by_name": True}


class UpdateUser(BaseModel):
    """
    Overwrite a user's name and secret

    expected_updated_at is optional: when set, the update only applies if
    the user has not changed since that timestamp.
    """

    user_id: int = Field(..., ge=1, le=MAX_USER_ID)
    name: str = Field(..., min_length=1, max_length=200)
    credential_secret: str = Field(..., min_length=1, alias="password", repr=False)
    expected_updated_at: datetime | None = Field(default=None, alias="expectedUpdatedAt")

    model_config = {"populate_by_name": True}
