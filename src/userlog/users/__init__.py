"""
Users Module - the aggregate whose history is recorded

Create and update go through the transaction coordinator so that each
mutation is committed together with its UserCreated / UserUpdated event.
"""

from userlog.users.commands import CreateUser, UpdateUser
from userlog.users.events import UserCreated, UserUpdated
from userlog.users.models import User

__all__ = [
    "User",
    "CreateUser",
    "UpdateUser",
    "UserCreated",
    "UserUpdated",
]
