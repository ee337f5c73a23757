"""
userlog - users with an append-only change log

Every create and update of a user commits together with an immutable,
globally ordered event, so consumers can rebuild history or feed
downstream projections from the log.
"""

from userlog.app import UserLog

__version__ = "0.1.0"
__all__ = ["UserLog", "__version__"]
