"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the transaction and subscription tables used by
``subscription_detection``.
"""

from .finance import Base, UserSubscription, UserTransaction

__all__ = [
    "Base",
    "UserSubscription",
    "UserTransaction",
]
