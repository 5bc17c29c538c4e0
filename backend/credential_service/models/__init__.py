"""SQLAlchemy ORM models for the credential service.

All models are exported from this module for convenient imports:
    from credential_service.models import Account, Session

Models:
- account.py: Account (identity, credential, verification, lockout)
- session.py: Session (issued session tokens, revocable)
"""

from credential_service.models.account import Account
from credential_service.models.base import Base, TimestampMixin
from credential_service.models.session import Session

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    # Tables
    "Account",
    "Session",
]
