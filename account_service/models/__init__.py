"""SQLAlchemy ORM models for the account service.

All models are exported from this module for convenient imports:
    from account_service.models import Account, Credential

- account.py: Account (identity, pending-change bookkeeping)
- credential.py: Credential (default login, staged email/password)
"""

from account_service.models.account import Account
from account_service.models.base import Base, TimestampMixin
from account_service.models.credential import Credential

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    # Tables
    "Credential",
    "Account",
]
