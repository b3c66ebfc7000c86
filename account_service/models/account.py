"""Account model - the primary identity.

Which change is pending is not stored: it is derived from ``verified`` and
the staged columns of the credential. ``change_token`` and ``change_expiry``
are set together while any change is pending.
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from account_service.models.base import Base, TimestampMixin

NICKNAME_MIN_LENGTH = 3
NICKNAME_MAX_LENGTH = 32


class Account(Base, TimestampMixin):
    """Account with its pending-change bookkeeping.

    Attributes:
        id: Integer primary key.
        nickname: Display name, 3-32 characters without spaces.
        verified: Whether the first-time verification was redeemed.
        credential_id: FK to credentials (default login). One per account.
        change_token: Opaque token of the pending change. NULL = none.
        change_expiry: When the pending change expires. NULL = none.
        session_token_version: Bumped to invalidate issued session tokens.
        created_at: Creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("credential_id", name="uq_accounts_credential_id"),
        UniqueConstraint("change_token", name="uq_accounts_change_token"),
        CheckConstraint(
            f"length(nickname) >= {NICKNAME_MIN_LENGTH} "
            f"AND length(nickname) <= {NICKNAME_MAX_LENGTH} "
            "AND nickname NOT LIKE '% %'",
            name="ck_accounts_nickname_format",
        ),
        CheckConstraint(
            "(change_token IS NULL) = (change_expiry IS NULL)",
            name="ck_accounts_change_pair",
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    nickname: Mapped[str] = mapped_column(
        String(NICKNAME_MAX_LENGTH),
        nullable=False,
    )
    verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )
    credential_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("credentials.id"),
        nullable=True,
    )
    change_token: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )
    change_expiry: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    session_token_version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("0"),
        default=0,
    )
