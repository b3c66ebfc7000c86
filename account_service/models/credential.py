"""Credential model - default (email + password) login.

One row per account. Holds the authoritative email and password hash plus
the staged replacements of a pending email or password change.
"""

from sqlalchemy import CheckConstraint, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from account_service.models.base import Base, TimestampMixin

EMAIL_MAX_LENGTH = 255

# LIKE keeps the check portable between PostgreSQL and SQLite
_EMAIL_FORMAT = "{column} LIKE '%_@_%._%' AND {column} NOT LIKE '% %'"


class Credential(Base, TimestampMixin):
    """Default login secret material for an account.

    Attributes:
        id: Integer primary key.
        email: Unique email address used to log in.
        password_hash: bcrypt hash of the current password.
        new_email: Staged email, set only while an email change is pending.
        new_password_hash: Staged bcrypt hash, set only while a password
            change is pending.
        created_at: Creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "credentials"
    __table_args__ = (
        UniqueConstraint("email", name="uq_credentials_email"),
        CheckConstraint(
            _EMAIL_FORMAT.format(column="email"),
            name="ck_credentials_email_format",
        ),
        CheckConstraint(
            "new_email IS NULL OR (" + _EMAIL_FORMAT.format(column="new_email") + ")",
            name="ck_credentials_new_email_format",
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    email: Mapped[str] = mapped_column(
        String(EMAIL_MAX_LENGTH),
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    new_email: Mapped[str | None] = mapped_column(
        String(EMAIL_MAX_LENGTH),
        nullable=True,
    )
    new_password_hash: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
