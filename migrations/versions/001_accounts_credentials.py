"""Create accounts and credentials tables.

Revision ID: 001_accounts_credentials
Revises:
Create Date: 2026-10-18

Credentials hold the default (email + password) login and the staged values
of pending changes. Accounts reference their credential and carry the
pending-change token and expiry.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001_accounts_credentials"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_EMAIL_FORMAT = "{column} LIKE '%_@_%._%' AND {column} NOT LIKE '% %'"


def upgrade() -> None:
    # Credentials - default login, one per account
    op.create_table(
        "credentials",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("new_email", sa.String(255), nullable=True),
        sa.Column("new_password_hash", sa.String(255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("email", name="uq_credentials_email"),
        sa.CheckConstraint(
            _EMAIL_FORMAT.format(column="email"),
            name="ck_credentials_email_format",
        ),
        sa.CheckConstraint(
            "new_email IS NULL OR (" + _EMAIL_FORMAT.format(column="new_email") + ")",
            name="ck_credentials_new_email_format",
        ),
    )

    # Accounts - identity and pending-change bookkeeping
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("nickname", sa.String(32), nullable=False),
        sa.Column(
            "verified", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        sa.Column(
            "credential_id",
            sa.Integer(),
            sa.ForeignKey("credentials.id"),
            nullable=True,
        ),
        sa.Column("change_token", sa.String(64), nullable=True),
        sa.Column("change_expiry", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "session_token_version",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("credential_id", name="uq_accounts_credential_id"),
        sa.UniqueConstraint("change_token", name="uq_accounts_change_token"),
        sa.CheckConstraint(
            "length(nickname) >= 3 AND length(nickname) <= 32 "
            "AND nickname NOT LIKE '% %'",
            name="ck_accounts_nickname_format",
        ),
        sa.CheckConstraint(
            "(change_token IS NULL) = (change_expiry IS NULL)",
            name="ck_accounts_change_pair",
        ),
    )


def downgrade() -> None:
    op.drop_table("accounts")
    op.drop_table("credentials")
