"""Repository for Account operations.

Single-statement reads and writes on the accounts table. Every method takes
a Scope as its first argument so the caller decides whether the statement
runs on its own connection or inside a larger transaction.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy import delete, insert, literal, select, update

from account_service.core.database import Scope
from account_service.core.error_matchers import (
    ErrorMatcher,
    any_of,
    check_violation,
    string_truncation,
)
from account_service.core.errors import AccountNotFoundError, InvalidNicknameError
from account_service.models.account import Account
from account_service.models.credential import Credential
from account_service.repositories.projection import FieldView, as_utc


class AccountField(Enum):
    """Columns that AccountRepository.query() can project."""

    ID = "id"
    NICKNAME = "nickname"
    VERIFIED = "verified"
    CREDENTIAL_ID = "credential_id"
    CHANGE_TOKEN = "change_token"
    CHANGE_EXPIRY = "change_expiry"
    SESSION_TOKEN_VERSION = "session_token_version"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"


class AccountView(FieldView):
    """Queried subset of an account row."""

    __slots__ = ()

    field_type = AccountField


@dataclass(frozen=True)
class ChangeSnapshot:
    """Everything needed to derive and expire a pending change.

    Attributes:
        change_token: Token of the pending change, or None.
        change_expiry: Expiry of the pending change (UTC), or None.
        verified: Whether the account is verified.
        credential_id: Owning credential, or None.
        new_email: Staged email on the credential, or None.
        new_password_hash: Staged password hash on the credential, or None.
    """

    change_token: str | None
    change_expiry: datetime | None
    verified: bool
    credential_id: int | None
    new_email: str | None
    new_password_hash: str | None


def invalid_nickname_matcher(nickname: str) -> ErrorMatcher:
    """Nickname format or length violation -> InvalidNicknameError."""
    return ErrorMatcher(
        any_of(check_violation("ck_accounts_nickname_format"), string_truncation()),
        lambda: InvalidNicknameError(nickname),
    )


class AccountRepository:
    """Stateless repository for Account table operations.

    All methods are static; there is no instance state. Methods addressing an
    account by id raise AccountNotFoundError when no row matches.
    """

    @staticmethod
    async def create(
        conn: Scope,
        *,
        nickname: str,
        credential_id: int | None,
        change_token: str | None = None,
        change_expiry: datetime | None = None,
        verified: bool = False,
    ) -> int:
        """Insert an account.

        Args:
            conn: Open scope.
            nickname: Display name.
            credential_id: Default login of the account.
            change_token: Token of the initial pending change.
            change_expiry: Expiry of the initial pending change.
            verified: Initial verification flag.

        Returns:
            The new account id.

        Raises:
            InvalidNicknameError: If the nickname is malformed or too long.
        """
        result = await conn.execute(
            insert(Account).values(
                nickname=nickname,
                credential_id=credential_id,
                change_token=change_token,
                change_expiry=change_expiry,
                verified=verified,
            ),
            error_matchers=[invalid_nickname_matcher(nickname)],
        )
        account_id: int = result.inserted_primary_key[0]
        return account_id

    @staticmethod
    async def query(
        conn: Scope,
        account_id: int,
        fields: Iterable[AccountField],
    ) -> AccountView:
        """Fetch only the requested columns of an account.

        Requesting no fields still checks that the row exists.

        Args:
            conn: Open scope.
            account_id: Primary key.
            fields: Columns to project.

        Returns:
            View holding exactly the requested fields.

        Raises:
            AccountNotFoundError: If no row matches.
        """
        fields = list(dict.fromkeys(fields))
        columns = [getattr(Account, field.value) for field in fields]
        stmt = select(*columns or [literal(1)]).where(Account.id == account_id)
        row = (await conn.execute(stmt)).first()
        if row is None:
            raise AccountNotFoundError(account_id)
        return AccountView.from_row(row._mapping, fields)

    @staticmethod
    async def set_nickname(conn: Scope, account_id: int, nickname: str) -> None:
        """Replace the nickname.

        Raises:
            AccountNotFoundError: If no row matches.
            InvalidNicknameError: If the nickname is malformed or too long.
        """
        result = await conn.execute(
            update(Account).where(Account.id == account_id).values(nickname=nickname),
            error_matchers=[invalid_nickname_matcher(nickname)],
        )
        if result.rowcount != 1:
            raise AccountNotFoundError(account_id)

    @staticmethod
    async def set_verified(conn: Scope, account_id: int) -> None:
        """Mark the account verified."""
        result = await conn.execute(
            update(Account).where(Account.id == account_id).values(verified=True)
        )
        if result.rowcount != 1:
            raise AccountNotFoundError(account_id)

    @staticmethod
    async def claim_change(
        conn: Scope,
        account_id: int,
        token: str,
        expiry: datetime,
    ) -> bool:
        """Store the token and expiry of a new change if none is set.

        The row lock taken by the UPDATE serializes concurrent claims.

        Returns:
            False if the account does not exist or already holds a token.
        """
        result = await conn.execute(
            update(Account)
            .where(Account.id == account_id, Account.change_token.is_(None))
            .values(change_token=token, change_expiry=expiry)
        )
        return result.rowcount == 1

    @staticmethod
    async def consume_change(conn: Scope, account_id: int, token: str) -> bool:
        """Clear token and expiry only if the account still holds token.

        Concurrent redemptions of one token serialize on the row lock, so
        exactly one of them sees the token.

        Returns:
            False if the token was already consumed or replaced.
        """
        result = await conn.execute(
            update(Account)
            .where(Account.id == account_id, Account.change_token == token)
            .values(change_token=None, change_expiry=None)
        )
        return result.rowcount == 1

    @staticmethod
    async def clear_change(conn: Scope, account_id: int) -> None:
        """Clear token and expiry together."""
        result = await conn.execute(
            update(Account)
            .where(Account.id == account_id)
            .values(change_token=None, change_expiry=None)
        )
        if result.rowcount != 1:
            raise AccountNotFoundError(account_id)

    @staticmethod
    async def get_change_snapshot(conn: Scope, account_id: int) -> ChangeSnapshot:
        """Load the change bookkeeping of an account and its credential.

        Raises:
            AccountNotFoundError: If no row matches.
        """
        stmt = (
            select(
                Account.change_token,
                Account.change_expiry,
                Account.verified,
                Account.credential_id,
                Credential.new_email,
                Credential.new_password_hash,
            )
            .select_from(Account)
            .outerjoin(Credential, Credential.id == Account.credential_id)
            .where(Account.id == account_id)
        )
        row = (await conn.execute(stmt)).first()
        if row is None:
            raise AccountNotFoundError(account_id)
        return ChangeSnapshot(
            change_token=row.change_token,
            change_expiry=as_utc(row.change_expiry),
            verified=bool(row.verified),
            credential_id=row.credential_id,
            new_email=row.new_email,
            new_password_hash=row.new_password_hash,
        )

    @staticmethod
    async def get_id_by_change_token(conn: Scope, token: str) -> int | None:
        """Id of the account holding this change token, or None."""
        result = await conn.execute(
            select(Account.id).where(Account.change_token == token)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_id_by_email(conn: Scope, email: str) -> int | None:
        """Id of the account whose credential uses this email, or None."""
        result = await conn.execute(
            select(Account.id)
            .join(Credential, Credential.id == Account.credential_id)
            .where(Credential.email == email)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_id_by_credential(conn: Scope, credential_id: int) -> int | None:
        """Id of the account owning this credential, or None."""
        result = await conn.execute(
            select(Account.id).where(Account.credential_id == credential_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def attach_credential(
        conn: Scope, account_id: int, credential_id: int
    ) -> bool:
        """Point the account at a credential if it has none yet.

        Returns:
            False if the account does not exist or already has a credential.
        """
        result = await conn.execute(
            update(Account)
            .where(Account.id == account_id, Account.credential_id.is_(None))
            .values(credential_id=credential_id)
        )
        return result.rowcount == 1

    @staticmethod
    async def increment_session_token_version(conn: Scope, account_id: int) -> None:
        """Bump the session token version, invalidating issued tokens."""
        result = await conn.execute(
            update(Account)
            .where(Account.id == account_id)
            .values(session_token_version=Account.session_token_version + 1)
        )
        if result.rowcount != 1:
            raise AccountNotFoundError(account_id)

    @staticmethod
    async def delete(conn: Scope, account_id: int) -> None:
        """Delete an account row (its credential is left to the caller)."""
        result = await conn.execute(delete(Account).where(Account.id == account_id))
        if result.rowcount != 1:
            raise AccountNotFoundError(account_id)
