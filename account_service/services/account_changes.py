"""Pending account change state machine.

An account has at most one pending change at a time. Which change is pending
is not stored; it is derived from the account and its credential:

- not verified            → VERIFY_ACCOUNT (takes precedence over everything)
- staged new_email        → NEW_EMAIL
- staged new_password_hash → NEW_PASSWORD
- otherwise               → no change

The change token and its expiry are stored on the account. Verification
changes never expire; email and password changes expire after change_ttl.
Expiry is discovered on read: get_change_state() resets an expired change
(clearing the token and the staged value) instead of a background sweep.

Every operation accepts an optional open scope. When given, the operation
joins that transaction; otherwise it opens its own.
"""

import logging
import secrets
from datetime import UTC, datetime, timedelta
from enum import Enum

from account_service.core.config import settings
from account_service.core.database import Connection, Database, get_database
from account_service.core.errors import (
    ChangeAlreadyInProgressError,
    InvalidChangeTokenError,
)
from account_service.repositories.account_repository import (
    AccountField,
    AccountRepository,
)
from account_service.repositories.credential_repository import CredentialRepository

logger = logging.getLogger(__name__)

# Expiry stored for changes that never expire (account verification)
NEVER_EXPIRES = datetime(9999, 12, 31, 23, 59, 59, tzinfo=UTC)

# Bytes of randomness in a change token (43 URL-safe characters)
_CHANGE_TOKEN_BYTES = 32


# =============================================================================
# Enums
# =============================================================================


class ChangeType(Enum):
    """Kinds of pending account changes."""

    VERIFY_ACCOUNT = "verify_account"
    NEW_EMAIL = "new_email"
    NEW_PASSWORD = "new_password"


def derive_change_type(
    verified: bool,
    new_email: str | None,
    new_password_hash: str | None,
) -> ChangeType | None:
    """Derive the pending change from account and credential columns.

    Ignores the change token and its expiry.

    Args:
        verified: Whether the account is verified.
        new_email: Staged email, or None.
        new_password_hash: Staged password hash, or None.

    Returns:
        The pending change type, or None if nothing is staged.
    """
    if not verified:
        return ChangeType.VERIFY_ACCOUNT
    if new_email:
        return ChangeType.NEW_EMAIL
    if new_password_hash:
        return ChangeType.NEW_PASSWORD
    return None


def generate_change_token() -> str:
    """Create an unguessable URL-safe change token."""
    return secrets.token_urlsafe(_CHANGE_TOKEN_BYTES)


# =============================================================================
# State machine
# =============================================================================


class AccountChanges:
    """Issues, expires, and commits pending account changes."""

    def __init__(
        self,
        database: Database | None = None,
        *,
        change_ttl: timedelta | None = None,
    ) -> None:
        """Initialize the state machine.

        Args:
            database: Connection pool. Defaults to the process-wide one.
            change_ttl: Lifetime of email/password changes. Defaults to
                CHANGE_TTL_DAYS.
        """
        self._database = database or get_database()
        self.change_ttl = change_ttl or timedelta(days=settings.change_ttl_days)

    async def get_change_state(
        self,
        account_id: int,
        conn: Connection | None = None,
    ) -> ChangeType | None:
        """Current pending change, resetting it first if it has expired.

        Args:
            account_id: Account to inspect.
            conn: Open scope to join, if any.

        Returns:
            The pending change type, or None if no live change exists.

        Raises:
            AccountNotFoundError: If the account does not exist.
        """
        async with self._database.transaction(conn) as scope:
            snapshot = await AccountRepository.get_change_snapshot(scope, account_id)
            if snapshot.change_token is None:
                return None

            change = derive_change_type(
                snapshot.verified, snapshot.new_email, snapshot.new_password_hash
            )
            if snapshot.change_expiry is not None and snapshot.change_expiry > _now():
                return change

            await self.reset_change(scope, account_id, change)
            logger.info(
                "Expired change %s reset for account %s",
                change.value if change else None,
                account_id,
            )
            return None

    async def new_change(
        self,
        account_id: int,
        *,
        unbounded: bool = False,
        conn: Connection | None = None,
    ) -> str:
        """Start a new pending change and return its token.

        The caller stages the actual value (new email, new password hash)
        in the same scope afterwards.

        Args:
            account_id: Account to start the change on.
            unbounded: If True, the change never expires. Otherwise it
                expires after change_ttl.
            conn: Open scope to join, if any.

        Returns:
            The change token.

        Raises:
            AccountNotFoundError: If the account does not exist.
            ChangeAlreadyInProgressError: If a live change is pending.
        """
        async with self._database.transaction(conn) as scope:
            if await self.get_change_state(account_id, conn=scope) is not None:
                raise ChangeAlreadyInProgressError(account_id)

            token = generate_change_token()
            expiry = NEVER_EXPIRES if unbounded else _now() + self.change_ttl

            # Only writes if no token is set; a concurrent claim makes this a no-op
            claimed = await AccountRepository.claim_change(
                scope, account_id, token, expiry
            )
            if not claimed:
                await AccountRepository.query(scope, account_id, [])
                raise ChangeAlreadyInProgressError(account_id)

        logger.info("Change issued for account %s", account_id)
        return token

    async def validate_change(
        self,
        token: str,
        conn: Connection | None = None,
    ) -> ChangeType | None:
        """Commit the pending change identified by token.

        The token is consumed first with a guarded UPDATE, so of several
        concurrent redemptions only one proceeds. Then VERIFY_ACCOUNT marks
        the account verified, NEW_EMAIL and NEW_PASSWORD move the staged
        value into place (a new password also revokes issued session tokens).
        Everything happens in one transaction.

        Args:
            token: Change token handed out by new_change().
            conn: Open scope to join, if any.

        Returns:
            The committed change type, or None if nothing was staged.

        Raises:
            InvalidChangeTokenError: If no account holds this token.
            DuplicateEmailError: If the staged email was taken meanwhile.
        """
        async with self._database.transaction(conn) as scope:
            account_id = await AccountRepository.get_id_by_change_token(scope, token)
            if account_id is None or not await AccountRepository.consume_change(
                scope, account_id, token
            ):
                raise InvalidChangeTokenError(token)

            snapshot = await AccountRepository.get_change_snapshot(scope, account_id)
            change = derive_change_type(
                snapshot.verified, snapshot.new_email, snapshot.new_password_hash
            )

            if change is ChangeType.VERIFY_ACCOUNT:
                await AccountRepository.set_verified(scope, account_id)
            elif change is ChangeType.NEW_EMAIL:
                assert snapshot.credential_id is not None, "no credential"
                assert snapshot.new_email is not None, "new_email is staged"
                await CredentialRepository.commit_new_email(
                    scope, snapshot.credential_id, snapshot.new_email
                )
            elif change is ChangeType.NEW_PASSWORD:
                assert snapshot.credential_id is not None, "no credential"
                await CredentialRepository.commit_new_password(
                    scope, snapshot.credential_id
                )
                await AccountRepository.increment_session_token_version(
                    scope, account_id
                )

        logger.info(
            "Change %s committed for account %s",
            change.value if change else None,
            account_id,
        )
        return change

    async def reset_change(
        self,
        conn: Connection,
        account_id: int,
        change: ChangeType | None,
    ) -> None:
        """Abandon a pending change.

        Clears the token and expiry, and the staged value of an email or
        password change. A verification change has nothing staged.

        Args:
            conn: Open scope (always part of the caller's transaction).
            account_id: Account whose change is reset.
            change: The change being abandoned.

        Raises:
            AccountNotFoundError: If the account does not exist.
        """
        await AccountRepository.clear_change(conn, account_id)

        if change not in (ChangeType.NEW_EMAIL, ChangeType.NEW_PASSWORD):
            return

        view = await AccountRepository.query(
            conn, account_id, [AccountField.CREDENTIAL_ID]
        )
        if view.credential_id is None:
            return
        if change is ChangeType.NEW_EMAIL:
            await CredentialRepository.clear_new_email(conn, view.credential_id)
        else:
            await CredentialRepository.clear_new_password(conn, view.credential_id)

    async def get_account_id_by_change_token(
        self,
        token: str,
        conn: Connection | None = None,
    ) -> int:
        """Id of the account holding a pending change token.

        Raises:
            InvalidChangeTokenError: If no account holds this token.
        """
        async with self._database.transaction(conn) as scope:
            account_id = await AccountRepository.get_id_by_change_token(scope, token)
        if account_id is None:
            raise InvalidChangeTokenError(token)
        return account_id


def _now() -> datetime:
    return datetime.now(UTC)
