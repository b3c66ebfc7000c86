"""Account directory service.

Entry point for everything account related: creating accounts with their
default login, lookups by id, email, or change token, staging email and
password changes, password and session token authentication.

Multi-statement operations run in one transaction and drive the record
access layer and the change state machine through the same scope.
Single-statement reads run directly on the pool.
"""

import logging
from collections.abc import Iterable
from datetime import timedelta

from account_service.core.config import settings
from account_service.core.database import Connection, Database, get_database
from account_service.core.errors import (
    AccountNotFoundError,
    CredentialAlreadyPresentError,
    CredentialNotFoundError,
    CredentialNotPresentError,
    InvalidCredentialsError,
    InvalidLoginStateError,
)
from account_service.core.security import PasswordHasher, SessionTokenIssuer
from account_service.repositories.account_repository import (
    AccountField,
    AccountRepository,
    AccountView,
)
from account_service.repositories.credential_repository import (
    CredentialField,
    CredentialRepository,
    CredentialView,
)
from account_service.services.account_changes import (
    NEVER_EXPIRES,
    AccountChanges,
    ChangeType,
    generate_change_token,
)
from account_service.services.entities import Account, Credential

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    """Emails are stored and compared lowercase."""
    return email.lower()


class AccountDirectory:
    """Creates, finds, and authenticates accounts.

    Collaborators are injected; any left out is built from settings.
    """

    def __init__(
        self,
        database: Database | None = None,
        *,
        changes: AccountChanges | None = None,
        passwords: PasswordHasher | None = None,
        session_tokens: SessionTokenIssuer | None = None,
    ) -> None:
        self._database = database or get_database()
        self.changes = changes or AccountChanges(self._database)
        self.passwords = passwords or PasswordHasher(settings.bcrypt_rounds)
        self._session_tokens = session_tokens

    @property
    def session_tokens(self) -> SessionTokenIssuer:
        """Session token issuer, built from settings on first use."""
        if self._session_tokens is None:
            self._session_tokens = SessionTokenIssuer(
                settings.session_token_secret.get_secret_value(),
                issuer=settings.session_token_issuer,
                expires_delta=timedelta(minutes=settings.session_token_ttl_minutes),
            )
        return self._session_tokens

    # =========================================================================
    # Creation and lookup
    # =========================================================================

    async def create_with_credential(
        self,
        nickname: str,
        email: str,
        password: str,
    ) -> Account:
        """Create an unverified account with an email + password login.

        The account starts with a never-expiring verification change; its
        token is available from Account.get_change_token().

        Args:
            nickname: Display name.
            email: Login email (stored lowercase).
            password: Plaintext password (stored as a bcrypt hash).

        Returns:
            The new account.

        Raises:
            DuplicateEmailError: If the email is already used.
            InvalidEmailError: If the email is malformed.
            InvalidNicknameError: If the nickname is malformed.
        """
        password_hash = self.passwords.hash(password)

        async with self._database.transaction() as conn:
            credential_id = await CredentialRepository.create(
                conn,
                email=normalize_email(email),
                password_hash=password_hash,
            )
            account_id = await AccountRepository.create(
                conn,
                nickname=nickname,
                credential_id=credential_id,
                change_token=generate_change_token(),
                change_expiry=NEVER_EXPIRES,
                verified=False,
            )

        logger.info("Account %s created", account_id)
        return Account(account_id, self)

    async def get(self, account_id: int) -> Account:
        """Account by id.

        Raises:
            AccountNotFoundError: If no such account exists.
        """
        await AccountRepository.query(self._database, account_id, [])
        return Account(account_id, self)

    async def get_by_email(self, email: str) -> Account:
        """Account whose login uses this email.

        Raises:
            AccountNotFoundError: If no account uses the email.
        """
        account_id = await AccountRepository.get_id_by_email(
            self._database, normalize_email(email)
        )
        if account_id is None:
            raise AccountNotFoundError(email=email)
        return Account(account_id, self)

    async def get_by_change_token(self, token: str) -> Account:
        """Account holding a pending change token.

        Raises:
            InvalidChangeTokenError: If no account holds the token.
        """
        account_id = await self.changes.get_account_id_by_change_token(token)
        return Account(account_id, self)

    async def get_by_credential(self, credential_id: int) -> Account:
        """Account owning a credential, for login paths.

        Raises:
            InvalidCredentialsError: If no account owns the credential.
        """
        account_id = await AccountRepository.get_id_by_credential(
            self._database, credential_id
        )
        if account_id is None:
            raise InvalidCredentialsError()
        return Account(account_id, self)

    async def get_credential(self, credential_id: int) -> Credential:
        """Credential by id.

        Raises:
            CredentialNotFoundError: If no such credential exists.
        """
        await CredentialRepository.query(self._database, credential_id, [])
        return Credential(credential_id, self)

    async def query_account(
        self, account_id: int, fields: Iterable[AccountField]
    ) -> AccountView:
        """Read the requested account columns in one statement.

        Raises:
            AccountNotFoundError: If no such account exists.
        """
        return await AccountRepository.query(self._database, account_id, fields)

    async def query_credential(
        self, credential_id: int, fields: Iterable[CredentialField]
    ) -> CredentialView:
        """Read the requested credential columns in one statement.

        Raises:
            CredentialNotFoundError: If no such credential exists.
        """
        return await CredentialRepository.query(self._database, credential_id, fields)

    # =========================================================================
    # Default login
    # =========================================================================

    async def add_credential(self, account_id: int, email: str, password: str) -> None:
        """Give an account without one a default (email + password) login.

        Raises:
            AccountNotFoundError: If no such account exists.
            CredentialAlreadyPresentError: If the account already has one.
            DuplicateEmailError: If the email is already used.
            InvalidEmailError: If the email is malformed.
        """
        view = await AccountRepository.query(
            self._database, account_id, [AccountField.CREDENTIAL_ID]
        )
        if view.credential_id is not None:
            raise CredentialAlreadyPresentError(account_id)

        password_hash = self.passwords.hash(password)

        async with self._database.transaction() as conn:
            credential_id = await CredentialRepository.create(
                conn,
                email=normalize_email(email),
                password_hash=password_hash,
            )
            # Only writes if no credential is set; a concurrent add loses here
            if not await AccountRepository.attach_credential(
                conn, account_id, credential_id
            ):
                await AccountRepository.query(conn, account_id, [])
                raise CredentialAlreadyPresentError(account_id)

        logger.info("Default login added to account %s", account_id)

    async def remove_credential(self, account_id: int) -> None:
        """Remove the default login of an account.

        An account must keep at least one login. The default login is the
        only kind this core manages, so removal is refused whenever one is
        present.

        Raises:
            AccountNotFoundError: If no such account exists.
            CredentialNotPresentError: If the account has no default login.
            InvalidLoginStateError: If the account would be left without a
                login.
        """
        view = await AccountRepository.query(
            self._database, account_id, [AccountField.CREDENTIAL_ID]
        )
        if view.credential_id is None:
            raise CredentialNotPresentError(account_id)
        raise InvalidLoginStateError(account_id)

    # =========================================================================
    # Authentication
    # =========================================================================

    async def authenticate(self, email: str, password: str) -> Account:
        """Log in with email and password.

        Security: a bcrypt comparison runs whether or not the email exists,
        and every failure raises the same error.

        Raises:
            InvalidCredentialsError: If email or password is wrong.
        """
        async with self._database.connection() as conn:
            account_id = await AccountRepository.get_id_by_email(
                conn, normalize_email(email)
            )
            if account_id is None:
                self.passwords.verify_dummy(password)
                raise InvalidCredentialsError()

            try:
                account = await AccountRepository.query(
                    conn, account_id, [AccountField.CREDENTIAL_ID]
                )
                credential = await CredentialRepository.query(
                    conn, account.credential_id, [CredentialField.PASSWORD_HASH]
                )
            except (AccountNotFoundError, CredentialNotFoundError) as exc:
                # Deleted between the email lookup and the hash read
                self.passwords.verify_dummy(password)
                raise InvalidCredentialsError() from exc

        if not self.passwords.verify(password, credential.password_hash):
            logger.info("Failed login for account %s", account_id)
            raise InvalidCredentialsError()
        return Account(account_id, self)

    async def issue_session_token(self, account_id: int) -> str:
        """Mint a session token bound to the current session token version.

        Raises:
            AccountNotFoundError: If no such account exists.
        """
        view = await AccountRepository.query(
            self._database, account_id, [AccountField.SESSION_TOKEN_VERSION]
        )
        return self.session_tokens.mint(account_id, view.session_token_version)

    async def authenticate_session_token(self, token: str) -> Account:
        """Account a session token was issued to.

        Raises:
            InvalidCredentialsError: If the token is invalid, expired, revoked,
                or its account no longer exists.
        """
        account_id, version = self.session_tokens.verify(token)
        try:
            view = await AccountRepository.query(
                self._database, account_id, [AccountField.SESSION_TOKEN_VERSION]
            )
        except AccountNotFoundError as exc:
            raise InvalidCredentialsError() from exc

        if view.session_token_version != version:
            raise InvalidCredentialsError()
        return Account(account_id, self)

    async def invalidate_session_tokens(self, account_id: int) -> None:
        """Revoke every session token issued so far (logout everywhere)."""
        await AccountRepository.increment_session_token_version(
            self._database, account_id
        )
        logger.info("Session tokens invalidated for account %s", account_id)

    # =========================================================================
    # Changes
    # =========================================================================

    async def request_email_change(self, account_id: int, new_email: str) -> str:
        """Stage a new email and return the token that confirms it.

        Raises:
            AccountNotFoundError: If no such account exists.
            ChangeAlreadyInProgressError: If another change is pending.
            CredentialNotPresentError: If the account has no default login.
            InvalidEmailError: If the new email is malformed.
        """
        async with self._database.transaction() as conn:
            token = await self.changes.new_change(account_id, conn=conn)
            credential_id = await self._require_credential_id(conn, account_id)
            await CredentialRepository.stage_new_email(
                conn, credential_id, normalize_email(new_email)
            )
        return token

    async def request_password_change(
        self, account_id: int, new_password: str
    ) -> str:
        """Stage a new password and return the token that confirms it.

        Raises:
            AccountNotFoundError: If no such account exists.
            ChangeAlreadyInProgressError: If another change is pending.
            CredentialNotPresentError: If the account has no default login.
        """
        password_hash = self.passwords.hash(new_password)

        async with self._database.transaction() as conn:
            token = await self.changes.new_change(account_id, conn=conn)
            credential_id = await self._require_credential_id(conn, account_id)
            await CredentialRepository.stage_new_password(
                conn, credential_id, password_hash
            )
        return token

    async def validate_change(self, token: str) -> ChangeType | None:
        """Commit the pending change identified by token.

        Raises:
            InvalidChangeTokenError: If no account holds the token.
            DuplicateEmailError: If a staged email was taken meanwhile.
        """
        return await self.changes.validate_change(token)

    # =========================================================================
    # Mutation
    # =========================================================================

    async def set_nickname(self, account_id: int, nickname: str) -> None:
        """Replace an account's nickname.

        Raises:
            AccountNotFoundError: If no such account exists.
            InvalidNicknameError: If the nickname is malformed.
        """
        await AccountRepository.set_nickname(self._database, account_id, nickname)

    async def delete(self, account_id: int) -> None:
        """Delete an account and its credential in one transaction.

        Raises:
            AccountNotFoundError: If no such account exists.
        """
        async with self._database.transaction() as conn:
            view = await AccountRepository.query(
                conn, account_id, [AccountField.CREDENTIAL_ID]
            )
            await AccountRepository.delete(conn, account_id)
            if view.credential_id is not None:
                await CredentialRepository.delete(conn, view.credential_id)

        logger.info("Account %s deleted", account_id)

    @staticmethod
    async def _require_credential_id(conn: Connection, account_id: int) -> int:
        view = await AccountRepository.query(
            conn, account_id, [AccountField.CREDENTIAL_ID]
        )
        if view.credential_id is None:
            raise CredentialNotPresentError(account_id)
        return view.credential_id
