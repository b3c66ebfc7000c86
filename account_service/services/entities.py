"""Account and Credential handles.

Entities hold only an id and the directory they came from. Every getter is a
fresh read from storage, so a handle never goes stale but each call costs a
round trip. Use query() to read several fields at once.
"""

from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING

from account_service.core.errors import CredentialNotPresentError
from account_service.repositories.account_repository import AccountField, AccountView
from account_service.repositories.credential_repository import (
    CredentialField,
    CredentialView,
)

if TYPE_CHECKING:
    from account_service.services.account_changes import ChangeType
    from account_service.services.account_directory import AccountDirectory


class Account:
    """Handle on one account.

    Obtain instances from AccountDirectory, not by calling the constructor.
    """

    __slots__ = ("_directory", "_id")

    def __init__(self, account_id: int, directory: "AccountDirectory") -> None:
        self._id = account_id
        self._directory = directory

    @property
    def id(self) -> int:
        return self._id

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Account):
            return NotImplemented
        return self._id == other._id

    def __hash__(self) -> int:
        return hash((Account, self._id))

    def __repr__(self) -> str:
        return f"Account(id={self._id})"

    async def query(self, fields: Iterable[AccountField]) -> AccountView:
        """Read several account fields in one statement.

        Raises:
            AccountNotFoundError: If the account no longer exists.
        """
        return await self._directory.query_account(self._id, fields)

    async def get_nickname(self) -> str:
        view = await self.query([AccountField.NICKNAME])
        return view.nickname

    async def is_verified(self) -> bool:
        view = await self.query([AccountField.VERIFIED])
        return bool(view.verified)

    async def get_change_token(self) -> str | None:
        """Token of the pending change as stored, without expiry checks."""
        view = await self.query([AccountField.CHANGE_TOKEN])
        return view.change_token

    async def get_change_expiry(self) -> datetime | None:
        view = await self.query([AccountField.CHANGE_EXPIRY])
        return view.change_expiry

    async def get_created_time(self) -> datetime:
        view = await self.query([AccountField.CREATED_AT])
        return view.created_at

    async def get_change_state(self) -> "ChangeType | None":
        """Pending change type; resets an expired change as a side effect."""
        return await self._directory.changes.get_change_state(self._id)

    async def has_credential(self) -> bool:
        return await self._credential_or_none() is not None

    async def get_credential(self) -> "Credential":
        """Default login of the account.

        Raises:
            AccountNotFoundError: If the account no longer exists.
            CredentialNotPresentError: If the account has no default login.
        """
        credential = await self._credential_or_none()
        if credential is None:
            raise CredentialNotPresentError(self._id)
        return credential

    async def add_credential(self, email: str, password: str) -> None:
        """Give the account a default login; see AccountDirectory."""
        await self._directory.add_credential(self._id, email, password)

    async def remove_credential(self) -> None:
        """Remove the default login; see AccountDirectory."""
        await self._directory.remove_credential(self._id)

    async def get_email(self) -> str | None:
        credential = await self._credential_or_none()
        return await credential.get_email() if credential else None

    async def get_new_email(self) -> str | None:
        credential = await self._credential_or_none()
        return await credential.get_new_email() if credential else None

    async def set_nickname(self, nickname: str) -> None:
        """Replace the nickname.

        Raises:
            AccountNotFoundError: If the account no longer exists.
            InvalidNicknameError: If the nickname is malformed.
        """
        await self._directory.set_nickname(self._id, nickname)

    async def delete(self) -> None:
        """Delete the account together with its credential."""
        await self._directory.delete(self._id)

    async def _credential_or_none(self) -> "Credential | None":
        view = await self.query([AccountField.CREDENTIAL_ID])
        if view.credential_id is None:
            return None
        return Credential(view.credential_id, self._directory)


class Credential:
    """Handle on one default (email + password) login."""

    __slots__ = ("_directory", "_id")

    def __init__(self, credential_id: int, directory: "AccountDirectory") -> None:
        self._id = credential_id
        self._directory = directory

    @property
    def id(self) -> int:
        return self._id

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Credential):
            return NotImplemented
        return self._id == other._id

    def __hash__(self) -> int:
        return hash((Credential, self._id))

    def __repr__(self) -> str:
        return f"Credential(id={self._id})"

    async def query(self, fields: Iterable[CredentialField]) -> CredentialView:
        """Read several credential fields in one statement.

        Raises:
            CredentialNotFoundError: If the credential no longer exists.
        """
        return await self._directory.query_credential(self._id, fields)

    async def get_email(self) -> str:
        view = await self.query([CredentialField.EMAIL])
        return view.email

    async def get_password_hash(self) -> str:
        view = await self.query([CredentialField.PASSWORD_HASH])
        return view.password_hash

    async def get_new_email(self) -> str | None:
        view = await self.query([CredentialField.NEW_EMAIL])
        return view.new_email

    async def get_new_password_hash(self) -> str | None:
        view = await self.query([CredentialField.NEW_PASSWORD_HASH])
        return view.new_password_hash

    async def check_password(self, plaintext: str) -> bool:
        """Whether plaintext matches the current password."""
        password_hash = await self.get_password_hash()
        return self._directory.passwords.verify(plaintext, password_hash)
