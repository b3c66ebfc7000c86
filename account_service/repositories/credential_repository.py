"""Repository for Credential operations.

Single-statement reads and writes on the credentials table, addressed by
credential id. Every method takes a Scope so the caller controls connection
and transaction boundaries.
"""

from collections.abc import Iterable
from enum import Enum

from sqlalchemy import delete, insert, literal, select, update

from account_service.core.database import Scope
from account_service.core.error_matchers import (
    ErrorMatcher,
    any_of,
    check_violation,
    string_truncation,
    unique_violation,
)
from account_service.core.errors import (
    CredentialNotFoundError,
    DuplicateEmailError,
    InvalidEmailError,
)
from account_service.models.credential import Credential
from account_service.repositories.projection import FieldView


class CredentialField(Enum):
    """Columns that CredentialRepository.query() can project."""

    ID = "id"
    EMAIL = "email"
    PASSWORD_HASH = "password_hash"
    NEW_EMAIL = "new_email"
    NEW_PASSWORD_HASH = "new_password_hash"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"


class CredentialView(FieldView):
    """Queried subset of a credential row."""

    __slots__ = ()

    field_type = CredentialField


def duplicate_email_matcher(email: str) -> ErrorMatcher:
    """Unique email violation -> DuplicateEmailError."""
    return ErrorMatcher(
        unique_violation("uq_credentials_email", "credentials.email"),
        lambda: DuplicateEmailError(email),
    )


def invalid_email_matcher(email: str, constraint: str) -> ErrorMatcher:
    """Email format or length violation -> InvalidEmailError."""
    return ErrorMatcher(
        any_of(check_violation(constraint), string_truncation()),
        lambda: InvalidEmailError(email),
    )


class CredentialRepository:
    """Stateless repository for Credential table operations.

    All methods are static; there is no instance state. Pass a Scope for every call
    so the caller controls transaction boundaries.
    """

    @staticmethod
    async def create(conn: Scope, *, email: str, password_hash: str) -> int:
        """Insert a credential.

        Args:
            conn: Open scope.
            email: Login email.
            password_hash: bcrypt hash of the password.

        Returns:
            The new credential id.

        Raises:
            DuplicateEmailError: If the email is already used.
            InvalidEmailError: If the email is malformed or too long.
        """
        result = await conn.execute(
            insert(Credential).values(email=email, password_hash=password_hash),
            error_matchers=[
                duplicate_email_matcher(email),
                invalid_email_matcher(email, "ck_credentials_email_format"),
            ],
        )
        credential_id: int = result.inserted_primary_key[0]
        return credential_id

    @staticmethod
    async def query(
        conn: Scope,
        credential_id: int,
        fields: Iterable[CredentialField],
    ) -> CredentialView:
        """Fetch only the requested columns of a credential.

        Requesting no fields still checks that the row exists.

        Args:
            conn: Open scope.
            credential_id: Primary key.
            fields: Columns to project.

        Returns:
            View holding exactly the requested fields.

        Raises:
            CredentialNotFoundError: If no row matches.
        """
        fields = list(dict.fromkeys(fields))
        columns = [getattr(Credential, field.value) for field in fields]
        stmt = select(*columns or [literal(1)]).where(Credential.id == credential_id)
        row = (await conn.execute(stmt)).first()
        if row is None:
            raise CredentialNotFoundError(credential_id)
        return CredentialView.from_row(row._mapping, fields)

    @staticmethod
    async def stage_new_email(conn: Scope, credential_id: int, email: str) -> None:
        """Store the email of a pending email change.

        Raises:
            CredentialNotFoundError: If no row matches.
            InvalidEmailError: If the email is malformed or too long.
        """
        result = await conn.execute(
            update(Credential)
            .where(Credential.id == credential_id)
            .values(new_email=email),
            error_matchers=[
                invalid_email_matcher(email, "ck_credentials_new_email_format"),
            ],
        )
        if result.rowcount != 1:
            raise CredentialNotFoundError(credential_id)

    @staticmethod
    async def stage_new_password(
        conn: Scope, credential_id: int, password_hash: str
    ) -> None:
        """Store the password hash of a pending password change.

        Raises:
            CredentialNotFoundError: If no row matches.
        """
        result = await conn.execute(
            update(Credential)
            .where(Credential.id == credential_id)
            .values(new_password_hash=password_hash)
        )
        if result.rowcount != 1:
            raise CredentialNotFoundError(credential_id)

    @staticmethod
    async def clear_new_email(conn: Scope, credential_id: int) -> None:
        """Discard a staged email."""
        result = await conn.execute(
            update(Credential)
            .where(Credential.id == credential_id)
            .values(new_email=None)
        )
        if result.rowcount != 1:
            raise CredentialNotFoundError(credential_id)

    @staticmethod
    async def clear_new_password(conn: Scope, credential_id: int) -> None:
        """Discard a staged password hash."""
        result = await conn.execute(
            update(Credential)
            .where(Credential.id == credential_id)
            .values(new_password_hash=None)
        )
        if result.rowcount != 1:
            raise CredentialNotFoundError(credential_id)

    @staticmethod
    async def commit_new_email(conn: Scope, credential_id: int, email: str) -> None:
        """Move the staged email into the authoritative email column.

        Args:
            conn: Open scope.
            credential_id: Primary key.
            email: The staged value, used for the error message only.

        Raises:
            CredentialNotFoundError: If no row matches.
            DuplicateEmailError: If another credential took the email meanwhile.
        """
        result = await conn.execute(
            update(Credential)
            .where(Credential.id == credential_id)
            .values(email=Credential.new_email, new_email=None),
            error_matchers=[duplicate_email_matcher(email)],
        )
        if result.rowcount != 1:
            raise CredentialNotFoundError(credential_id)

    @staticmethod
    async def commit_new_password(conn: Scope, credential_id: int) -> None:
        """Move the staged password hash into the authoritative column."""
        result = await conn.execute(
            update(Credential)
            .where(Credential.id == credential_id)
            .values(password_hash=Credential.new_password_hash, new_password_hash=None)
        )
        if result.rowcount != 1:
            raise CredentialNotFoundError(credential_id)

    @staticmethod
    async def delete(conn: Scope, credential_id: int) -> None:
        """Delete a credential.

        Raises:
            CredentialNotFoundError: If no row matches.
        """
        result = await conn.execute(
            delete(Credential).where(Credential.id == credential_id)
        )
        if result.rowcount != 1:
            raise CredentialNotFoundError(credential_id)
