"""Tests for CredentialRepository."""

import pytest

from account_service.core.database import Database
from account_service.core.errors import (
    CredentialNotFoundError,
    DuplicateEmailError,
    FieldNotQueriedError,
    InvalidEmailError,
)
from account_service.repositories.credential_repository import (
    CredentialField,
    CredentialRepository,
)

_MISSING_ID = 999_999


async def _create(database: Database, email: str = "user@example.com") -> int:
    return await CredentialRepository.create(
        database, email=email, password_hash="hash-1"
    )


class TestCreate:
    """Test CredentialRepository.create()."""

    async def test_returns_new_id(self, database: Database):
        credential_id = await _create(database)
        view = await CredentialRepository.query(
            database,
            credential_id,
            [CredentialField.EMAIL, CredentialField.PASSWORD_HASH],
        )
        assert view.email == "user@example.com"
        assert view.password_hash == "hash-1"

    async def test_rejects_duplicate_email(self, database: Database):
        await _create(database, "same@example.com")
        with pytest.raises(DuplicateEmailError) as exc_info:
            await _create(database, "same@example.com")
        assert exc_info.value.email == "same@example.com"
        assert exc_info.value.status_code == 409

    @pytest.mark.parametrize("email", ["not-an-email", "two words@example.com"])
    async def test_rejects_malformed_email(self, database: Database, email: str):
        with pytest.raises(InvalidEmailError) as exc_info:
            await _create(database, email)
        assert exc_info.value.status_code == 400


class TestQuery:
    """Test CredentialRepository.query()."""

    async def test_missing_row_raises(self, database: Database):
        with pytest.raises(CredentialNotFoundError) as exc_info:
            await CredentialRepository.query(
                database, _MISSING_ID, [CredentialField.EMAIL]
            )
        assert exc_info.value.credential_id == _MISSING_ID

    async def test_empty_field_list_checks_existence(self, database: Database):
        credential_id = await _create(database)
        view = await CredentialRepository.query(database, credential_id, [])
        assert view.queried == frozenset()

        with pytest.raises(CredentialNotFoundError):
            await CredentialRepository.query(database, _MISSING_ID, [])

    async def test_unrequested_field_is_absent(self, database: Database):
        credential_id = await _create(database)
        view = await CredentialRepository.query(
            database, credential_id, [CredentialField.EMAIL]
        )
        with pytest.raises(FieldNotQueriedError):
            _ = view.password_hash


class TestStaging:
    """Test staging, clearing, and committing new values."""

    async def test_stage_and_commit_email(self, database: Database):
        credential_id = await _create(database)
        await CredentialRepository.stage_new_email(
            database, credential_id, "new@example.com"
        )
        await CredentialRepository.commit_new_email(
            database, credential_id, "new@example.com"
        )

        view = await CredentialRepository.query(
            database,
            credential_id,
            [CredentialField.EMAIL, CredentialField.NEW_EMAIL],
        )
        assert view.email == "new@example.com"
        assert view.new_email is None

    async def test_stage_rejects_malformed_email(self, database: Database):
        credential_id = await _create(database)
        with pytest.raises(InvalidEmailError):
            await CredentialRepository.stage_new_email(
                database, credential_id, "broken"
            )

    async def test_commit_email_collision_raises_duplicate(self, database: Database):
        await _create(database, "taken@example.com")
        credential_id = await _create(database, "mine@example.com")
        await CredentialRepository.stage_new_email(
            database, credential_id, "taken@example.com"
        )

        with pytest.raises(DuplicateEmailError):
            await CredentialRepository.commit_new_email(
                database, credential_id, "taken@example.com"
            )

    async def test_stage_and_commit_password(self, database: Database):
        credential_id = await _create(database)
        await CredentialRepository.stage_new_password(database, credential_id, "hash-2")
        await CredentialRepository.commit_new_password(database, credential_id)

        view = await CredentialRepository.query(
            database,
            credential_id,
            [CredentialField.PASSWORD_HASH, CredentialField.NEW_PASSWORD_HASH],
        )
        assert view.password_hash == "hash-2"
        assert view.new_password_hash is None

    async def test_clear_staged_values(self, database: Database):
        credential_id = await _create(database)
        await CredentialRepository.stage_new_email(
            database, credential_id, "new@example.com"
        )
        await CredentialRepository.stage_new_password(database, credential_id, "hash-2")

        await CredentialRepository.clear_new_email(database, credential_id)
        await CredentialRepository.clear_new_password(database, credential_id)

        view = await CredentialRepository.query(
            database,
            credential_id,
            [
                CredentialField.EMAIL,
                CredentialField.NEW_EMAIL,
                CredentialField.PASSWORD_HASH,
                CredentialField.NEW_PASSWORD_HASH,
            ],
        )
        assert view.email == "user@example.com"
        assert view.new_email is None
        assert view.password_hash == "hash-1"
        assert view.new_password_hash is None

    @pytest.mark.parametrize(
        "operation",
        [
            lambda db: CredentialRepository.stage_new_password(db, _MISSING_ID, "h"),
            lambda db: CredentialRepository.clear_new_email(db, _MISSING_ID),
            lambda db: CredentialRepository.clear_new_password(db, _MISSING_ID),
            lambda db: CredentialRepository.commit_new_password(db, _MISSING_ID),
            lambda db: CredentialRepository.delete(db, _MISSING_ID),
        ],
    )
    async def test_missing_row_raises_not_found(self, database: Database, operation):
        with pytest.raises(CredentialNotFoundError):
            await operation(database)


class TestDelete:
    """Test CredentialRepository.delete()."""

    async def test_deletes_row(self, database: Database):
        credential_id = await _create(database)
        await CredentialRepository.delete(database, credential_id)
        with pytest.raises(CredentialNotFoundError):
            await CredentialRepository.query(database, credential_id, [])
