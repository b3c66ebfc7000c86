"""Shared fixtures.

Every test gets its own SQLite database file (foreign keys on) so tests never
share state. bcrypt runs at the minimum cost factor to keep the suite fast.
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy import update

from account_service.core.database import Database
from account_service.core.security import PasswordHasher, SessionTokenIssuer
from account_service.models import Account as AccountModel
from account_service.services.account_changes import AccountChanges
from account_service.services.account_directory import AccountDirectory
from account_service.services.entities import Account

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_SESSION_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow

TEST_NICKNAME = "tester1"
TEST_EMAIL = "a@b.com"
TEST_PASSWORD = "secret123"  # nosec B105


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[Database, None]:
    """Fresh database with all tables created."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'accounts.db'}")
    await db.create_all()

    yield db

    await db.drop_all()
    await db.dispose()


@pytest.fixture
def passwords() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def session_tokens() -> SessionTokenIssuer:
    return SessionTokenIssuer(TEST_SESSION_SECRET, issuer="account-service-test")


@pytest.fixture
def changes(database: Database) -> AccountChanges:
    return AccountChanges(database, change_ttl=timedelta(days=14))


@pytest.fixture
def directory(
    database: Database,
    changes: AccountChanges,
    passwords: PasswordHasher,
    session_tokens: SessionTokenIssuer,
) -> AccountDirectory:
    return AccountDirectory(
        database,
        changes=changes,
        passwords=passwords,
        session_tokens=session_tokens,
    )


@pytest_asyncio.fixture
async def account(directory: AccountDirectory) -> Account:
    """Unverified account tester1 / a@b.com / secret123."""
    return await directory.create_with_credential(
        TEST_NICKNAME, TEST_EMAIL, TEST_PASSWORD
    )


@pytest_asyncio.fixture
async def verified_account(directory: AccountDirectory, account: Account) -> Account:
    """The same account after redeeming its verification token."""
    token = await account.get_change_token()
    assert token is not None
    await directory.validate_change(token)
    return account


@pytest.fixture
def expire_change(database: Database) -> Callable[[int], Awaitable[None]]:
    """Move an account's change expiry into the past."""

    async def _expire(account_id: int) -> None:
        await database.execute(
            update(AccountModel)
            .where(AccountModel.id == account_id)
            .values(change_expiry=datetime.now(UTC) - timedelta(seconds=1))
        )

    return _expire
