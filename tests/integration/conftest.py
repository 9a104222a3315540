"""
Shared fixtures for integration tests.

Opens an async pool against the configured database, applies migrations
and empties every table before each test. Tests are skipped when
PostgreSQL cannot be reached.
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import psycopg
import pytest
import pytest_asyncio
from psycopg_pool import AsyncConnectionPool

from dndwithin.adapters.repository import (
    PostgresAccountRepository,
    PostgresEmailRepository,
    PostgresGlobalSettingsRepository,
    open_pool,
    run_migrations,
)
from dndwithin.config.settings import get_settings
from dndwithin.domain.clock import SystemClock
from dndwithin.domain.models import Account, AccountActivation

TABLES = ("email", "account_password_reset", "account_activation", "account", "globalsettings")


@pytest_asyncio.fixture
async def pool() -> AsyncGenerator[AsyncConnectionPool, None]:
    """Create a connection pool against a freshly cleaned schema."""
    settings = get_settings()
    try:
        probe = await psycopg.AsyncConnection.connect(settings.database_url, connect_timeout=2)
    except psycopg.OperationalError:
        pytest.skip("PostgreSQL is not reachable")
    await probe.close()

    pool = await open_pool(settings.database_url, min_size=1, max_size=10)
    await run_migrations(pool)
    async with pool.connection() as conn:
        for table in TABLES:
            await conn.execute(f"DELETE FROM {table}")
    yield pool
    await pool.close()


@pytest.fixture
def account_repo(pool: AsyncConnectionPool) -> PostgresAccountRepository:
    return PostgresAccountRepository(pool)


@pytest.fixture
def email_repo(pool: AsyncConnectionPool) -> PostgresEmailRepository:
    return PostgresEmailRepository(pool, SystemClock())


@pytest.fixture
def settings_repo(pool: AsyncConnectionPool) -> PostgresGlobalSettingsRepository:
    return PostgresGlobalSettingsRepository(pool)


@pytest.fixture
def now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


@pytest.fixture
def make_account(now: datetime):
    """Factory for accounts ready to pass to create()."""

    def _make(username: str = "alice", email: str | None = None, **overrides) -> Account:
        fields = {
            "id": uuid4(),
            "first_name": "Alice",
            "last_name": "Smith",
            "username": username,
            "email": email or f"{username}@example.com",
            "password": "$2b$10$notarealhashbutlongenoughtostore",
            "created_utc": now,
            "updated_utc": now,
        }
        fields.update(overrides)
        return Account(**fields)

    return _make


@pytest.fixture
def activation_for(now: datetime):
    def _make(account: Account, code: str = "code-1", minutes: int = 5) -> AccountActivation:
        return AccountActivation(
            username=account.username,
            activation_code=code,
            expiration=now + timedelta(minutes=minutes),
        )

    return _make
