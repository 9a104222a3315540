"""
Shared fixtures for adversarial tests.

Provides a real PostgreSQL-backed AccountService for race condition tests.
Tests that need the database are skipped when it cannot be reached.
"""

from collections.abc import AsyncGenerator

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
from dndwithin.domain.accounts import AccountService
from dndwithin.domain.clock import SystemClock
from dndwithin.domain.hashing import BcryptPasswordHasher
from dndwithin.domain.settings_store import GlobalSettingsService

TABLES = ("email", "account_password_reset", "account_activation", "account", "globalsettings")


@pytest_asyncio.fixture
async def pool() -> AsyncGenerator[AsyncConnectionPool, None]:
    """Create connection pool for adversarial tests."""
    settings = get_settings()
    try:
        probe = await psycopg.AsyncConnection.connect(settings.database_url, connect_timeout=2)
    except psycopg.OperationalError:
        pytest.skip("PostgreSQL is not reachable")
    await probe.close()

    pool = await open_pool(settings.database_url, min_size=1, max_size=20)
    await run_migrations(pool)
    async with pool.connection() as conn:
        for table in TABLES:
            await conn.execute(f"DELETE FROM {table}")
    yield pool
    await pool.close()


@pytest.fixture
def postgres_account_service(pool: AsyncConnectionPool) -> AccountService:
    """AccountService wired to PostgreSQL, with no email configuration."""
    clock = SystemClock()
    return AccountService(
        repository=PostgresAccountRepository(pool),
        email_repository=PostgresEmailRepository(pool, clock),
        settings=GlobalSettingsService(PostgresGlobalSettingsRepository(pool), clock),
        hasher=BcryptPasswordHasher(cost=10),
        clock=clock,
    )
