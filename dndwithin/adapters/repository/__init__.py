"""Repository adapters - Database implementations."""

from .accounts import PostgresAccountRepository
from .emails import PostgresEmailRepository
from .postgres import open_pool, run_migrations
from .settings import PostgresGlobalSettingsRepository

__all__ = [
    "PostgresAccountRepository",
    "PostgresEmailRepository",
    "PostgresGlobalSettingsRepository",
    "open_pool",
    "run_migrations",
]
