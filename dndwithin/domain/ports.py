"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure, plus the result enums returned by domain services.
Adapters implement these protocols structurally.

Repository coroutines are cancelled through normal asyncio task
cancellation; implementations must not shield their awaits.
"""

from datetime import datetime
from enum import Enum
from typing import Protocol
from uuid import UUID

from .models import (
    Account,
    AccountActivation,
    EmailData,
    GetAllAccountsOptions,
    GetAllGlobalSettingsOptions,
    GlobalSetting,
    PasswordReset,
)


class ActivationResult(Enum):
    """
    Result of an activation or resend-activation attempt.

    ACTIVATION_INVALID deliberately covers both a wrong code and an
    expired code so callers cannot use it as a guessing oracle.
    """

    SUCCESS = "success"
    ACCOUNT_NOT_FOUND = "account_not_found"
    ACTIVATION_INVALID = "activation_invalid"
    FAILED = "failed"


class LoginResult(Enum):
    """
    Result of a login attempt.

    Unknown accounts and wrong passwords both map to CREDENTIALS_INVALID.
    NOT_ACTIVATED is intentionally specific so the user knows to activate.
    """

    SUCCESS = "success"
    NOT_ACTIVATED = "not_activated"
    CREDENTIALS_INVALID = "credentials_invalid"


class PasswordResetResult(Enum):
    SUCCESS = "success"
    ACCOUNT_NOT_FOUND = "account_not_found"
    CODE_INVALID = "code_invalid"
    INVALID_PASSWORD = "invalid_password"
    FAILED = "failed"


class Clock(Protocol):
    """Port interface for the current UTC time."""

    def now(self) -> datetime:
        """Return the current time as a timezone-aware UTC datetime."""
        ...


class PasswordHasher(Protocol):
    """Port interface for credential hashing and token generation."""

    def hash(self, password: str) -> str: ...

    def verify(self, password: str, stored_hash: str | None) -> bool:
        """Return True if password matches; False for mismatches and malformed hashes."""
        ...

    def verify_dummy(self, password: str) -> bool:
        """Spend the same time as verify() when there is no hash to check. Always False."""
        ...

    def create_activation_token(self) -> str: ...


class AccountRepository(Protocol):
    """
    Port interface for account persistence.

    ``exists_*`` methods answer a yes/no question; ``get_*`` methods
    return the entity or None. Soft-deleted accounts are invisible to
    ``get_*`` and ``exists_by_id``; ``exists_by_username`` and
    ``exists_by_email`` still see them because usernames and emails stay
    reserved after deletion.
    """

    async def create(self, account: Account, activation: AccountActivation) -> bool:
        """
        Persist the account row and its activation record in one transaction.

        Raises:
            DuplicateAccountError: If a unique username/email constraint fails
        """
        ...

    async def exists_by_id(self, account_id: UUID) -> bool: ...

    async def exists_by_username(self, username: str) -> bool: ...

    async def exists_by_email(self, email: str) -> bool: ...

    async def get_by_id(self, account_id: UUID) -> Account | None: ...

    async def get_by_username(self, username: str) -> Account | None: ...

    async def get_by_email(self, email: str) -> Account | None: ...

    async def get_all(self, options: GetAllAccountsOptions) -> list[Account]: ...

    async def get_count(self, username: str | None) -> int: ...

    async def update(self, account: Account) -> bool:
        """Persist first/last name, status, role and updated_utc only."""
        ...

    async def delete(self, account_id: UUID, deleted_utc: datetime) -> bool:
        """Soft delete the account and drop pending activation/reset records."""
        ...

    async def activate(self, account: Account) -> bool:
        """Mark the account active and clear its activation record."""
        ...

    async def update_activation(self, account_id: UUID, activation: AccountActivation) -> bool:
        """Replace the activation code and expiry without touching the account row."""
        ...

    async def update_last_login(self, account_id: UUID, last_login_utc: datetime) -> bool: ...

    async def get_password_reset(self, account_id: UUID) -> PasswordReset | None: ...

    async def save_password_reset(self, reset: PasswordReset) -> bool: ...

    async def reset_password(
        self, account_id: UUID, password_hash: str, updated_utc: datetime
    ) -> bool:
        """Store the new hash and remove the pending reset in one transaction."""
        ...


class EmailRepository(Protocol):
    """Port interface for the outbound email queue."""

    async def queue(self, email: EmailData) -> bool: ...

    async def get_for_processing(self, batch_size: int, now: datetime) -> list[EmailData]:
        """Return up to batch_size rows with should_send set and send_after_utc <= now."""
        ...

    async def update(self, email: EmailData) -> bool:
        """Persist should_send, send_attempts and response_log."""
        ...


class GlobalSettingsRepository(Protocol):
    """Port interface for the global settings table."""

    async def create(self, setting: GlobalSetting) -> bool:
        """Insert the setting; returns False if the name already exists."""
        ...

    async def get(self, name: str) -> GlobalSetting | None: ...

    async def get_all(self, options: GetAllGlobalSettingsOptions) -> list[GlobalSetting]: ...

    async def get_count(self, name: str | None) -> int: ...


class EmailSender(Protocol):
    """Port interface for email delivery."""

    async def send(self, email: EmailData) -> None:
        """
        Deliver a single queued email.

        Raises:
            EmailDeliveryError: If the delivery attempt failed
        """
        ...
