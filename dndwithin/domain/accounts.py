"""
Account domain service - account lifecycle state machine.

This module contains the business logic for account creation, activation,
password reset and administrative updates.

Account Lifecycle
=================

States:
- CREATED: Account persisted with a pending activation code and expiry
- ACTIVE: Activation succeeded; the account may log in
- BANNED: Set administratively through update(); no automatic transitions

Transitions:
    CREATED -> ACTIVE   (activate with the current code before it expires)
    CREATED -> CREATED  (resend_activation replaces code and expiry)

The activation code and expiry are cleared on activation, so replaying a
used code fails the same way as a wrong one.

Outbound email
==============

Activation and reset emails are written to the email queue after the
primary write has committed. Queueing is best effort: any failure while
building or queueing the email is logged and swallowed, and the parent
operation still reports its own outcome. Delivery is handled later by the
email dispatch worker.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID, uuid4

from . import well_known
from .exceptions import ConfigurationMissingError, DuplicateAccountError
from .models import (
    Account,
    AccountActivation,
    AccountRole,
    AccountStatus,
    EmailData,
    GetAllAccountsOptions,
    PasswordReset,
    PasswordResetRequest,
    ValidationFailure,
    ValidationResult,
)
from .ports import (
    AccountRepository,
    ActivationResult,
    Clock,
    EmailRepository,
    PasswordHasher,
    PasswordResetResult,
)
from .settings_store import GlobalSettingsService
from .validation import AccountValidator, validate_account_options, validate_password

logger = logging.getLogger(__name__)

_DUPLICATE_MESSAGES = {
    "username": "Username already in use",
    "email": "Email already exists. Please login instead",
}


@dataclass(frozen=True)
class CreateAccountResult:
    """Outcome of create(); failures is empty on success."""

    success: bool
    failures: list[ValidationFailure] = field(default_factory=list)
    account: Account | None = None


def normalize(value: str | None) -> str:
    """
    Normalize a username or email for storage and lookup.

    Applies: strip whitespace + lowercase
    """
    return (value or "").strip().lower()


def codes_match(stored: str | None, supplied: str | None) -> bool:
    """Constant-time code comparison that treats a missing side as a mismatch."""
    if not stored or not supplied:
        return False
    return secrets.compare_digest(stored.encode(), supplied.encode())


@dataclass
class AccountService:
    """
    Domain service for the account lifecycle.

    Holds no per-request state; all collaborators are injected.
    """

    repository: AccountRepository
    email_repository: EmailRepository
    settings: GlobalSettingsService
    hasher: PasswordHasher
    clock: Clock

    async def create(self, account: Account) -> CreateAccountResult:
        """
        Validate and persist a new account with its activation record.

        The account is always created in CREATED status with the STANDARD
        role. The password is replaced by its hash before persistence.

        Returns:
            CreateAccountResult whose ``success`` reflects the persist step.
            The activation email is queued best effort and never affects it.
        """
        account.username = normalize(account.username)
        account.email = normalize(account.email)

        validation = await AccountValidator(self.repository).validate(account)
        if not validation.is_valid:
            return CreateAccountResult(success=False, failures=validation.failures)

        now = self.clock.now()
        account.created_utc = now
        account.updated_utc = now
        account.account_status = AccountStatus.CREATED
        account.account_role = AccountRole.STANDARD
        account.password = self.hasher.hash(account.password)

        activation = await self._new_activation(account.username)
        account.activation_code = activation.activation_code
        account.activation_expiration_utc = activation.expiration

        try:
            created = await self.repository.create(account, activation)
        except DuplicateAccountError as e:
            # Lost a race with a concurrent creator after validation passed
            message = _DUPLICATE_MESSAGES.get(e.field, "Account already exists")
            return CreateAccountResult(
                success=False, failures=[ValidationFailure(e.field, message)]
            )

        if not created:
            logger.error("Account %s was not persisted", account.id)
            return CreateAccountResult(success=False)

        logger.info("Account created: %s", account.id)
        await self._queue_activation_email(account, activation)
        return CreateAccountResult(success=True, account=account)

    async def activate(self, activation: AccountActivation) -> ActivationResult:
        """
        Activate an account with the code it was issued.

        Wrong and expired codes both return ACTIVATION_INVALID.
        """
        account = await self.repository.get_by_username(normalize(activation.username))
        if account is None:
            return ActivationResult.ACCOUNT_NOT_FOUND

        now = self.clock.now()
        if not self._activation_is_valid(account, activation.activation_code, now):
            logger.warning("Activation rejected for account %s", account.id)
            return ActivationResult.ACTIVATION_INVALID

        account.account_status = AccountStatus.ACTIVE
        account.activated_utc = now
        account.updated_utc = now
        account.activation_code = None
        account.activation_expiration_utc = None

        if not await self.repository.activate(account):
            logger.error("Activation write failed for account %s", account.id)
            return ActivationResult.FAILED

        logger.info("Account activated: %s", account.id)
        return ActivationResult.SUCCESS

    async def resend_activation(self, request: AccountActivation) -> ActivationResult:
        """
        Issue a fresh activation code and expiry, then re-queue the email.

        The caller must present the account's current code. Expiry is not
        checked here since resending after expiry is the common case.
        """
        account = await self.repository.get_by_username(normalize(request.username))
        if account is None:
            return ActivationResult.ACCOUNT_NOT_FOUND

        if not codes_match(account.activation_code, request.activation_code):
            logger.warning("Resend activation rejected for account %s", account.id)
            return ActivationResult.ACTIVATION_INVALID

        activation = await self._new_activation(account.username)
        if not await self.repository.update_activation(account.id, activation):
            return ActivationResult.FAILED

        account.activation_code = activation.activation_code
        account.activation_expiration_utc = activation.expiration
        await self._queue_activation_email(account, activation)
        return ActivationResult.SUCCESS

    async def request_password_reset(self, email: str) -> None:
        """
        Issue a reset code and queue the reset email if the account exists.

        Returns nothing in every case so callers cannot learn whether the
        email is registered.
        """
        account = await self.repository.get_by_email(normalize(email))
        if account is None:
            logger.info("Password reset requested for unknown email")
            return

        minutes = await self.settings.get_int(
            well_known.PASSWORD_RESET_EXPIRATION_MINUTES,
            well_known.DEFAULT_PASSWORD_RESET_EXPIRATION_MINUTES,
        )
        reset = PasswordReset(
            account_id=account.id,
            code=self.hasher.create_activation_token(),
            expiration=self.clock.now() + timedelta(minutes=minutes),
        )

        try:
            saved = await self.repository.save_password_reset(reset)
        except Exception:
            # A failure here must look the same as the unknown-email path
            logger.exception("Failed to store password reset for account %s", account.id)
            return

        if saved:
            await self._queue_password_reset_email(account, reset)

    async def verify_password_reset_code(self, email: str, code: str) -> PasswordResetResult:
        result, _ = await self._check_password_reset(email, code)
        return result

    async def reset_password(
        self, request: PasswordResetRequest
    ) -> tuple[PasswordResetResult, list[ValidationFailure]]:
        """
        Replace the password after re-validating the reset code.

        The pending reset is removed in the same write, so a code can only
        be used once.
        """
        validation = ValidationResult()
        validate_password(request.new_password, validation, field="new_password")
        if not validation.is_valid:
            return PasswordResetResult.INVALID_PASSWORD, validation.failures

        result, account = await self._check_password_reset(request.email, request.code)
        if result is not PasswordResetResult.SUCCESS:
            return result, []

        password_hash = self.hasher.hash(request.new_password)
        if not await self.repository.reset_password(account.id, password_hash, self.clock.now()):
            return PasswordResetResult.FAILED, []

        logger.info("Password reset for account %s", account.id)
        return PasswordResetResult.SUCCESS, []

    async def get_by_id(self, account_id: UUID) -> Account | None:
        return await self.repository.get_by_id(account_id)

    async def get_by_email(self, email: str) -> Account | None:
        return await self.repository.get_by_email(normalize(email))

    async def get_by_username(self, username: str) -> Account | None:
        return await self.repository.get_by_username(normalize(username))

    async def get_all(
        self, options: GetAllAccountsOptions
    ) -> tuple[ValidationResult, list[Account]]:
        validation = validate_account_options(options)
        if not validation.is_valid:
            return validation, []
        return validation, await self.repository.get_all(options)

    async def get_count(self, username: str | None) -> int:
        return await self.repository.get_count(username)

    async def record_login(self, account_id: UUID) -> bool:
        """Stamp the account's last login time. Returns False if it no longer exists."""
        return await self.repository.update_last_login(account_id, self.clock.now())

    async def update(self, account: Account) -> tuple[ValidationResult, Account | None]:
        """
        Update the mutable fields of an existing account.

        Only first name, last name, status and role are taken from
        ``account``; username, email and password have dedicated flows.

        Returns:
            (validation, None) if the account does not exist or input is
            invalid, otherwise (validation, updated account).
        """
        validation = ValidationResult()
        if not (account.first_name or "").strip():
            validation.add("first_name", "First name cannot be empty")
        if not (account.last_name or "").strip():
            validation.add("last_name", "Last name cannot be empty")
        if not validation.is_valid:
            return validation, None

        existing = await self.repository.get_by_id(account.id)
        if existing is None:
            return validation, None

        existing.first_name = account.first_name.strip()
        existing.last_name = account.last_name.strip()
        existing.account_status = account.account_status
        existing.account_role = account.account_role
        existing.updated_utc = self.clock.now()

        if not await self.repository.update(existing):
            return validation, None
        return validation, existing

    async def delete(self, account_id: UUID) -> bool:
        """Soft delete; pending activation and reset codes are discarded too."""
        deleted = await self.repository.delete(account_id, self.clock.now())
        if deleted:
            logger.info("Account soft-deleted: %s", account_id)
        return deleted

    async def _new_activation(self, username: str) -> AccountActivation:
        minutes = await self.settings.get_int(
            well_known.ACCOUNT_ACTIVATION_EXPIRATION_MINUTES,
            well_known.DEFAULT_ACTIVATION_EXPIRATION_MINUTES,
        )
        return AccountActivation(
            username=username,
            activation_code=self.hasher.create_activation_token(),
            expiration=self.clock.now() + timedelta(minutes=minutes),
        )

    def _activation_is_valid(self, account: Account, code: str, now: datetime) -> bool:
        code_ok = codes_match(account.activation_code, code)
        expiry = account.activation_expiration_utc
        return code_ok and expiry is not None and now < expiry

    async def _check_password_reset(
        self, email: str, code: str
    ) -> tuple[PasswordResetResult, Account | None]:
        account = await self.repository.get_by_email(normalize(email))
        if account is None:
            return PasswordResetResult.ACCOUNT_NOT_FOUND, None

        reset = await self.repository.get_password_reset(account.id)
        if reset is None or not codes_match(reset.code, code) or self.clock.now() >= reset.expiration:
            logger.warning("Password reset code rejected for account %s", account.id)
            return PasswordResetResult.CODE_INVALID, account

        return PasswordResetResult.SUCCESS, account

    async def _queue_activation_email(
        self, account: Account, activation: AccountActivation
    ) -> None:
        try:
            link_format = await self._required_setting(well_known.ACTIVATION_LINK_FORMAT)
            subject = await self.settings.get_str(
                well_known.ACTIVATION_EMAIL_SUBJECT, well_known.DEFAULT_ACTIVATION_EMAIL_SUBJECT
            )
            body = link_format.format(
                username=account.username,
                code=activation.activation_code,
                expiration=activation.expiration.isoformat() if activation.expiration else "",
            )
            await self._queue_email(account, subject, body)
        except Exception:
            logger.exception("Failed to queue activation email for account %s", account.id)

    async def _queue_password_reset_email(self, account: Account, reset: PasswordReset) -> None:
        try:
            link_format = await self._required_setting(well_known.PASSWORD_RESET_LINK_FORMAT)
            subject = await self.settings.get_str(
                well_known.PASSWORD_RESET_EMAIL_SUBJECT,
                well_known.DEFAULT_PASSWORD_RESET_EMAIL_SUBJECT,
            )
            body = link_format.format(
                username=account.username,
                code=reset.code,
                expiration=reset.expiration.isoformat(),
            )
            await self._queue_email(account, subject, body)
        except Exception:
            logger.exception("Failed to queue password reset email for account %s", account.id)

    async def _queue_email(self, recipient: Account, subject: str, body: str) -> None:
        service_username = await self._required_setting(well_known.SERVICE_ACCOUNT_USERNAME)
        sender = await self.repository.get_by_username(normalize(service_username))
        if sender is None:
            raise ConfigurationMissingError(well_known.SERVICE_ACCOUNT_USERNAME)

        now = self.clock.now()
        email = EmailData(
            id=uuid4(),
            sender_account_id=sender.id,
            receiver_account_id=recipient.id,
            sender_email=sender.email,
            recipient_email=recipient.email,
            subject=subject,
            body=body,
            send_after_utc=now,
        )
        email.append_log(now, "Email created")

        if not await self.email_repository.queue(email):
            logger.error("Email %s for account %s was not queued", email.id, recipient.id)

    async def _required_setting(self, name: str) -> str:
        value = await self.settings.get_str(name, "")
        if not value.strip():
            raise ConfigurationMissingError(name)
        return value
