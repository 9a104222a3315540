"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- A controllable clock
- In-memory repositories that mirror the PostgreSQL adapters' semantics
- Domain services wired to those repositories

The in-memory repositories hand out copies, the same way the database
does, so a service mutating a returned entity never changes stored state
until it writes it back.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest

from dndwithin.domain import well_known
from dndwithin.domain.accounts import AccountService
from dndwithin.domain.auth import AuthService, JwtTokenIssuer
from dndwithin.domain.exceptions import DuplicateAccountError
from dndwithin.domain.hashing import BcryptPasswordHasher
from dndwithin.domain.models import (
    Account,
    AccountActivation,
    AccountRole,
    AccountStatus,
    EmailData,
    GetAllAccountsOptions,
    GetAllGlobalSettingsOptions,
    GlobalSetting,
    PasswordReset,
    SortOrder,
)
from dndwithin.domain.settings_store import GlobalSettingsService

TEST_JWT_KEY = "test-signing-key-0123456789abcdef0123456789abcdef0123456789abcdef"
TEST_JWT_ISSUER = "https://test.dndwithin.local"
TEST_JWT_AUDIENCE = "https://test.dndwithin.local"

SERVICE_USERNAME = "dndwithin"
SERVICE_EMAIL = "no-reply@dndwithin.com"


class FixedClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, now: datetime) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


class InMemoryAccountRepository:
    """AccountRepository backed by dicts. Usernames and emails stay reserved after delete."""

    def __init__(self) -> None:
        self.accounts: dict[UUID, Account] = {}
        self.activations: dict[UUID, AccountActivation] = {}
        self.resets: dict[UUID, PasswordReset] = {}

    def add(self, account: Account, activation: AccountActivation | None = None) -> None:
        """Seed an account directly, bypassing validation."""
        self.accounts[account.id] = replace(
            account, activation_code=None, activation_expiration_utc=None
        )
        if activation is not None:
            self.activations[account.id] = replace(activation)

    def _live(self, account_id: UUID) -> Account | None:
        account = self.accounts.get(account_id)
        if account is None or account.deleted_utc is not None:
            return None
        return account

    def _view(self, account: Account | None) -> Account | None:
        if account is None or account.deleted_utc is not None:
            return None
        view = replace(account)
        activation = self.activations.get(account.id)
        if activation is not None:
            view.activation_code = activation.activation_code
            view.activation_expiration_utc = activation.expiration
        return view

    def _find(self, attr: str, value: str) -> Account | None:
        for account in self.accounts.values():
            if getattr(account, attr).lower() == value.lower() and account.deleted_utc is None:
                return account
        return None

    async def create(self, account: Account, activation: AccountActivation) -> bool:
        for existing in self.accounts.values():
            if existing.username.lower() == account.username.lower():
                raise DuplicateAccountError("username")
            if existing.email.lower() == account.email.lower():
                raise DuplicateAccountError("email")
        self.add(account, activation)
        return True

    async def exists_by_id(self, account_id: UUID) -> bool:
        return self._live(account_id) is not None

    async def exists_by_username(self, username: str) -> bool:
        return any(a.username.lower() == username.lower() for a in self.accounts.values())

    async def exists_by_email(self, email: str) -> bool:
        return any(a.email.lower() == email.lower() for a in self.accounts.values())

    async def get_by_id(self, account_id: UUID) -> Account | None:
        return self._view(self.accounts.get(account_id))

    async def get_by_username(self, username: str) -> Account | None:
        return self._view(self._find("username", username))

    async def get_by_email(self, email: str) -> Account | None:
        return self._view(self._find("email", email))

    def _filtered(self, username: str | None) -> list[Account]:
        live = [a for a in self.accounts.values() if a.deleted_utc is None]
        if username:
            live = [a for a in live if username.lower() in a.username.lower()]
        return live

    async def get_all(self, options: GetAllAccountsOptions) -> list[Account]:
        accounts = self._filtered(options.username)
        if options.account_status is not None:
            accounts = [a for a in accounts if a.account_status is options.account_status]
        if options.account_role is not None:
            accounts = [a for a in accounts if a.account_role is options.account_role]
        if options.sort_field and options.sort_order is not SortOrder.UNORDERED:
            key = "username" if options.sort_field.lower() == "username" else "last_login_utc"
            accounts.sort(
                key=lambda a: (getattr(a, key) is None, getattr(a, key) or ""),
                reverse=options.sort_order is SortOrder.DESCENDING,
            )
        start = (options.page - 1) * options.page_size
        return [self._view(a) for a in accounts[start : start + options.page_size]]

    async def get_count(self, username: str | None) -> int:
        return len(self._filtered(username))

    async def update(self, account: Account) -> bool:
        stored = self._live(account.id)
        if stored is None:
            return False
        stored.first_name = account.first_name
        stored.last_name = account.last_name
        stored.account_status = account.account_status
        stored.account_role = account.account_role
        stored.updated_utc = account.updated_utc
        return True

    async def delete(self, account_id: UUID, deleted_utc: datetime) -> bool:
        stored = self._live(account_id)
        if stored is None:
            return False
        stored.deleted_utc = deleted_utc
        stored.updated_utc = deleted_utc
        self.activations.pop(account_id, None)
        self.resets.pop(account_id, None)
        return True

    async def activate(self, account: Account) -> bool:
        stored = self._live(account.id)
        if stored is None:
            return False
        stored.account_status = AccountStatus.ACTIVE
        stored.activated_utc = account.activated_utc
        stored.updated_utc = account.updated_utc
        self.activations.pop(account.id, None)
        return True

    async def update_activation(self, account_id: UUID, activation: AccountActivation) -> bool:
        if account_id not in self.activations or self._live(account_id) is None:
            return False
        self.activations[account_id] = replace(activation)
        return True

    async def update_last_login(self, account_id: UUID, last_login_utc: datetime) -> bool:
        stored = self._live(account_id)
        if stored is None:
            return False
        stored.last_login_utc = last_login_utc
        return True

    async def get_password_reset(self, account_id: UUID) -> PasswordReset | None:
        reset = self.resets.get(account_id)
        return replace(reset) if reset is not None else None

    async def save_password_reset(self, reset: PasswordReset) -> bool:
        if self._live(reset.account_id) is None:
            return False
        self.resets[reset.account_id] = replace(reset)
        return True

    async def reset_password(
        self, account_id: UUID, password_hash: str, updated_utc: datetime
    ) -> bool:
        stored = self._live(account_id)
        if stored is None:
            return False
        stored.password = password_hash
        stored.updated_utc = updated_utc
        self.resets.pop(account_id, None)
        return True


class InMemoryEmailRepository:
    """EmailRepository backed by a dict; keeps a history of every update."""

    def __init__(self) -> None:
        self.emails: dict[UUID, EmailData] = {}
        self.updates: list[EmailData] = []
        self.queue_result = True

    async def queue(self, email: EmailData) -> bool:
        if not self.queue_result:
            return False
        self.emails[email.id] = replace(email)
        return True

    async def get_for_processing(self, batch_size: int, now: datetime) -> list[EmailData]:
        due = [e for e in self.emails.values() if e.should_send and e.send_after_utc <= now]
        due.sort(key=lambda e: e.send_after_utc)
        return [replace(e) for e in due[:batch_size]]

    async def update(self, email: EmailData) -> bool:
        stored = self.emails.get(email.id)
        if stored is None:
            return False
        stored.should_send = email.should_send
        stored.send_attempts = max(stored.send_attempts, email.send_attempts)
        stored.response_log = email.response_log
        self.updates.append(replace(stored))
        return True


class InMemorySettingsRepository:
    """GlobalSettingsRepository backed by a dict keyed by name; counts reads."""

    def __init__(self) -> None:
        self.settings: dict[str, GlobalSetting] = {}
        self.get_calls = 0

    def put(self, name: str, value: str) -> None:
        existing = self.settings.get(name)
        setting_id = existing.id if existing is not None else uuid4()
        self.settings[name] = GlobalSetting(id=setting_id, name=name, value=value)

    async def create(self, setting: GlobalSetting) -> bool:
        if setting.name in self.settings:
            return False
        self.settings[setting.name] = replace(setting)
        return True

    async def get(self, name: str) -> GlobalSetting | None:
        self.get_calls += 1
        setting = self.settings.get(name)
        return replace(setting) if setting is not None else None

    def _filtered(self, name: str | None) -> list[GlobalSetting]:
        settings = list(self.settings.values())
        if name:
            settings = [s for s in settings if name.lower() in s.name.lower()]
        return settings

    async def get_all(self, options: GetAllGlobalSettingsOptions) -> list[GlobalSetting]:
        settings = self._filtered(options.name)
        if options.sort_field and options.sort_order is not SortOrder.UNORDERED:
            settings.sort(key=lambda s: s.name, reverse=options.sort_order is SortOrder.DESCENDING)
        start = (options.page - 1) * options.page_size
        return [replace(s) for s in settings[start : start + options.page_size]]

    async def get_count(self, name: str | None) -> int:
        return len(self._filtered(name))


@pytest.fixture
def clock() -> FixedClock:
    """Clock pinned to the current second so issued JWTs are not already expired."""
    return FixedClock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture(scope="session")
def hasher() -> BcryptPasswordHasher:
    """Hasher at the minimum permitted cost to keep the suite fast."""
    return BcryptPasswordHasher(cost=10)


@pytest.fixture
def account_repository() -> InMemoryAccountRepository:
    return InMemoryAccountRepository()


@pytest.fixture
def email_repository() -> InMemoryEmailRepository:
    return InMemoryEmailRepository()


@pytest.fixture
def settings_repository() -> InMemorySettingsRepository:
    """Settings seeded with everything the email flows require."""
    repo = InMemorySettingsRepository()
    repo.put(well_known.SERVICE_ACCOUNT_USERNAME, SERVICE_USERNAME)
    repo.put(
        well_known.ACTIVATION_LINK_FORMAT,
        "https://dndwithin.com/activate/{username}/{code}",
    )
    repo.put(
        well_known.PASSWORD_RESET_LINK_FORMAT,
        "https://dndwithin.com/reset/{code}?expires={expiration}",
    )
    return repo


@pytest.fixture
def settings_service(
    settings_repository: InMemorySettingsRepository, clock: FixedClock
) -> GlobalSettingsService:
    """Uncached settings service so tests see setting changes immediately."""
    return GlobalSettingsService(settings_repository, clock, cache_ttl_seconds=0)


@pytest.fixture
def service_account(account_repository: InMemoryAccountRepository, clock: FixedClock) -> Account:
    """The account outbound emails are sent from."""
    account = Account(
        id=uuid4(),
        first_name="DND",
        last_name="Within",
        username=SERVICE_USERNAME,
        email=SERVICE_EMAIL,
        password="",
        account_status=AccountStatus.ACTIVE,
        account_role=AccountRole.ADMIN,
        created_utc=clock.now(),
        updated_utc=clock.now(),
    )
    account_repository.add(account)
    return account


@pytest.fixture
def account_service(
    account_repository: InMemoryAccountRepository,
    email_repository: InMemoryEmailRepository,
    settings_service: GlobalSettingsService,
    hasher: BcryptPasswordHasher,
    clock: FixedClock,
    service_account: Account,
) -> AccountService:
    return AccountService(
        repository=account_repository,
        email_repository=email_repository,
        settings=settings_service,
        hasher=hasher,
        clock=clock,
    )


@pytest.fixture
def token_issuer(settings_service: GlobalSettingsService, clock: FixedClock) -> JwtTokenIssuer:
    return JwtTokenIssuer(
        key=TEST_JWT_KEY,
        issuer=TEST_JWT_ISSUER,
        audience=TEST_JWT_AUDIENCE,
        settings=settings_service,
        clock=clock,
    )


@pytest.fixture
def auth_service(
    account_service: AccountService,
    hasher: BcryptPasswordHasher,
    token_issuer: JwtTokenIssuer,
) -> AuthService:
    return AuthService(accounts=account_service, hasher=hasher, token_issuer=token_issuer)


@pytest.fixture
def new_account():
    """Factory for unsaved accounts carrying a plaintext password."""

    def _make(**overrides) -> Account:
        fields = {
            "id": uuid4(),
            "first_name": "Alice",
            "last_name": "Smith",
            "username": "alice",
            "email": "alice@example.com",
            "password": "correct horse",
        }
        fields.update(overrides)
        return Account(**fields)

    return _make


@pytest.fixture
def active_account(
    account_repository: InMemoryAccountRepository,
    hasher: BcryptPasswordHasher,
    clock: FixedClock,
    new_account,
):
    """Factory that stores an already activated account with a hashed password."""

    def _make(password: str = "correct horse", **overrides) -> Account:
        account = new_account(**overrides)
        account.password = hasher.hash(password)
        account.account_status = AccountStatus.ACTIVE
        account.created_utc = clock.now()
        account.updated_utc = clock.now()
        account.activated_utc = clock.now()
        account_repository.add(account)
        return account

    return _make
