"""
Domain models - Entities and value objects for the account subsystem.

Plain dataclasses with no framework imports. Repositories map rows onto
these types and services mutate them before handing them back for
persistence.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID


class AccountStatus(str, Enum):
    """
    Account lifecycle states.

    CREATED -> ACTIVE happens through activation. BANNED is set out of band
    by an administrator and has no automatic transitions.
    """

    CREATED = "created"
    ACTIVE = "active"
    BANNED = "banned"


class AccountRole(str, Enum):
    """Authorization roles, ordered from least to most privileged."""

    STANDARD = "standard"
    TRUSTED = "trusted"
    ADMIN = "admin"


class SortOrder(str, Enum):
    UNORDERED = "unordered"
    ASCENDING = "ascending"
    DESCENDING = "descending"


@dataclass
class Account:
    """
    Identity, credential and lifecycle record.

    ``password`` always holds a bcrypt hash once the account has been
    through AccountService.create. ``activation_code`` and
    ``activation_expiration_utc`` are either both set or both None.
    """

    id: UUID
    first_name: str
    last_name: str
    username: str
    email: str
    password: str
    account_status: AccountStatus = AccountStatus.CREATED
    account_role: AccountRole = AccountRole.STANDARD
    created_utc: datetime | None = None
    updated_utc: datetime | None = None
    last_login_utc: datetime | None = None
    activated_utc: datetime | None = None
    deleted_utc: datetime | None = None
    activation_code: str | None = None
    activation_expiration_utc: datetime | None = None


@dataclass
class AccountActivation:
    """Username/code pair used as input and output of the activation flows."""

    username: str
    activation_code: str
    expiration: datetime | None = None


@dataclass
class PasswordReset:
    """Pending password reset issued to an account."""

    account_id: UUID
    code: str
    expiration: datetime


@dataclass
class PasswordResetRequest:
    """Commit payload for the password reset flow."""

    email: str
    code: str
    new_password: str


@dataclass
class EmailData:
    """
    A queued outbound email.

    ``response_log`` is an append-only audit trail of ``"<utc>: <text>;"``
    entries. ``send_attempts`` only ever increases.
    """

    id: UUID
    sender_account_id: UUID
    receiver_account_id: UUID
    sender_email: str
    recipient_email: str
    subject: str
    body: str
    send_after_utc: datetime
    should_send: bool = True
    send_attempts: int = 0
    response_log: str = ""

    def append_log(self, timestamp: datetime, message: str) -> None:
        self.response_log += f"{timestamp.isoformat()}: {message};"


@dataclass
class GlobalSetting:
    id: UUID
    name: str
    value: str


@dataclass
class GetAllAccountsOptions:
    page: int
    page_size: int
    username: str | None = None
    account_status: AccountStatus | None = None
    account_role: AccountRole | None = None
    sort_field: str | None = None
    sort_order: SortOrder = SortOrder.UNORDERED


@dataclass
class GetAllGlobalSettingsOptions:
    page: int
    page_size: int
    name: str | None = None
    sort_field: str | None = None
    sort_order: SortOrder = SortOrder.UNORDERED


@dataclass(frozen=True)
class ValidationFailure:
    """A single business-rule violation tied to the offending field."""

    field: str
    message: str


@dataclass
class ValidationResult:
    failures: list[ValidationFailure] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.failures

    def add(self, field_name: str, message: str) -> None:
        self.failures.append(ValidationFailure(field_name, message))
