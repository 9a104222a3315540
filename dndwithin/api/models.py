"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
Business-rule validation (duplicate usernames, email syntax, empty names)
happens in the domain so every violation can be reported together; these
models only enforce shape.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from dndwithin.domain.models import Account, AccountRole, AccountStatus, GlobalSetting


class AccountCreateRequest(BaseModel):
    """Request model for account registration."""

    first_name: str
    last_name: str
    username: str
    email: str
    password: str


class AccountUpdateRequest(BaseModel):
    """Request model for updating an account's mutable fields."""

    first_name: str
    last_name: str
    account_status: AccountStatus
    account_role: AccountRole


class AccountResponse(BaseModel):
    id: UUID
    first_name: str
    last_name: str
    username: str
    email: str
    account_status: AccountStatus
    account_role: AccountRole
    created_utc: datetime | None = None
    updated_utc: datetime | None = None
    last_login_utc: datetime | None = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            first_name=account.first_name,
            last_name=account.last_name,
            username=account.username,
            email=account.email,
            account_status=account.account_status,
            account_role=account.account_role,
            created_utc=account.created_utc,
            updated_utc=account.updated_utc,
            last_login_utc=account.last_login_utc,
        )


class AccountsResponse(BaseModel):
    items: list[AccountResponse]
    page: int
    page_size: int
    total: int


class ActivationResponse(BaseModel):
    """Response model for activation and resend-activation."""

    username: str
    message: str


class LoginRequest(BaseModel):
    """Login with either an email address or a username."""

    identifier: str = Field(..., min_length=1, description="Email address or username")
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class PasswordResetStartRequest(BaseModel):
    email: EmailStr


class PasswordResetVerifyRequest(BaseModel):
    email: str
    code: str = Field(..., min_length=1)


class PasswordResetCommitRequest(BaseModel):
    email: str
    code: str = Field(..., min_length=1)
    new_password: str


class GlobalSettingCreateRequest(BaseModel):
    name: str
    value: str


class GlobalSettingResponse(BaseModel):
    id: UUID
    name: str
    value: str

    @classmethod
    def from_setting(cls, setting: GlobalSetting) -> "GlobalSettingResponse":
        return cls(id=setting.id, name=setting.name, value=setting.value)


class GlobalSettingsResponse(BaseModel):
    items: list[GlobalSettingResponse]
    page: int
    page_size: int
    total: int


class FieldError(BaseModel):
    field: str
    message: str


class ValidationErrorResponse(BaseModel):
    """Every business-rule violation found for the request."""

    errors: list[FieldError]


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
