"""
Domain layer - Pure business logic with no web or database framework imports.

This package contains the account lifecycle, credential and settings
logic. It defines its own port interfaces for infrastructure abstraction;
adapters in ``dndwithin.adapters`` implement them.
"""

from .accounts import AccountService, CreateAccountResult
from .auth import AuthService, JwtTokenIssuer, LoginOutcome
from .clock import SystemClock
from .exceptions import (
    AccountError,
    ConfigurationMissingError,
    DuplicateAccountError,
    EmailDeliveryError,
)
from .hashing import BcryptPasswordHasher
from .ports import (
    AccountRepository,
    ActivationResult,
    Clock,
    EmailRepository,
    EmailSender,
    GlobalSettingsRepository,
    LoginResult,
    PasswordHasher,
    PasswordResetResult,
)
from .settings_store import GlobalSettingsService

__all__ = [
    "AccountError",
    "AccountRepository",
    "AccountService",
    "ActivationResult",
    "AuthService",
    "BcryptPasswordHasher",
    "Clock",
    "ConfigurationMissingError",
    "CreateAccountResult",
    "DuplicateAccountError",
    "EmailDeliveryError",
    "EmailRepository",
    "EmailSender",
    "GlobalSettingsRepository",
    "GlobalSettingsService",
    "JwtTokenIssuer",
    "LoginOutcome",
    "LoginResult",
    "PasswordHasher",
    "PasswordResetResult",
    "SystemClock",
]
