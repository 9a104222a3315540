"""
Authentication - credential verification and JWT issuance.

Login looks the account up by email (identifier contains ``@``) or by
username, checks that it is active, verifies the password and issues an
HS256 JWT whose authorization claims are derived from the account role.

Security Design - Enumeration Oracle Prevention:
------------------------------------------------
An unknown identifier and a wrong password return the same result and
message. For unknown identifiers a dummy bcrypt verification still runs
so both paths spend comparable time. The not-activated case is reported
separately on purpose, to point the user at the activation email.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any
from uuid import uuid4

import jwt

from . import well_known
from .accounts import AccountService
from .models import Account, AccountRole, AccountStatus
from .ports import Clock, LoginResult, PasswordHasher
from .settings_store import GlobalSettingsService

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"

ADMIN_CLAIM = "admin"
TRUSTED_CLAIM = "trusted_user"

CREDENTIALS_INVALID_MESSAGE = "Username or password was incorrect"
NOT_ACTIVATED_MESSAGE = "You must activate your account before you can login"


@dataclass(frozen=True)
class LoginOutcome:
    result: LoginResult
    message: str
    token: str | None = None


class JwtTokenIssuer:
    """Signs and verifies access tokens with a symmetric key."""

    def __init__(
        self,
        key: str,
        issuer: str,
        audience: str,
        settings: GlobalSettingsService,
        clock: Clock,
    ) -> None:
        if not key:
            raise ValueError("JWT signing key is required")
        self._key = key
        self._issuer = issuer
        self._audience = audience
        self._settings = settings
        self._clock = clock

    async def issue(self, account: Account) -> str:
        """
        Create a signed JWT for an authenticated account.

        Claims: jti, sub/email (account email), iat, exp, iss, aud and the
        boolean role claims ``admin`` and ``trusted_user``.
        """
        lifetime_hours = await self._settings.get_int(
            well_known.JWT_TOKEN_LIFETIME_HOURS, well_known.DEFAULT_JWT_TOKEN_LIFETIME_HOURS
        )
        now = self._clock.now()
        payload: dict[str, Any] = {
            "jti": str(uuid4()),
            "sub": account.email,
            "email": account.email,
            "iat": now,
            "exp": now + timedelta(hours=lifetime_hours),
            "iss": self._issuer,
            "aud": self._audience,
            ADMIN_CLAIM: account.account_role is AccountRole.ADMIN,
            TRUSTED_CLAIM: account.account_role in (AccountRole.ADMIN, AccountRole.TRUSTED),
        }
        return jwt.encode(payload, self._key, algorithm=JWT_ALGORITHM)

    def decode(self, token: str) -> dict[str, Any]:
        """
        Decode and verify a token issued by this service.

        Raises:
            jwt.PyJWTError: If the signature, expiry, issuer or audience is invalid
        """
        return jwt.decode(
            token,
            self._key,
            algorithms=[JWT_ALGORITHM],
            issuer=self._issuer,
            audience=self._audience,
        )


@dataclass
class AuthService:
    """Verifies credentials and hands out tokens."""

    accounts: AccountService
    hasher: PasswordHasher
    token_issuer: JwtTokenIssuer

    async def login(self, identifier: str, password: str) -> LoginOutcome:
        """
        Authenticate by email or username and issue a token.

        Returns:
            LoginOutcome with SUCCESS and a token, NOT_ACTIVATED, or
            CREDENTIALS_INVALID for unknown accounts and wrong passwords.
        """
        if "@" in identifier:
            account = await self.accounts.get_by_email(identifier)
        else:
            account = await self.accounts.get_by_username(identifier)

        if account is None:
            self.hasher.verify_dummy(password)
            logger.warning("Login failed: unknown identifier")
            return LoginOutcome(LoginResult.CREDENTIALS_INVALID, CREDENTIALS_INVALID_MESSAGE)

        if account.account_status is not AccountStatus.ACTIVE:
            logger.info("Login refused for inactive account %s", account.id)
            return LoginOutcome(LoginResult.NOT_ACTIVATED, NOT_ACTIVATED_MESSAGE)

        if not self.hasher.verify(password, account.password):
            logger.warning("Login failed: bad password for account %s", account.id)
            return LoginOutcome(LoginResult.CREDENTIALS_INVALID, CREDENTIALS_INVALID_MESSAGE)

        token = await self.token_issuer.issue(account)
        await self._stamp_last_login(account)
        return LoginOutcome(LoginResult.SUCCESS, "Login successful", token)

    async def _stamp_last_login(self, account: Account) -> None:
        try:
            await self.accounts.record_login(account.id)
        except Exception:
            logger.exception("Failed to record last login for account %s", account.id)
