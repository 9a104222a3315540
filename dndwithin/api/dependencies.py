"""
FastAPI dependencies - Dependency injection factories.

The object graph is built once per process by ``build_services`` during
lifespan startup and stored on ``app.state``. The settings service holds
the per-process settings cache, so it must not be rebuilt per request.
Routes receive collaborators through the Depends() factories below.
"""

from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from psycopg_pool import AsyncConnectionPool

from dndwithin.adapters.repository import (
    PostgresAccountRepository,
    PostgresEmailRepository,
    PostgresGlobalSettingsRepository,
)
from dndwithin.adapters.smtp.console import ConsoleEmailSender
from dndwithin.config.settings import Settings
from dndwithin.domain.accounts import AccountService
from dndwithin.domain.auth import ADMIN_CLAIM, AuthService, JwtTokenIssuer
from dndwithin.domain.clock import SystemClock
from dndwithin.domain.hashing import BcryptPasswordHasher
from dndwithin.domain.ports import Clock
from dndwithin.domain.settings_store import GlobalSettingsService
from dndwithin.worker.email_dispatch import EmailDispatchWorker


@dataclass
class Services:
    """Process-wide service graph."""

    accounts: AccountService
    auth: AuthService
    settings: GlobalSettingsService
    token_issuer: JwtTokenIssuer
    email_worker: EmailDispatchWorker


def build_services(pool: AsyncConnectionPool, config: Settings, clock: Clock | None = None) -> Services:
    """Wire repositories, domain services and the dispatch worker together."""
    clock = clock or SystemClock()
    hasher = BcryptPasswordHasher(cost=config.bcrypt_cost)

    account_repository = PostgresAccountRepository(pool)
    email_repository = PostgresEmailRepository(pool, clock)
    settings_service = GlobalSettingsService(
        PostgresGlobalSettingsRepository(pool),
        clock,
        cache_ttl_seconds=config.settings_cache_ttl_seconds,
    )

    accounts = AccountService(
        repository=account_repository,
        email_repository=email_repository,
        settings=settings_service,
        hasher=hasher,
        clock=clock,
    )
    token_issuer = JwtTokenIssuer(
        key=config.jwt_key,
        issuer=config.jwt_issuer,
        audience=config.jwt_audience,
        settings=settings_service,
        clock=clock,
    )
    auth = AuthService(accounts=accounts, hasher=hasher, token_issuer=token_issuer)
    email_worker = EmailDispatchWorker(
        email_repository=email_repository,
        sender=ConsoleEmailSender(),
        settings=settings_service,
        clock=clock,
        interval_seconds=config.email_dispatch_interval_seconds,
    )

    return Services(
        accounts=accounts,
        auth=auth,
        settings=settings_service,
        token_issuer=token_issuer,
        email_worker=email_worker,
    )


def get_services(request: Request) -> Services:
    """
    Get the service graph from app state.

    The graph is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.services


def get_account_service(services: Services = Depends(get_services)) -> AccountService:
    return services.accounts


def get_auth_service(services: Services = Depends(get_services)) -> AuthService:
    return services.auth


def get_settings_service(services: Services = Depends(get_services)) -> GlobalSettingsService:
    return services.settings


def get_token_issuer(services: Services = Depends(get_services)) -> JwtTokenIssuer:
    return services.token_issuer


# Bearer token security scheme for OpenAPI documentation.
# Missing credentials are rejected in require_admin with a 401.
http_bearer = HTTPBearer(auto_error=False)


def require_admin(
    credentials: HTTPAuthorizationCredentials | None = Depends(http_bearer),
    issuer: JwtTokenIssuer = Depends(get_token_issuer),
) -> dict:
    """
    Decode the bearer token and require the admin claim.

    Returns:
        The decoded token claims.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        claims = issuer.decode(credentials.credentials)
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        ) from None

    if claims.get(ADMIN_CLAIM) is not True:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return claims
