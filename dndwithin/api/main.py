"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance and wires the
lifespan: database pool, migrations, the service graph and the email
dispatch worker.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from dndwithin.adapters.repository.postgres import open_pool, run_migrations
from dndwithin.api.dependencies import build_services
from dndwithin.api.v1 import router as v1_router
from dndwithin.config.settings import get_settings

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {"name": "accounts", "description": "Registration, activation and account administration"},
    {"name": "auth", "description": "Login and password reset"},
    {"name": "settings", "description": "Runtime global settings (admin only)"},
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Manages application startup and shutdown:
    - Opens the async database connection pool and runs migrations
    - Builds the service graph once per process
    - Starts the email dispatch worker when enabled
    - Stops the worker and closes the pool on shutdown
    """
    settings = get_settings()

    logger.info("Starting application...")
    logger.info("Connecting to database...")
    pool = await open_pool(
        settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
    )

    logger.info("Running database migrations...")
    await run_migrations(pool)

    services = build_services(pool, settings)
    app.state.pool = pool
    app.state.services = services

    if settings.email_dispatch_enabled:
        services.email_worker.start()

    logger.info("Application startup complete")

    try:
        yield
    finally:
        logger.info("Shutting down application...")
        await services.email_worker.stop()
        await pool.close()
        logger.info("Database connection pool closed")


app = FastAPI(
    title="dndwithin",
    description="Account lifecycle, credential and email dispatch API",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

app.include_router(v1_router, prefix="/v1")


@app.get("/health")
async def health_check(request: Request) -> dict[str, str]:
    """
    Health check endpoint with database validation.

    Returns 200 OK if application and database are healthy.
    Raises exception if database connection fails.
    """
    pool = request.app.state.pool
    async with pool.connection() as conn:
        await conn.execute("SELECT 1")

    return {"status": "healthy"}
