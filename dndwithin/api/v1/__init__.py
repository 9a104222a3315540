"""
API v1 package.

Combines the versioned account, auth and settings routers.
"""

from fastapi import APIRouter

from dndwithin.api.v1.accounts import router as accounts_router
from dndwithin.api.v1.auth import router as auth_router
from dndwithin.api.v1.settings import router as settings_router

router = APIRouter()
router.include_router(accounts_router)
router.include_router(auth_router)
router.include_router(settings_router)

__all__ = ["router"]
