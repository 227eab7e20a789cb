"""Web routes package — assembles all sub-routers."""

from __future__ import annotations

from fastapi import APIRouter

from .comments import router as comments_router
from .health import router as health_router
from .pages import router as pages_router
from .users import router as users_router

router = APIRouter()

router.include_router(health_router)
router.include_router(pages_router)
router.include_router(comments_router)
router.include_router(users_router)

__all__ = ["router"]
