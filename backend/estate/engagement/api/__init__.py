"""FastAPI routers for the estate engagement domain."""

from __future__ import annotations

from fastapi import APIRouter

from estate.engagement.api import admin, comments, members, properties

router = APIRouter(prefix="/api/estate/v1")

router.include_router(members.router)
router.include_router(properties.router)
router.include_router(comments.router)
router.include_router(admin.router)

__all__ = ["router"]
