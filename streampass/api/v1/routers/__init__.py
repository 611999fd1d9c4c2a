"""Aggregated v1 router."""

from fastapi import APIRouter

from streampass.api.v1.routers.admin_series import router as admin_series_router
from streampass.api.v1.routers.playback import router as playback_router

router = APIRouter()
router.include_router(playback_router)
router.include_router(admin_series_router)

__all__ = ["router"]
