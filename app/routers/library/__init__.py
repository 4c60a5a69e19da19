"""Grouped routers for the library endpoints."""
from fastapi import APIRouter

from . import profile, series, stats, volumes

router = APIRouter(prefix="/v1", tags=["library"])
router.include_router(series.router)
router.include_router(volumes.router)
router.include_router(stats.router)
router.include_router(profile.router)

__all__ = ["router"]
