"""API routers for the localmem backend."""

from fastapi import APIRouter

from localmem.backend.api.memories import router as memories_router
from localmem.backend.api.profile import router as profile_router
from localmem.backend.api.search import router as search_router

# Main API router that aggregates all sub-routers
router = APIRouter()

router.include_router(memories_router, tags=["memories"])
router.include_router(search_router, prefix="/search", tags=["search"])
router.include_router(profile_router, tags=["profile"])

__all__ = ["router"]
