"""Profile API endpoint."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from localmem.backend.api.memories import resolve_container_tag
from localmem.backend.services import get_memory_store, get_profile_extractor
from localmem.errors import ValidationError
from localmem.memory import MemoryStore
from localmem.profile import ProfileExtractor, build_profile
from localmem.search import search_memories

router = APIRouter()

PROFILE_SEARCH_LIMIT = 5


class ProfileRequest(BaseModel):
    """Request model for profile extraction."""

    containerTag: str | None = Field(default=None)
    q: str | None = Field(default=None, description="Optional query for attached search results")


@router.post("/profile")
async def get_profile(
    request: ProfileRequest,
    store: MemoryStore = Depends(get_memory_store),
    extractor: ProfileExtractor = Depends(get_profile_extractor),
) -> dict:
    """Summarize a tag's recent memories into static and dynamic facts.

    When ``q`` is given, the top matches for it are attached as
    ``searchResults``.
    """
    if not request.containerTag:
        raise ValidationError("containerTag is required")
    tag = resolve_container_tag(request.containerTag)

    response: dict = {"profile": build_profile(store, tag, extractor).to_dict()}
    if request.q:
        response["searchResults"] = search_memories(store, tag, request.q, PROFILE_SEARCH_LIMIT).to_dict()
    return response
