"""Search API endpoint."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from localmem.backend.api.memories import resolve_container_tag
from localmem.backend.services import get_memory_store
from localmem.errors import ValidationError
from localmem.memory import MemoryStore
from localmem.search import DEFAULT_SEARCH_LIMIT, search_memories

router = APIRouter()


class SearchMemoriesRequest(BaseModel):
    """Request model for searching memories.

    ``limit`` is clamped to 50 by the ranking engine whatever the caller asks.
    """

    q: str | None = Field(default=None, description="Search query")
    containerTag: str | None = Field(default=None)
    limit: int = Field(default=DEFAULT_SEARCH_LIMIT, ge=1)


@router.post("/memories")
async def search(
    request: SearchMemoriesRequest,
    store: MemoryStore = Depends(get_memory_store),
) -> dict:
    """Rank a tag's memories by token containment against ``q``."""
    if not request.q:
        raise ValidationError("q is required")
    tag = resolve_container_tag(request.containerTag)
    return search_memories(store, tag, request.q, request.limit).to_dict()
