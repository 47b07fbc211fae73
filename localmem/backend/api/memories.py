"""Memory CRUD API endpoints."""

from typing import Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, StrictBool, StrictFloat, StrictInt, StrictStr

from localmem.backend.services import get_memory_store
from localmem.errors import ValidationError
from localmem.log_config import get_logger
from localmem.memory import DEFAULT_CONTAINER_TAG, MemoryStore
from localmem.security import validate_container_tag

router = APIRouter()
log = get_logger("backend.api.memories")

# Booleans are not numbers here: StrictBool is tried before StrictInt
MetadataField = dict[str, Union[StrictBool, StrictInt, StrictFloat, StrictStr]]


def resolve_container_tag(tag: str | None) -> str:
    """Apply the default tag and validate the result.

    Raises:
        ValidationError: 400 if the tag is malformed
    """
    return validate_container_tag(tag or DEFAULT_CONTAINER_TAG)


class AddMemoryRequest(BaseModel):
    """Request model for adding a memory."""

    content: str | None = Field(default=None, description="Memory content to store")
    containerTag: str | None = Field(default=None, description="Container tag (default: 'default')")
    metadata: MetadataField | None = Field(default=None, description="Scalar metadata values")
    customId: str | None = Field(default=None, max_length=256, description="Caller-chosen id")


class AddMemoryResponse(BaseModel):
    """Response model for an added memory."""

    id: str
    status: str = "ok"


class ListMemoriesRequest(BaseModel):
    """Request model for listing recent memories."""

    containerTags: str | list[str] | None = Field(default=None)
    limit: int = Field(default=20, ge=1, le=1000)


class StatusResponse(BaseModel):
    status: str = "ok"


@router.post("/", response_model=AddMemoryResponse, include_in_schema=False)
@router.post("/add", response_model=AddMemoryResponse)
async def add_memory(
    request: AddMemoryRequest,
    store: MemoryStore = Depends(get_memory_store),
) -> AddMemoryResponse:
    """Store a new memory in a container tag."""
    if not request.content:
        raise ValidationError("content is required")
    tag = resolve_container_tag(request.containerTag)

    memory_id = store.add(
        tag,
        request.content,
        metadata=request.metadata,
        custom_id=request.customId or None,
    )
    log.info(f"Added memory {memory_id[:8]}... to tag {tag}")
    return AddMemoryResponse(id=memory_id)


@router.post("/memories/list")
async def list_memories(
    request: ListMemoriesRequest | None = None,
    store: MemoryStore = Depends(get_memory_store),
) -> dict:
    """List the most recent memories of a tag, newest first.

    ``containerTags`` may be a single tag or a list; only the first list
    entry is used.
    """
    request = request or ListMemoriesRequest()
    tags = request.containerTags
    if isinstance(tags, list):
        tags = tags[0] if tags else None
    tag = resolve_container_tag(tags)

    records = store.list_memories(tag, request.limit)
    return {"memories": [r.to_public_dict() for r in records]}


@router.delete("/memories/{memory_id}", response_model=StatusResponse)
async def delete_memory(
    memory_id: str,
    store: MemoryStore = Depends(get_memory_store),
) -> StatusResponse:
    """Soft-delete a memory by id, searching every tag."""
    store.soft_delete(memory_id)
    return StatusResponse()
