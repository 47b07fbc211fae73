"""Memory store for localmem.

Durable keyed collection of memory records grouped by container tag.
The whole store is loaded into memory at startup and flushed to a single
JSON snapshot after every mutation.
"""

import os
import shutil
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

import orjson

from localmem.errors import InternalError, NotFoundError, ValidationError
from localmem.log_config import get_logger
from localmem.security import MetadataValue, sanitize_metadata, validate_content, validate_custom_id

log = get_logger("memory")

SNAPSHOT_VERSION = 1
SNAPSHOT_FILENAME = "memories.json"
DEFAULT_CONTAINER_TAG = "default"
TITLE_MAX_LENGTH = 100
DEFAULT_MAX_CONTENT_CHARS = 100_000


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def extract_title(content: str, max_length: int = TITLE_MAX_LENGTH) -> str | None:
    """Derive a title from the first line of content."""
    if not content:
        return None
    first_line = content.split("\n", 1)[0].strip()
    if not first_line:
        return None
    if len(first_line) <= max_length:
        return first_line
    return first_line[:max_length] + "..."


@dataclass
class MemoryRecord:
    """A stored memory.

    Attributes:
        id: Identifier, unique within its container tag
        content: Text content
        title: First line of content, truncated
        metadata: Scalar metadata values
        created_at: ISO-8601 creation time
        updated_at: ISO-8601 last modification time (>= created_at)
        deleted: Soft-delete flag
    """

    id: str
    content: str
    title: str | None = None
    metadata: dict[str, MetadataValue] = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = ""
    deleted: bool = False

    def __post_init__(self):
        if not self.updated_at or self.updated_at < self.created_at:
            self.updated_at = self.created_at

    def to_dict(self) -> dict[str, Any]:
        """Full representation, as persisted in the snapshot."""
        return {
            "id": self.id,
            "content": self.content,
            "title": self.title,
            "metadata": self.metadata,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "deleted": self.deleted,
        }

    def to_public_dict(self) -> dict[str, Any]:
        """Representation returned by the API (no deleted flag)."""
        data = self.to_dict()
        del data["deleted"]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MemoryRecord":
        content = str(data.get("content") or "")
        return cls(
            id=str(data["id"]),
            content=content,
            title=data.get("title", extract_title(content)),
            metadata=sanitize_metadata(data.get("metadata")),
            created_at=str(data.get("createdAt") or utc_now()),
            updated_at=str(data.get("updatedAt") or ""),
            deleted=bool(data.get("deleted", False)),
        )


class MemoryStore:
    """Persistent, tag-partitioned memory store.

    All mutations (add, soft delete) and their flushes run under one lock,
    so there is never more than one writer.

    Example:
        >>> store = MemoryStore(Path("~/.localmem/memories.json").expanduser())
        >>> memory_id = store.add("proj1", "User prefers TypeScript over JavaScript")
        >>> store.list_memories("proj1", limit=5)
    """

    def __init__(self, path: Path, max_content_chars: int = DEFAULT_MAX_CONTENT_CHARS):
        """Initialize and load the store.

        Args:
            path: Snapshot file location
            max_content_chars: Longer content is rejected
        """
        self.path = Path(path)
        self.max_content_chars = max_content_chars
        self._memories: dict[str, list[MemoryRecord]] = {}
        self._write_lock = threading.RLock()
        self.load()

    # ───────────────────────────────────────────────────────────────────────────
    # Persistence
    # ───────────────────────────────────────────────────────────────────────────

    def load(self) -> None:
        """Load the snapshot from disk.

        An unreadable snapshot is copied aside and the store starts empty:
        availability wins over durability, and the operator is expected to
        restore from backup.
        """
        with self._write_lock:
            self._memories = {}
            if not self.path.exists():
                log.info(f"No snapshot at {self.path}, starting with empty store")
                return

            try:
                data = orjson.loads(self.path.read_bytes())
                memories = data.get("memories") or {}
                self._memories = {
                    str(tag): [MemoryRecord.from_dict(r) for r in records]
                    for tag, records in memories.items()
                }
            except Exception as e:
                self._memories = {}
                backup = self._preserve_corrupt_snapshot()
                log.error(
                    f"Failed to load snapshot {self.path}: {e}. "
                    f"Starting with an EMPTY store; unreadable file kept at {backup}. "
                    "Restore from backup if this data matters."
                )
                return

            log.info(f"Loaded {self.count()} memories across {len(self._memories)} tags from {self.path}")

    def _preserve_corrupt_snapshot(self) -> Path | None:
        """Copy an unreadable snapshot aside so the next flush cannot clobber it."""
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        backup = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        try:
            shutil.copy2(self.path, backup)
            return backup
        except OSError as e:
            log.error(f"Could not preserve corrupt snapshot {self.path}: {e}")
            return None

    def _snapshot(self) -> dict[str, Any]:
        return {
            "version": SNAPSHOT_VERSION,
            "memories": {
                tag: [r.to_dict() for r in records]
                for tag, records in self._memories.items()
            },
        }

    def _write_atomic(self, data: dict[str, Any]) -> None:
        """Write the snapshot atomically using temp file + rename.

        Readers see either the previous file or the new one, never a
        partial write.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        tmp_path = self.path.with_suffix(".tmp")
        try:
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(orjson.dumps(data, option=orjson.OPT_INDENT_2))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)  # Atomic on POSIX
        except Exception:
            tmp_path.unlink(missing_ok=True)
            raise

    def flush(self) -> None:
        """Rewrite the whole snapshot.

        Raises:
            InternalError: If the snapshot cannot be written
        """
        with self._write_lock:
            try:
                self._write_atomic(self._snapshot())
            except (OSError, orjson.JSONEncodeError) as e:
                log.error(f"Failed to write snapshot {self.path}: {e}")
                raise InternalError(f"Failed to persist memory store: {e}") from e
            log.trace(f"Snapshot flushed: {self.path}")

    # ───────────────────────────────────────────────────────────────────────────
    # Operations
    # ───────────────────────────────────────────────────────────────────────────

    def add(
        self,
        tag: str,
        content: str | None,
        metadata: dict[str, Any] | None = None,
        custom_id: str | None = None,
    ) -> str:
        """Append a new memory to a tag and flush.

        Args:
            tag: Container tag
            content: Text content, stored verbatim
            metadata: Optional scalar metadata
            custom_id: Caller-supplied id (generated when omitted)

        Returns:
            The record id

        Raises:
            ValidationError: If content is empty, too long or not valid UTF-8,
                or the id is malformed or already exists in the tag
            InternalError: If the snapshot cannot be written
        """
        content = validate_content(content, self.max_content_chars)
        if custom_id is not None:
            validate_custom_id(custom_id)

        with self._write_lock:
            records = self._memories.setdefault(tag, [])
            memory_id = custom_id or str(uuid4())
            if any(r.id == memory_id for r in records):
                raise ValidationError(f"Memory id already exists in containerTag '{tag}': {memory_id}")

            now = utc_now()
            record = MemoryRecord(
                id=memory_id,
                content=content,
                title=extract_title(content),
                metadata=sanitize_metadata(metadata),
                created_at=now,
                updated_at=now,
            )
            records.append(record)

            try:
                self.flush()
            except InternalError:
                records.pop()
                if not records:
                    del self._memories[tag]
                raise

        log.debug(f"Stored memory: id={memory_id[:8]}..., tag={tag}, chars={len(content)}")
        return memory_id

    def get(self, tag: str, memory_id: str) -> MemoryRecord | None:
        """Get a record (deleted or not) by tag and id."""
        for record in self._memories.get(tag, []):
            if record.id == memory_id:
                return record
        return None

    def active_records(self, tag: str) -> list[MemoryRecord]:
        """Non-deleted records for a tag, in insertion order."""
        return [r for r in self._memories.get(tag, []) if not r.deleted]

    def list_memories(self, tag: str, limit: int = 20) -> list[MemoryRecord]:
        """Most recent non-deleted records for a tag, newest first."""
        if limit <= 0:
            return []
        return list(reversed(self.active_records(tag)[-limit:]))

    def soft_delete(self, memory_id: str) -> MemoryRecord:
        """Mark the first non-deleted record with this id as deleted and flush.

        Raises:
            NotFoundError: If no tag holds a live record with this id
            InternalError: If the snapshot cannot be written
        """
        with self._write_lock:
            for tag, records in self._memories.items():
                for record in records:
                    if record.id != memory_id or record.deleted:
                        continue

                    previous_updated = record.updated_at
                    record.deleted = True
                    record.updated_at = max(utc_now(), record.created_at)
                    try:
                        self.flush()
                    except InternalError:
                        record.deleted = False
                        record.updated_at = previous_updated
                        raise

                    log.info(f"Soft-deleted memory {memory_id[:8]}... in tag {tag}")
                    return record

        raise NotFoundError("Memory not found")

    def count(self) -> int:
        """Number of non-deleted records across all tags."""
        return sum(1 for records in self._memories.values() for r in records if not r.deleted)

    def tags(self) -> list[str]:
        """Container tags in first-use order."""
        return list(self._memories)


__all__ = [
    "MemoryRecord",
    "MemoryStore",
    "DEFAULT_CONTAINER_TAG",
    "SNAPSHOT_FILENAME",
    "extract_title",
    "utc_now",
]
