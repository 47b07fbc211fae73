"""localmem - Self-hosted memory backend.

A single-process memory service with:
- Tag-partitioned records persisted to a JSON snapshot
- Keyword ranking by token containment
- Regex profile extraction (preferences and current activity)
- Bearer-token auth on a loopback-only HTTP API
"""

__version__ = "1.0.0"

from localmem.memory import MemoryRecord, MemoryStore
from localmem.profile import Profile, ProfileExtractor, RegexProfileExtractor
from localmem.search import SearchHit, SearchResult, search_memories

__all__ = [
    "MemoryRecord",
    "MemoryStore",
    "Profile",
    "ProfileExtractor",
    "RegexProfileExtractor",
    "SearchHit",
    "SearchResult",
    "search_memories",
]
