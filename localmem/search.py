"""Keyword ranking for memory retrieval.

Scores documents by token containment: the fraction of distinct query
tokens that appear in the document. This is a deliberate simplification
of TF-IDF (no term weighting, no document-length normalization).

Key insight: raw containment ratios are re-normalized per request by the
top score, so ``similarity`` is only comparable within one result set.
The raw ratio is reported alongside as ``score``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from localmem.log_config import get_logger, log_timing
from localmem.security import sanitize_query

if TYPE_CHECKING:
    from localmem.memory import MemoryRecord, MemoryStore

log = get_logger("search")

MAX_SEARCH_LIMIT: int = 50
DEFAULT_SEARCH_LIMIT: int = 10
MIN_TOKEN_LENGTH: int = 3

_PUNCTUATION = re.compile(r"[^\w\s]")


def tokenize(text: str | None) -> list[str]:
    """Split text into lowercase tokens of at least MIN_TOKEN_LENGTH chars.

    Punctuation is replaced by whitespace before splitting, so
    "don't-stop" yields ["don", "stop"].
    """
    if not text:
        return []
    cleaned = _PUNCTUATION.sub(" ", text.lower())
    return [t for t in cleaned.split() if len(t) >= MIN_TOKEN_LENGTH]


def score(query_tokens: list[str], doc_tokens: list[str]) -> float:
    """Fraction of distinct query tokens present in the document token set.

    Returns:
        Containment ratio in [0, 1]; 0 if either side is empty
    """
    if not query_tokens or not doc_tokens:
        return 0.0
    distinct_query = set(query_tokens)
    doc_set = set(doc_tokens)
    matches = sum(1 for token in distinct_query if token in doc_set)
    return matches / len(distinct_query)


def clamp_limit(limit: int | None) -> int:
    """Clamp a requested result count to [1, MAX_SEARCH_LIMIT]."""
    if limit is None or limit <= 0:
        return DEFAULT_SEARCH_LIMIT
    return min(limit, MAX_SEARCH_LIMIT)


@dataclass
class SearchHit:
    """A ranked record.

    Attributes:
        record: The matching memory
        score: Raw containment ratio
        similarity: Score divided by the best score in the result set
    """

    record: MemoryRecord
    score: float
    similarity: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        r = self.record
        return {
            "id": r.id,
            "content": r.content,
            "memory": r.content,
            "title": r.title,
            "similarity": self.similarity,
            "score": self.score,
            "metadata": r.metadata,
            "createdAt": r.created_at,
            "updatedAt": r.updated_at,
        }


@dataclass
class SearchResult:
    """Ranked hits plus bookkeeping for the API response."""

    hits: list[SearchHit] = field(default_factory=list)
    timing: int = 0

    @property
    def total(self) -> int:
        return len(self.hits)

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [h.to_dict() for h in self.hits],
            "total": self.total,
            "timing": self.timing,
        }


def rank_records(records: list[MemoryRecord], query: str, limit: int) -> list[SearchHit]:
    """Rank records against a query.

    Zero-score records are dropped; ties keep the input order (Python's sort
    is stable), so callers passing insertion-ordered records get insertion
    order among equal scores.
    """
    query_tokens = tokenize(query)
    if not query_tokens:
        return []

    scored = []
    for record in records:
        s = score(query_tokens, tokenize(record.content))
        if s > 0:
            scored.append(SearchHit(record=record, score=s))

    scored.sort(key=lambda h: h.score, reverse=True)
    hits = scored[: clamp_limit(limit)]

    if hits:
        top = hits[0].score
        for hit in hits:
            hit.similarity = hit.score / top
    return hits


def search_memories(store: MemoryStore, tag: str, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> SearchResult:
    """Search the non-deleted records of one container tag.

    Args:
        store: Memory store
        tag: Container tag to search
        query: Free-text query (sanitized before tokenizing)
        limit: Requested result count, clamped to MAX_SEARCH_LIMIT

    Returns:
        SearchResult with hits sorted by non-increasing similarity
    """
    safe_query = sanitize_query(query)
    with log_timing(f"search tag={tag}", log) as timing:
        hits = rank_records(store.active_records(tag), safe_query, limit)
    log.debug(f"Search returned {len(hits)} hits for tag={tag}")
    return SearchResult(hits=hits, timing=int(timing["elapsed_ms"]))
