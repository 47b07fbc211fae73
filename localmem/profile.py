"""Profile extraction for localmem.

Summarizes a container tag's recent memories into two short fact lists:
- static: stable preferences and habits ("prefers X", "usually Y")
- dynamic: current activity ("working on X", "recently Y")

The bundled extractor is a regex heuristic. It is best-effort: it misses
facts phrased differently and may capture noisy fragments. Swap in another
ProfileExtractor for smarter summarization.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from localmem.log_config import get_logger

if TYPE_CHECKING:
    from localmem.memory import MemoryRecord, MemoryStore

log = get_logger("profile")

RECENT_WINDOW = 50
MAX_FACTS = 10

# Captured phrase: 5-60 chars, lazily up to '.', ',' or end of text
_PHRASE = r"\s+(.{5,60}?)(?:\.|,|$)"

STATIC_PATTERNS = [
    re.compile(r"\b(?:prefers?|likes?|uses?|wants?)" + _PHRASE, re.IGNORECASE),
    re.compile(r"\b(?:always|usually|typically)" + _PHRASE, re.IGNORECASE),
]

DYNAMIC_PATTERNS = [
    re.compile(r"\b(?:working on|implementing|building|fixing)" + _PHRASE, re.IGNORECASE),
    re.compile(r"\b(?:just|recently|currently)" + _PHRASE, re.IGNORECASE),
]


@dataclass
class Profile:
    """Extracted profile facts."""

    static: list[str] = field(default_factory=list)
    dynamic: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"static": list(self.static), "dynamic": list(self.dynamic)}


class ProfileExtractor(ABC):
    """Abstract strategy turning recent memories into a Profile."""

    @abstractmethod
    def extract(self, records: list[MemoryRecord]) -> Profile:
        """Extract a profile.

        Args:
            records: Non-deleted records in insertion order (oldest first)

        Returns:
            Profile with static and dynamic facts
        """
        pass


class RegexProfileExtractor(ProfileExtractor):
    """Pattern-matching extractor over the most recent records."""

    def __init__(self, window: int = RECENT_WINDOW, max_facts: int = MAX_FACTS):
        self.window = window
        self.max_facts = max_facts

    def extract(self, records: list[MemoryRecord]) -> Profile:
        recent = records[-self.window:] if self.window > 0 else []
        static: dict[str, None] = {}
        dynamic: dict[str, None] = {}

        for record in recent:
            self._collect(record.content, STATIC_PATTERNS, static)
            self._collect(record.content, DYNAMIC_PATTERNS, dynamic)

        return Profile(static=list(static), dynamic=list(dynamic))

    def _collect(self, content: str, patterns: list[re.Pattern], facts: dict[str, None]) -> None:
        # dict keys as an insertion-ordered set
        for pattern in patterns:
            for match in pattern.finditer(content):
                if len(facts) >= self.max_facts:
                    return
                phrase = match.group(1).strip()
                if phrase:
                    facts.setdefault(phrase, None)


def build_profile(store: MemoryStore, tag: str, extractor: ProfileExtractor | None = None) -> Profile:
    """Build the profile for one container tag."""
    extractor = extractor or RegexProfileExtractor()
    records = store.active_records(tag)
    if not records:
        return Profile()
    profile = extractor.extract(records)
    log.debug(f"Profile for tag={tag}: {len(profile.static)} static, {len(profile.dynamic)} dynamic")
    return profile
