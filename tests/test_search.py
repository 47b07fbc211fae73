"""Ranking engine tests for localmem."""

import pytest

from localmem.memory import MemoryRecord, MemoryStore
from localmem.search import (
    MAX_SEARCH_LIMIT,
    clamp_limit,
    rank_records,
    score,
    search_memories,
    tokenize,
)


def _records(*contents: str) -> list[MemoryRecord]:
    return [MemoryRecord(id=f"r{i}", content=c) for i, c in enumerate(contents)]


class TestTokenize:
    """Test tokenization."""

    def test_lowercases_and_drops_short_tokens(self):
        assert tokenize("The API is UP and Running") == ["the", "api", "and", "running"]

    def test_punctuation_splits_tokens(self):
        assert tokenize("don't-stop, (believing)!") == ["don", "stop", "believing"]

    def test_empty(self):
        assert tokenize("") == []
        assert tokenize(None) == []


class TestScore:
    """Test token containment ratio."""

    def test_full_containment(self):
        assert score(["alpha", "gamma"], ["alpha", "gamma", "delta"]) == 1.0

    def test_partial_containment(self):
        assert score(["alpha", "gamma"], ["alpha", "beta"]) == 0.5

    def test_repeated_query_tokens_count_once(self):
        assert score(["alpha", "alpha", "beta"], ["alpha"]) == 0.5

    def test_empty_sides(self):
        assert score([], ["alpha"]) == 0.0
        assert score(["alpha"], []) == 0.0


class TestClampLimit:
    """Test result count clamping."""

    @pytest.mark.parametrize("requested, expected", [(5, 5), (50, 50), (51, 50), (10_000, 50), (0, 10), (None, 10)])
    def test_clamp(self, requested, expected):
        assert clamp_limit(requested) == expected


class TestRankRecords:
    """Test ranking and normalization."""

    def test_three_record_scenario(self):
        hits = rank_records(_records("alpha beta", "beta gamma", "alpha gamma delta"), "alpha gamma", 10)

        assert [h.record.content for h in hits] == ["alpha gamma delta", "alpha beta", "beta gamma"]
        assert [h.similarity for h in hits] == [1.0, 0.5, 0.5]
        assert [h.score for h in hits] == [1.0, 0.5, 0.5]

    def test_normalized_against_top_score(self):
        hits = rank_records(_records("alpha only here", "nothing relevant"), "alpha beta gamma delta", 10)

        assert len(hits) == 1
        assert hits[0].score == 0.25
        assert hits[0].similarity == 1.0

    def test_ties_keep_insertion_order(self):
        hits = rank_records(_records("shared one", "shared two", "shared three"), "shared", 10)
        assert [h.record.id for h in hits] == ["r0", "r1", "r2"]

    def test_zero_scores_dropped(self):
        assert rank_records(_records("unrelated text"), "alpha", 10) == []

    def test_query_without_tokens(self):
        assert rank_records(_records("alpha"), "a an", 10) == []

    def test_limit(self):
        records = _records(*[f"common {i}" for i in range(80)])
        assert len(rank_records(records, "common", 200)) == MAX_SEARCH_LIMIT
        assert len(rank_records(records, "common", 3)) == 3


class TestSearchMemories:
    """Test store-level search."""

    def test_searches_one_tag_and_skips_deleted(self, store: MemoryStore):
        store.add("a", "kubernetes cluster notes")
        gone = store.add("a", "kubernetes upgrade plan")
        store.add("b", "kubernetes elsewhere")
        store.soft_delete(gone)

        result = search_memories(store, "a", "kubernetes")
        assert result.total == 1
        assert result.hits[0].record.content == "kubernetes cluster notes"

    def test_result_dict(self, store: MemoryStore):
        store.add("a", "Deploy checklist\nstep one")

        data = search_memories(store, "a", "deploy").to_dict()
        assert data["total"] == 1
        assert isinstance(data["timing"], int)
        hit = data["results"][0]
        assert hit["title"] == "Deploy checklist"
        assert hit["memory"] == hit["content"]

    def test_repeated_search_is_identical(self, store: MemoryStore):
        for content in ("alpha beta", "beta gamma", "alpha gamma delta", "gamma ray"):
            store.add("a", content)

        first = search_memories(store, "a", "alpha gamma").to_dict()["results"]
        second = search_memories(store, "a", "alpha gamma").to_dict()["results"]
        assert first == second

    def test_query_is_sanitized(self, store: MemoryStore):
        store.add("a", "alpha beta")
        assert search_memories(store, "a", "alpha\x00\x01beta").total == 1
