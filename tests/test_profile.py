"""Profile extraction tests for localmem."""

from localmem.memory import MemoryRecord, MemoryStore
from localmem.profile import Profile, ProfileExtractor, RegexProfileExtractor, build_profile


def _records(*contents: str) -> list[MemoryRecord]:
    return [MemoryRecord(id=f"r{i}", content=c) for i, c in enumerate(contents)]


class TestRegexProfileExtractor:
    """Test the regex heuristic."""

    def test_preference_is_static(self):
        profile = RegexProfileExtractor().extract(_records("User prefers TypeScript over JavaScript"))
        assert profile.static == ["TypeScript over JavaScript"]
        assert profile.dynamic == []

    def test_habit_is_static(self):
        profile = RegexProfileExtractor().extract(_records("She usually writes tests first."))
        assert "writes tests first" in profile.static

    def test_activity_is_dynamic(self):
        profile = RegexProfileExtractor().extract(_records("Implementing the search endpoint, then docs"))
        assert "the search endpoint" in profile.dynamic

    def test_capture_stops_at_comma(self):
        profile = RegexProfileExtractor().extract(_records("He likes green tea, not coffee"))
        assert profile.static == ["green tea"]

    def test_short_phrases_are_ignored(self):
        profile = RegexProfileExtractor().extract(_records("uses Go."))
        assert profile.static == []

    def test_verbs_inside_words_do_not_match(self):
        profile = RegexProfileExtractor().extract(_records("The house rules are strict."))
        assert profile.static == []

    def test_duplicates_keep_first_seen_order(self):
        profile = RegexProfileExtractor().extract(_records(
            "prefers tabs over spaces",
            "uses vim keybindings",
            "prefers tabs over spaces",
        ))
        assert profile.static == ["tabs over spaces", "vim keybindings"]

    def test_each_list_capped(self):
        contents = [f"prefers option number {i}" for i in range(15)]
        profile = RegexProfileExtractor().extract(_records(*contents))
        assert len(profile.static) == 10
        assert profile.static[0] == "option number 0"

    def test_only_recent_window_is_inspected(self):
        contents = ["prefers ancient history"] + [f"note {i}" for i in range(50)]
        profile = RegexProfileExtractor().extract(_records(*contents))
        assert profile.static == []

    def test_to_dict(self):
        assert Profile(static=["a"], dynamic=[]).to_dict() == {"static": ["a"], "dynamic": []}


class TestBuildProfile:
    """Test store integration and the strategy seam."""

    def test_skips_deleted_records(self, store: MemoryStore):
        gone = store.add("proj1", "prefers deleted things")
        store.add("proj1", "prefers live things")
        store.soft_delete(gone)

        assert build_profile(store, "proj1").static == ["live things"]

    def test_empty_tag(self, store: MemoryStore):
        assert build_profile(store, "empty") == Profile()

    def test_custom_extractor(self, store: MemoryStore):
        class CountingExtractor(ProfileExtractor):
            def extract(self, records):
                return Profile(static=[f"{len(records)} records"])

        store.add("proj1", "one")
        store.add("proj1", "two")
        assert build_profile(store, "proj1", CountingExtractor()).static == ["2 records"]
