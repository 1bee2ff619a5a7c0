"""Tests for the per-run tag cache and regex guard."""

from unittest.mock import MagicMock

import pytest

from deletesync.tag_cache import MAX_REGEX_LENGTH, TagCache, is_catastrophic_pattern


class TestCatastrophicPatterns:
    @pytest.mark.parametrize("pattern", ["(a+)+$", "(x+x+)+y", "(a*)*", "((ab)+)+", "(a+){2,}"])
    def test_nested_quantifiers_rejected(self, pattern):
        assert is_catastrophic_pattern(pattern) is True

    @pytest.mark.parametrize("pattern", ["(test)+", "(ab)+", "^user:.+$", r"\(a+\)+", "[(a+)]+", "(a+)"])
    def test_safe_patterns_allowed(self, pattern):
        assert is_catastrophic_pattern(pattern) is False


class TestCompiledRegex:
    def test_compiles_case_insensitive_and_memoizes(self):
        cache = TagCache()
        regex = cache.get_compiled_regex("^user:alice$")
        assert regex.search("USER:Alice")
        assert cache.get_compiled_regex("^user:alice$") is regex

    def test_empty_pattern_is_none(self):
        assert TagCache().get_compiled_regex("") is None

    def test_oversized_pattern_fails_closed(self, caplog):
        pattern = "a" * (MAX_REGEX_LENGTH + 1)
        assert TagCache().get_compiled_regex(pattern) is None
        assert "character limit" in caplog.text

    def test_pattern_at_limit_compiles(self):
        assert TagCache().get_compiled_regex("a" * MAX_REGEX_LENGTH) is not None

    def test_invalid_pattern_is_none(self):
        assert TagCache().get_compiled_regex("([unclosed") is None

    def test_catastrophic_pattern_is_none(self):
        assert TagCache().get_compiled_regex("(a+)+$") is None


class TestTagsForInstance:
    def test_fetches_once_and_normalizes(self):
        service = MagicMock()
        service.get_tags.return_value = [{"id": 1, "label": " PlexPrune:Removed "}, {"id": "2", "label": "Keep"}]
        cache = TagCache()

        tags = cache.get_tags_for_instance(1, service, "radarr")
        again = cache.get_tags_for_instance(1, service, "radarr")

        assert tags == {1: "plexprune:removed", 2: "keep"}
        assert again is tags
        service.get_tags.assert_called_once()

    def test_instance_types_do_not_collide(self):
        radarr = MagicMock()
        radarr.get_tags.return_value = [{"id": 1, "label": "movie-tag"}]
        sonarr = MagicMock()
        sonarr.get_tags.return_value = [{"id": 1, "label": "show-tag"}]
        cache = TagCache()

        assert cache.get_tags_for_instance(1, radarr, "radarr") == {1: "movie-tag"}
        assert cache.get_tags_for_instance(1, sonarr, "sonarr") == {1: "show-tag"}

    def test_fetch_failure_returns_empty_and_is_not_cached(self, caplog):
        service = MagicMock()
        service.get_tags.side_effect = [ConnectionError("down"), [{"id": 3, "label": "x"}]]
        cache = TagCache()

        assert cache.get_tags_for_instance(7, service, "sonarr") == {}
        assert "Critical error fetching tags for sonarr instance 7" in caplog.text
        assert cache.get_tags_for_instance(7, service, "sonarr") == {3: "x"}

    def test_malformed_tags_ignored(self):
        service = MagicMock()
        service.get_tags.return_value = [{"label": "no id"}, {"id": "x", "label": "bad"}, {"id": 4, "label": "ok"}]
        assert TagCache().get_tags_for_instance(1, service, "radarr") == {4: "ok"}

    def test_clear_forces_refetch(self):
        service = MagicMock()
        service.get_tags.return_value = []
        cache = TagCache()
        cache.get_tags_for_instance(1, service, "radarr")
        cache.clear()
        cache.get_tags_for_instance(1, service, "radarr")
        assert service.get_tags.call_count == 2
