"""Tests for GUID parsing, normalization and matching."""

import pytest

from deletesync.guids import (
    any_match, create_guid_set, first_match, normalize_guid, parse_guids, try_parse_guids,
)
from deletesync.models import WatchlistItem


class TestNormalizeGuid:
    def test_lowercases_and_strips(self):
        assert normalize_guid("  TMDB:603 ") == "tmdb:603"

    def test_collapses_url_scheme(self):
        assert normalize_guid("tvdb://81189") == "tvdb:81189"

    def test_imdb_id_lowercased(self):
        assert normalize_guid("imdb://tt0133093") == "imdb:tt0133093"


class TestTryParseGuids:
    def test_list(self):
        assert try_parse_guids(["tmdb:1", "IMDB:tt1"]) == (["tmdb:1", "imdb:tt1"], False)

    def test_json_string(self):
        assert try_parse_guids('["tmdb:1", "tvdb:2"]') == (["tmdb:1", "tvdb:2"], False)

    def test_comma_separated_string(self):
        assert try_parse_guids("tmdb:1, tvdb:2") == (["tmdb:1", "tvdb:2"], False)

    def test_single_string(self):
        assert try_parse_guids("tmdb:1") == (["tmdb:1"], False)

    def test_none_and_blank(self):
        assert try_parse_guids(None) == ([], False)
        assert try_parse_guids("   ") == ([], False)

    def test_duplicates_and_blanks_dropped(self):
        guids, _ = try_parse_guids(["tmdb:1", "TMDB:1", "", None, "tvdb:2"])
        assert guids == ["tmdb:1", "tvdb:2"]

    def test_malformed_json_is_empty_and_flagged(self, caplog):
        guids, malformed = try_parse_guids('["tmdb:1", ')
        assert guids == []
        assert malformed is True
        assert "Could not decode GUID list" in caplog.text

    def test_bare_bracket_is_malformed(self):
        assert try_parse_guids('[') == ([], True)

    def test_parse_guids_never_raises(self):
        assert parse_guids('[not json') == []


class TestMatching:
    def test_any_match(self):
        assert any_match(["tmdb:1", "imdb:tt2"], {"imdb:tt2"}) is True
        assert any_match(["tmdb:1"], {"tmdb:9"}) is False

    def test_item_without_guids_never_matches(self):
        assert any_match([], {"tmdb:1"}) is False

    def test_empty_set_never_matches(self):
        assert any_match(["tmdb:1"], set()) is False

    def test_first_match_returns_guid(self):
        assert first_match(["tmdb:1", "tvdb:2"], {"tvdb:2"}) == "tvdb:2"
        assert first_match(["tmdb:1"], {"tvdb:2"}) is None

    @pytest.mark.parametrize("items", [
        [{"guids": '["tmdb:1"]'}, {"guids": ["TVDB:2"]}],
        [WatchlistItem(1, "a", "movie", ["tmdb:1"]), WatchlistItem(1, "b", "show", ["tvdb:2"])],
    ])
    def test_create_guid_set(self, items):
        assert create_guid_set(items) == {"tmdb:1", "tvdb:2"}
