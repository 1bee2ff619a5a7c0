"""Tests for tag-based deletion eligibility."""

from unittest.mock import MagicMock

import pytest

from conftest import make_movie, make_policy, make_show
from deletesync.tag_cache import TagCache
from deletesync.tag_policy import TagDecision, TagPolicyEvaluator, category_enabled, normalize_removal_prefix

TAGS = {1: "plexprune:removed:alice", 2: "user:bob", 3: "4k"}


@pytest.fixture
def evaluator():
    return TagPolicyEvaluator(TagCache())


def tag_policy(**overrides):
    defaults = dict(deletion_mode="tag-based", removed_tag_prefix="plexprune:removed")
    defaults.update(overrides)
    return make_policy(**defaults)


class TestCategoryEnabled:
    def test_movie(self):
        assert category_enabled(make_movie("m", []), make_policy(delete_movie=True))
        assert not category_enabled(make_movie("m", []), make_policy(delete_movie=False))

    def test_shows_split_by_status(self):
        policy = make_policy(delete_movie=False, delete_ended_show=True, delete_continuing_show=False)
        assert category_enabled(make_show("s", [], ended=True), policy)
        assert not category_enabled(make_show("s", [], ended=False), policy)

    def test_unknown_status_counts_as_continuing(self):
        show = make_show("s", [])
        show.status = ""
        assert show.is_continuing


class TestEvaluate:
    def test_removal_tag_alone_is_eligible(self, evaluator):
        item = make_movie("m", ["tmdb:1"], tags=[1])
        assert evaluator.evaluate(item, TAGS, tag_policy()) == TagDecision.ELIGIBLE

    def test_disabled_category_skips_cache(self):
        cache = MagicMock()
        evaluator = TagPolicyEvaluator(cache)
        item = make_movie("m", ["tmdb:1"], tags=[1])
        policy = tag_policy(delete_movie=False, delete_sync_required_tag_regex="^user:")
        assert evaluator.evaluate(item, TAGS, policy) == TagDecision.DISABLED
        cache.get_compiled_regex.assert_not_called()

    def test_no_tags_never_eligible(self, evaluator):
        item = make_movie("m", ["tmdb:1"], tags=[])
        assert evaluator.evaluate(item, TAGS, tag_policy()) == TagDecision.NO_REMOVAL_TAG

    def test_blank_prefix_never_eligible(self, evaluator):
        item = make_movie("m", ["tmdb:1"], tags=[1])
        assert evaluator.evaluate(item, TAGS, tag_policy(removed_tag_prefix="  ")) == TagDecision.NO_REMOVAL_TAG

    def test_unknown_tag_ids_ignored(self, evaluator):
        item = make_movie("m", ["tmdb:1"], tags=[99, 1])
        assert evaluator.evaluate(item, TAGS, tag_policy()) == TagDecision.ELIGIBLE

    def test_prefix_compared_case_insensitively(self, evaluator):
        item = make_movie("m", ["tmdb:1"], tags=[1])
        assert evaluator.evaluate(item, TAGS, tag_policy(removed_tag_prefix=" PlexPrune:Removed ")) == TagDecision.ELIGIBLE

    def test_removal_and_required_tag_together_eligible(self, evaluator):
        item = make_movie("m", ["tmdb:1"], tags=[1, 2])
        policy = tag_policy(delete_sync_required_tag_regex="^user:bob$")
        assert evaluator.is_eligible_for_tag_removal(item, TAGS, policy) is True

    def test_removal_tag_without_required_tag_not_eligible(self, evaluator):
        item = make_movie("m", ["tmdb:1"], tags=[1, 3])
        policy = tag_policy(delete_sync_required_tag_regex="^user:")
        assert evaluator.evaluate(item, TAGS, policy) == TagDecision.MISSING_REQUIRED_TAG

    def test_required_tag_without_removal_tag_not_eligible(self, evaluator):
        item = make_movie("m", ["tmdb:1"], tags=[2])
        policy = tag_policy(delete_sync_required_tag_regex="^user:")
        assert evaluator.evaluate(item, TAGS, policy) == TagDecision.NO_REMOVAL_TAG

    def test_regex_must_match_a_different_tag(self, evaluator):
        # The removal tag itself matches the regex but does not count
        item = make_movie("m", ["tmdb:1"], tags=[1])
        policy = tag_policy(delete_sync_required_tag_regex="removed")
        assert evaluator.evaluate(item, TAGS, policy) == TagDecision.MISSING_REQUIRED_TAG

    def test_rejected_regex_fails_closed(self, evaluator):
        item = make_movie("m", ["tmdb:1"], tags=[1, 2])
        policy = tag_policy(delete_sync_required_tag_regex="u" * 1025)
        assert evaluator.evaluate(item, TAGS, policy) == TagDecision.MISSING_REQUIRED_TAG

    def test_tracked_only_requires_tracked_guid(self, evaluator):
        item = make_movie("m", ["tmdb:1"], tags=[1, 2])
        policy = tag_policy(delete_sync_required_tag_regex="^user:", delete_sync_tracked_only=True)
        assert evaluator.evaluate(item, TAGS, policy, tracked_set={"tmdb:2"}) == TagDecision.NOT_TRACKED
        assert evaluator.evaluate(item, TAGS, policy, tracked_set={"tmdb:1"}) == TagDecision.ELIGIBLE

    def test_is_tracked_fn_takes_precedence(self, evaluator):
        item = make_movie("m", ["tmdb:1"], tags=[1])
        policy = tag_policy(delete_sync_tracked_only=True)
        decision = evaluator.evaluate(item, TAGS, policy, tracked_set={"tmdb:1"}, is_tracked_fn=lambda guids: False)
        assert decision == TagDecision.NOT_TRACKED


class TestNormalizeRemovalPrefix:
    @pytest.mark.parametrize("raw,expected", [(None, ""), ("  ", ""), (" Removed ", "removed")])
    def test_normalize(self, raw, expected):
        assert normalize_removal_prefix(raw) == expected
