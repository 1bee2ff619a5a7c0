"""
Tag-based deletion policy.
Decides whether a library item carries the tags that make it eligible for
removal.
"""

import logging
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

from deletesync.config import DeletionPolicyConfig
from deletesync.guids import any_match
from deletesync.models import LibraryItem
from deletesync.tag_cache import TagCache


class TagDecision(str, Enum):
    """Outcome of evaluating an item against the tag policy"""
    ELIGIBLE = "eligible"
    DISABLED = "disabled"
    NO_REMOVAL_TAG = "no_removal_tag"
    MISSING_REQUIRED_TAG = "missing_required_tag"
    NOT_TRACKED = "not_tracked"


def normalize_removal_prefix(prefix: Optional[str]) -> str:
    """Trim and lower-case the removal tag prefix. Blank means tag deletion is off."""
    return (prefix or "").strip().lower()


def category_enabled(item: LibraryItem, config: DeletionPolicyConfig) -> bool:
    """Check whether deletion is enabled for the item's category."""
    if item.is_movie:
        return config.delete_movie
    if item.is_continuing:
        return config.delete_continuing_show
    return config.delete_ended_show


def _resolve_labels(tag_ids: List[int], tag_map: Dict[int, str]) -> List[str]:
    # Unknown ids are ignored
    return [tag_map[tag_id] for tag_id in tag_ids if tag_id in tag_map]


class TagPolicyEvaluator:
    """Evaluates items against the removal-tag, required-tag and tracked-only rules."""

    def __init__(self, tag_cache: TagCache):
        self.tag_cache = tag_cache

    def evaluate(self, item: LibraryItem, tag_map: Dict[int, str], config: DeletionPolicyConfig,
                 tracked_set: Optional[Set[str]] = None,
                 is_tracked_fn: Optional[Callable[[List[str]], bool]] = None) -> TagDecision:
        """Evaluate a single item.

        Args:
            item: The library item.
            tag_map: {tag_id: label} for the item's instance.
            config: Deletion policy for this run.
            tracked_set: Tracked GUIDs, used when tracked-only deletion is on.
            is_tracked_fn: Optional predicate used instead of tracked_set.

        Returns:
            The first rule the item fails, or ELIGIBLE.
        """
        if not category_enabled(item, config):
            return TagDecision.DISABLED

        prefix = normalize_removal_prefix(config.removed_tag_prefix)
        if not prefix or not item.tags:
            return TagDecision.NO_REMOVAL_TAG

        labels = _resolve_labels(item.tags, tag_map)
        removal_labels = [label for label in labels if label.startswith(prefix)]
        if not removal_labels:
            return TagDecision.NO_REMOVAL_TAG

        if config.delete_sync_required_tag_regex:
            regex = self.tag_cache.get_compiled_regex(config.delete_sync_required_tag_regex)
            if regex is None:
                return TagDecision.MISSING_REQUIRED_TAG
            other_labels = [label for label in labels if not label.startswith(prefix)]
            if not any(regex.search(label) for label in other_labels):
                logging.debug(f"[DELETE SYNC] '{item.title}' has a removal tag but no tag matching the required regex")
                return TagDecision.MISSING_REQUIRED_TAG

        if config.delete_sync_tracked_only:
            if is_tracked_fn is not None:
                tracked = is_tracked_fn(item.guids)
            else:
                tracked = any_match(item.guids, tracked_set or set())
            if not tracked:
                return TagDecision.NOT_TRACKED

        return TagDecision.ELIGIBLE

    def is_eligible_for_tag_removal(self, item: LibraryItem, tag_map: Dict[int, str],
                                    config: DeletionPolicyConfig,
                                    tracked_set: Optional[Set[str]] = None,
                                    is_tracked_fn: Optional[Callable[[List[str]], bool]] = None) -> bool:
        """Return True if the item passes every tag rule."""
        decision = self.evaluate(item, tag_map, config, tracked_set, is_tracked_fn)
        return decision == TagDecision.ELIGIBLE
