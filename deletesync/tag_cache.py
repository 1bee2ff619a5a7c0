"""
Per-run caches for tag-based deletion.
Holds the tag-id -> label map of each Sonarr/Radarr instance and the
compiled required-tag regex.
"""

import logging
import re
import threading
from typing import Dict, Optional, Pattern

# Longest user-supplied regex we are willing to compile
MAX_REGEX_LENGTH = 1024


def _quantifier_at(pattern: str, index: int) -> bool:
    """Check if an unbounded or repeating quantifier starts at pattern[index]."""
    if index >= len(pattern):
        return False
    char = pattern[index]
    if char in "+*":
        return True
    if char == "{":
        close = pattern.find("}", index)
        if close == -1:
            return False
        body = pattern[index + 1:close]
        if "," in body:
            return True
        return body.isdigit() and int(body) > 1
    return False


def is_catastrophic_pattern(pattern: str) -> bool:
    """Detect nested quantifiers such as (a+)+ or (x+x+)+y.

    A quantified group that itself contains a quantifier gives the regex
    engine an exponential number of ways to split the input.
    """
    # One entry per open group: does it contain a quantifier?
    stack = []
    in_class = False
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "\\":
            i += 2
            continue
        if in_class:
            if char == "]":
                in_class = False
            i += 1
            continue
        if char == "[":
            in_class = True
        elif char == "(":
            stack.append(False)
        elif char == ")":
            if not stack:
                return False  # unbalanced, let re.compile reject it
            inner_quantified = stack.pop()
            if inner_quantified and _quantifier_at(pattern, i + 1):
                return True
            if inner_quantified and stack:
                stack[-1] = True
        elif _quantifier_at(pattern, i) and stack:
            stack[-1] = True
        i += 1
    return False


class TagCache:
    """Caches instance tag maps and compiled regexes for a single run.

    Tag maps are keyed by "{instance_type}-{instance_id}" so Sonarr and Radarr
    instances sharing an id never collide. Call clear() between runs.
    """

    def __init__(self):
        self._tags: Dict[str, Dict[int, str]] = {}
        self._regex: Dict[str, Optional[Pattern]] = {}
        self._lock = threading.Lock()

    def get_tags_for_instance(self, instance_id, service, instance_type: str) -> Dict[int, str]:
        """Return {tag_id: normalized_label} for an instance, fetching it once per run.

        A failed fetch is logged and returns an empty map that is not cached,
        so a later lookup in the same run retries.
        """
        key = f"{instance_type}-{instance_id}"
        with self._lock:
            if key in self._tags:
                return self._tags[key]

        try:
            tags = service.get_tags()
        except Exception as e:
            logging.error(
                f"[DELETE SYNC] Critical error fetching tags for {instance_type} instance {instance_id} "
                f"- this may affect deletion accuracy: {type(e).__name__}: {e}"
            )
            return {}

        tag_map = {}
        for tag in tags or []:
            try:
                tag_map[int(tag["id"])] = str(tag.get("label", "")).strip().lower()
            except (KeyError, TypeError, ValueError):
                logging.debug(f"[DELETE SYNC] Ignoring malformed tag on {key}: {tag!r}")

        with self._lock:
            self._tags[key] = tag_map
        logging.debug(f"[DELETE SYNC] Cached {len(tag_map)} tags for {key}")
        return tag_map

    def get_compiled_regex(self, pattern: Optional[str]) -> Optional[Pattern]:
        """Compile a user-supplied regex case-insensitively, memoized.

        Returns None (treated as "no match") for empty, oversized,
        catastrophic or invalid patterns.
        """
        if not pattern:
            return None

        with self._lock:
            if pattern in self._regex:
                return self._regex[pattern]

        compiled = None
        if len(pattern) > MAX_REGEX_LENGTH:
            logging.warning(
                f"[DELETE SYNC] Rejected required-tag regex: {len(pattern)} characters exceeds "
                f"the {MAX_REGEX_LENGTH} character limit"
            )
        elif is_catastrophic_pattern(pattern):
            logging.warning(f"[DELETE SYNC] Rejected unsafe required-tag regex: {pattern}")
        else:
            try:
                compiled = re.compile(pattern, re.IGNORECASE)
            except re.error as e:
                logging.warning(f"[DELETE SYNC] Invalid required-tag regex '{pattern}': {e}")

        with self._lock:
            self._regex[pattern] = compiled
        return compiled

    def clear(self) -> None:
        """Drop all cached tag maps and compiled regexes."""
        with self._lock:
            self._tags.clear()
            self._regex.clear()
