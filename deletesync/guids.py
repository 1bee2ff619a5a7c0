"""
GUID handling for delete-sync.
Normalizes and compares external identifiers (tmdb/tvdb/imdb) across
watchlist items and Sonarr/Radarr library items.
"""

import json
import logging
from typing import Any, Iterable, List, Set, Tuple


def normalize_guid(raw: str) -> str:
    """Normalize a single GUID: trim, lower-case, collapse 'scheme://id' to 'scheme:id'."""
    guid = str(raw).strip().lower()
    if "://" in guid:
        scheme, _, ident = guid.partition("://")
        guid = f"{scheme}:{ident}"
    return guid


def _collect(values: Iterable[Any]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value is None:
            continue
        guid = normalize_guid(value)
        if not guid or guid in seen:
            continue
        seen.add(guid)
        result.append(guid)
    return result


def try_parse_guids(raw: Any) -> Tuple[List[str], bool]:
    """Parse GUIDs from any stored representation.

    Accepts a list, a JSON-encoded list string, a comma-separated string or a
    single GUID string.

    Returns:
        Tuple of (guids, malformed). malformed is True when the value looked
        like a JSON array but could not be decoded; guids is then empty.
    """
    if raw is None:
        return [], False

    if isinstance(raw, (list, tuple, set)):
        return _collect(raw), False

    if not isinstance(raw, str):
        return _collect([raw]), False

    text = raw.strip()
    if not text:
        return [], False

    if text.startswith("["):
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError as e:
            logging.warning(f"[GUID] Could not decode GUID list {text[:80]!r}: {e}")
            return [], True
        if not isinstance(decoded, list):
            logging.warning(f"[GUID] GUID JSON is not a list: {text[:80]!r}")
            return [], True
        return _collect(decoded), False

    return _collect(text.split(",")), False


def parse_guids(raw: Any) -> List[str]:
    """Parse GUIDs, treating malformed input as no GUIDs. Never raises."""
    guids, _ = try_parse_guids(raw)
    return guids


def any_match(item_guids: Iterable[str], guid_set: Set[str]) -> bool:
    """Return True if any of the item's GUIDs is in guid_set.

    An item without GUIDs never matches.
    """
    if not guid_set:
        return False
    return any(guid in guid_set for guid in item_guids)


def first_match(item_guids: Iterable[str], guid_set: Set[str]):
    """Return the first of the item's GUIDs found in guid_set, or None."""
    for guid in item_guids:
        if guid in guid_set:
            return guid
    return None


def create_guid_set(items: Iterable[Any]) -> Set[str]:
    """Union the GUIDs of many items (objects with .guids or dicts with 'guids')."""
    guid_set: Set[str] = set()
    for item in items:
        raw = item.get("guids") if isinstance(item, dict) else getattr(item, "guids", None)
        guid_set.update(parse_guids(raw))
    return guid_set
