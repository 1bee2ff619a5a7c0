"""
Protected and tracked GUID sets.
Both are built once per run and only read while items are evaluated.
"""

import logging
from typing import Callable, Iterable, Optional, Set

from deletesync.config import DEFAULT_PROTECTION_PLAYLIST
from deletesync.guids import first_match, normalize_guid


class ProtectionSetBuilder:
    """Builds the GUID set protected by the "do not delete" Plex playlists."""

    def __init__(self, plex_client, playlist_name: str = DEFAULT_PROTECTION_PLAYLIST):
        self.plex_client = plex_client
        self.playlist_name = playlist_name or DEFAULT_PROTECTION_PLAYLIST

    def build_protected_guid_set(self) -> Set[str]:
        """Query every user's protection playlist and union the content GUIDs.

        Raises whatever the Plex collaborator raises; the caller decides
        how to degrade.
        """
        raw = self.plex_client.get_protected_guids(self.playlist_name)
        protected = {normalize_guid(guid) for guid in raw if guid}
        logging.info(f"[DELETE SYNC] Loaded {len(protected)} protected GUIDs from '{self.playlist_name}' playlists")
        return protected


class TrackedGuidLoader:
    """Loads GUIDs of content that went through the approval workflow."""

    def __init__(self, store):
        self.store = store

    def load(self) -> Set[str]:
        tracked = {normalize_guid(guid) for guid in self.store.get_tracked_guids() if guid}
        logging.info(f"[DELETE SYNC] Loaded {len(tracked)} tracked GUIDs")
        return tracked


def is_any_guid_protected(guids: Iterable[str], protected: Optional[Set[str]], enabled: bool,
                          on_hit: Optional[Callable[[str], None]] = None) -> bool:
    """Check protection. Disabled protection never protects anything."""
    if not enabled or not protected:
        return False
    hit = first_match(guids, protected)
    if hit is not None and on_hit:
        on_hit(hit)
    return hit is not None


def is_any_guid_tracked(guids: Iterable[str], tracked: Optional[Set[str]], enabled: bool,
                        on_hit: Optional[Callable[[str], None]] = None) -> bool:
    """Check tracking.

    With tracked-only disabled everything counts as tracked. With it enabled
    but no tracked set loaded, nothing does.
    """
    if not enabled:
        return True
    if tracked is None:
        return False
    hit = first_match(guids, tracked)
    if hit is not None and on_hit:
        on_hit(hit)
    return hit is not None
