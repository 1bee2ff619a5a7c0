"""
JSON-backed watchlist store.
Holds users, their watchlist items and the approval-tracked GUIDs that
delete-sync reads every run.
"""

import json
import logging
import os
import threading
from typing import Dict, Iterable, List, Set

from deletesync.guids import normalize_guid, try_parse_guids
from deletesync.models import MOVIE, SHOW, User, WatchlistItem


class WatchlistStore:
    """Thread-safe store for watchlists and tracked (approved) content.

    Storage format:
    {
        "users": [{"id": 1, "name": "owner", "can_sync": true, "is_primary": true}],
        "watchlist": [{"user_id": 1, "title": "Heat", "type": "movie",
                       "guids": ["tmdb:949", "imdb:tt0113277"], "key": "..."}],
        "tracked": {"movie": ["tmdb:949"], "show": []}
    }

    GUIDs may be stored as a list or a legacy JSON string; they are parsed
    into normalized lists when read.
    """

    def __init__(self, store_file: str):
        self.store_file = store_file
        self._lock = threading.Lock()
        self._data: Dict = {"users": [], "watchlist": [], "tracked": {MOVIE: [], SHOW: []}}
        self._load()

    def _load(self) -> None:
        """Load store data from file."""
        try:
            if os.path.exists(self.store_file):
                with open(self.store_file, 'r', encoding='utf-8') as f:
                    data = json.load(f)
                self._data["users"] = data.get("users", [])
                self._data["watchlist"] = data.get("watchlist", [])
                tracked = data.get("tracked", {})
                self._data["tracked"] = {MOVIE: tracked.get(MOVIE, []), SHOW: tracked.get(SHOW, [])}
                logging.debug(
                    f"Loaded {len(self._data['watchlist'])} watchlist entries "
                    f"for {len(self._data['users'])} users from {self.store_file}"
                )
        except (json.JSONDecodeError, IOError) as e:
            logging.warning(f"Could not load watchlist store: {type(e).__name__}: {e}")

    def _save(self) -> None:
        """Write the store atomically."""
        tmp_file = f"{self.store_file}.tmp"
        try:
            directory = os.path.dirname(self.store_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp_file, 'w', encoding='utf-8') as f:
                json.dump(self._data, f, indent=2)
            os.replace(tmp_file, self.store_file)
        except IOError as e:
            logging.error(f"Could not save watchlist store: {type(e).__name__}: {e}")
            raise
        finally:
            if os.path.exists(tmp_file):
                os.remove(tmp_file)

    def _items_of_type(self, content_type: str) -> List[WatchlistItem]:
        items = []
        with self._lock:
            entries = list(self._data["watchlist"])
        for entry in entries:
            if entry.get("type") != content_type:
                continue
            guids, bad = try_parse_guids(entry.get("guids"))
            if bad:
                logging.warning(f"Watchlist item '{entry.get('title')}' has malformed GUIDs; treating as none")
            items.append(WatchlistItem(
                user_id=entry.get("user_id"),
                title=entry.get("title", ""),
                content_type=content_type,
                guids=guids,
                key=entry.get("key", ""),
                malformed=bad,
            ))
        return items

    def get_all_show_watchlist_items(self) -> List[WatchlistItem]:
        return self._items_of_type(SHOW)

    def get_all_movie_watchlist_items(self) -> List[WatchlistItem]:
        return self._items_of_type(MOVIE)

    def get_all_users(self) -> List[User]:
        with self._lock:
            entries = list(self._data["users"])
        return [
            User(
                id=entry["id"],
                name=entry.get("name", ""),
                # Users without an explicit setting may sync
                can_sync=entry.get("can_sync", True),
                is_primary=entry.get("is_primary", False),
            )
            for entry in entries
            if "id" in entry
        ]

    def upsert_user(self, user: User) -> None:
        with self._lock:
            for entry in self._data["users"]:
                if entry.get("id") == user.id:
                    entry.update(user.to_dict())
                    break
            else:
                self._data["users"].append(user.to_dict())
            self._save()

    def replace_user_watchlist(self, user_id: int, items: Iterable[WatchlistItem]) -> int:
        """Replace everything on one user's watchlist.

        Returns:
            Number of items stored for the user.
        """
        new_entries = [item.to_dict() for item in items]
        with self._lock:
            kept = [e for e in self._data["watchlist"] if e.get("user_id") != user_id]
            self._data["watchlist"] = kept + new_entries
            self._save()
        logging.debug(f"Stored {len(new_entries)} watchlist items for user {user_id}")
        return len(new_entries)

    def get_tracked_guids(self) -> Set[str]:
        """All GUIDs that went through approval, across content types."""
        with self._lock:
            tracked = {k: list(v) for k, v in self._data["tracked"].items()}
        guids: Set[str] = set()
        for raw in tracked.values():
            parsed, _ = try_parse_guids(raw)
            guids.update(parsed)
        return guids

    def add_tracked_guids(self, content_type: str, guids: Iterable[str]) -> None:
        with self._lock:
            existing = self._data["tracked"].setdefault(content_type, [])
            for guid in guids:
                guid = normalize_guid(guid)
                if guid not in existing:
                    existing.append(guid)
            self._save()

    def remove_tracked_guids(self, content_type: str, guids: Iterable[str]) -> int:
        """Drop tracked GUIDs for content that has been deleted.

        Returns:
            Number of GUIDs removed.

        Raises:
            OSError: If the store could not be written.
        """
        to_remove = {normalize_guid(g) for g in guids}
        with self._lock:
            existing = self._data["tracked"].get(content_type, [])
            remaining = [g for g in existing if normalize_guid(g) not in to_remove]
            removed = len(existing) - len(remaining)
            if removed:
                self._data["tracked"][content_type] = remaining
                self._save()
        return removed
