"""
Plex API integration for PlexPrune.
Refreshes user watchlists into the watchlist store and reads the
protection playlists.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Set

import requests
from plexapi.exceptions import NotFound
from plexapi.myplex import MyPlexAccount
from plexapi.server import PlexServer

from deletesync.guids import parse_guids
from deletesync.models import MOVIE, SHOW, User, WatchlistItem
from deletesync.store import WatchlistStore

# API delay between plex.tv calls (seconds)
PLEX_API_DELAY = 0.5


def _log_api_error(context: str, error: Exception) -> None:
    """Log API errors with specific detection for common HTTP status codes."""
    error_str = str(error)

    if "401" in error_str or "Unauthorized" in error_str:
        logging.error(f"[PLEX API] Authentication failed ({context}): {error}")
        logging.error(f"[PLEX API] The Plex token is invalid or has been revoked.")
    elif "429" in error_str or "Too Many Requests" in error_str:
        logging.warning(f"[PLEX API] Rate limited by Plex.tv ({context}): {error}")
    elif "403" in error_str or "Forbidden" in error_str:
        logging.error(f"[PLEX API] Access forbidden ({context}): {error}")
    elif "404" in error_str or "Not Found" in error_str:
        logging.warning(f"[PLEX API] Resource not found ({context}): {error}")
    elif "500" in error_str or "502" in error_str or "503" in error_str:
        logging.error(f"[PLEX API] Plex server error ({context}): {error}")
    else:
        logging.error(f"[PLEX API] Error ({context}): {error}")


def _guid_ids(item) -> List[str]:
    return [getattr(guid, 'id', str(guid)) for guid in getattr(item, 'guids', None) or []]


def extract_guids(item) -> List[str]:
    """Collect normalized external GUIDs from a plexapi object.

    Episodes and seasons contribute their own GUIDs and always their show's.
    """
    raw = _guid_ids(item)
    # plex:// ids only match other plex:// ids, keep them as a fallback
    own_guid = getattr(item, 'guid', None)
    if own_guid:
        raw.append(own_guid)
    if getattr(item, 'TYPE', None) in ('episode', 'season'):
        show = item.show()
        raw.extend(_guid_ids(show))
        show_guid = getattr(show, 'guid', None)
        if show_guid:
            raw.append(show_guid)
    return parse_guids(raw)


class PlexManager:
    """Manages Plex connections, watchlist refresh and protection playlists."""

    def __init__(self, plex_url: str, plex_token: str, store: WatchlistStore,
                 settings_users: Optional[List[dict]] = None, users_toggle: bool = True,
                 timeout: int = 30):
        self.plex_url = plex_url.rstrip('/')
        self.plex_token = plex_token
        self.store = store
        self.settings_users = settings_users or []
        self.users_toggle = users_toggle
        self.timeout = timeout
        self.plex = None
        self._api_lock = threading.Lock()  # For rate limiting plex.tv calls

    def connect(self) -> None:
        """Connect to the Plex server."""
        logging.debug(f"Connecting to Plex server: {self.plex_url}")

        try:
            self.plex = PlexServer(self.plex_url, self.plex_token, timeout=self.timeout)
            logging.debug(f"Plex server version: {self.plex.version}")
        except Exception as e:
            _log_api_error("connect to Plex server", e)
            raise ConnectionError(f"Error connecting to the Plex server: {e}")

    def _server(self) -> PlexServer:
        if self.plex is None:
            self.connect()
        return self.plex

    def _rate_limited_api_call(self) -> None:
        """Enforce rate limiting for plex.tv API calls."""
        with self._api_lock:
            time.sleep(PLEX_API_DELAY)

    def _other_users(self) -> List[dict]:
        """Settings users that have a token and are not the owner."""
        if not self.users_toggle:
            return []
        users = []
        for entry in self.settings_users:
            token = entry.get('token')
            if not entry.get('title') or not token or token == self.plex_token:
                continue
            users.append(entry)
        return users

    def _fetch_watchlist(self, token: str, username: str) -> Dict:
        """Fetch one account's watchlist via plex.tv.

        Uses a fresh session per account to avoid session state contamination.
        """
        self._rate_limited_api_call()
        account = MyPlexAccount(token=token, session=requests.Session())
        self._rate_limited_api_call()
        watchlist = account.watchlist(includeGuids=1)
        logging.debug(f"[USER:{username}] Found {len(watchlist)} watchlist items")
        return {"account": account, "items": watchlist}

    def _store_watchlist(self, user: User, plex_items) -> int:
        items = []
        for plex_item in plex_items:
            item_type = getattr(plex_item, 'TYPE', None) or getattr(plex_item, 'type', None)
            if item_type not in ('movie', 'show'):
                logging.debug(f"Ignoring watchlist item '{plex_item.title}' of type '{item_type}'")
                continue
            items.append(WatchlistItem(
                user_id=user.id,
                title=plex_item.title,
                content_type=MOVIE if item_type == 'movie' else SHOW,
                guids=extract_guids(plex_item),
                key=getattr(plex_item, 'ratingKey', '') or '',
            ))
        self.store.upsert_user(user)
        return self.store.replace_user_watchlist(user.id, items)

    def get_self_watchlist(self) -> int:
        """Refresh the owner's watchlist into the store.

        Returns:
            Number of watchlist items stored.
        """
        try:
            result = self._fetch_watchlist(self.plex_token, "owner")
        except Exception as e:
            _log_api_error("fetch owner watchlist", e)
            raise ConnectionError(f"Error fetching owner watchlist: {e}")

        account = result["account"]
        user = User(id=account.id, name=account.title, can_sync=True, is_primary=True)
        existing = {u.id: u for u in self.store.get_all_users()}
        if user.id in existing:
            user.can_sync = existing[user.id].can_sync
        count = self._store_watchlist(user, result["items"])
        logging.info(f"[PLEX API] Refreshed {count} watchlist items for {user.name}")
        return count

    def get_others_watchlists(self) -> int:
        """Refresh every other user's watchlist into the store.

        A failure for any user fails the whole refresh: a missing watchlist
        would make that user's content look unwanted.

        Returns:
            Total number of watchlist items stored.
        """
        users = self._other_users()
        if not users:
            return 0

        existing = {u.id: u for u in self.store.get_all_users()}
        total = 0
        failures = []
        with ThreadPoolExecutor(max_workers=min(5, len(users))) as executor:
            futures = {
                executor.submit(self._fetch_watchlist, entry['token'], entry['title']): entry
                for entry in users
            }
            for future in as_completed(futures):
                entry = futures[future]
                username = entry['title']
                try:
                    result = future.result()
                except Exception as e:
                    _log_api_error(f"fetch watchlist for {username}", e)
                    failures.append(username)
                    continue
                user_id = entry.get('id') or result["account"].id
                previous = existing.get(user_id)
                user = User(
                    id=user_id,
                    name=username,
                    can_sync=entry.get('can_sync', previous.can_sync if previous else True),
                )
                total += self._store_watchlist(user, result["items"])

        if failures:
            raise ConnectionError(f"Could not refresh watchlists for: {', '.join(sorted(failures))}")
        logging.info(f"[PLEX API] Refreshed {total} watchlist items for {len(users)} other users")
        return total

    def _create_playlist(self, token: str, title: str) -> None:
        """Create an empty video playlist for the token's user."""
        server = self._server()
        uri = f"server://{server.machineIdentifier}/com.plexapp.plugins.library"
        response = requests.post(
            f"{self.plex_url}/playlists",
            params={"type": "video", "title": title, "smart": "0", "uri": uri},
            headers={"X-Plex-Token": token, "Accept": "application/json"},
            timeout=self.timeout,
        )
        response.raise_for_status()

    def _user_protected_guids(self, token: str, username: str, playlist_name: str) -> Set[str]:
        server = self._server() if token == self.plex_token else PlexServer(self.plex_url, token, timeout=self.timeout)
        try:
            playlist = server.playlist(playlist_name)
        except NotFound:
            logging.info(f"[USER:{username}] Creating protection playlist '{playlist_name}'")
            self._create_playlist(token, playlist_name)
            return set()

        guids: Set[str] = set()
        for item in playlist.items():
            guids.update(extract_guids(item))
        logging.debug(f"[USER:{username}] {len(guids)} protected GUIDs in '{playlist_name}'")
        return guids

    def get_protected_guids(self, playlist_name: str) -> Set[str]:
        """Union of GUIDs on every user's protection playlist.

        Missing playlists are created (even on dry runs) so users can start
        protecting content. Any failure raises.
        """
        accounts = [("owner", self.plex_token)]
        accounts += [(entry['title'], entry['token']) for entry in self._other_users()]

        protected: Set[str] = set()
        for username, token in accounts:
            try:
                protected |= self._user_protected_guids(token, username, playlist_name)
            except Exception as e:
                _log_api_error(f"load protection playlist for {username}", e)
                raise ConnectionError(f"Error loading protection playlist for {username}: {e}")
        return protected
