"""Tests for watchlist refresh and protection playlists."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from plexapi.exceptions import NotFound

from deletesync.models import MOVIE
from deletesync.plex_api import PlexManager, extract_guids
from deletesync.store import WatchlistStore


def plex_item(title, guids, item_type="movie", guid="plex://movie/abc", rating_key="10"):
    return SimpleNamespace(
        title=title,
        TYPE=item_type,
        guids=[SimpleNamespace(id=g) for g in guids],
        guid=guid,
        ratingKey=rating_key,
    )


@pytest.fixture
def store(tmp_path):
    return WatchlistStore(str(tmp_path / "store.json"))


@pytest.fixture
def manager(store):
    users = [
        {"id": 2, "title": "alice", "token": "alice-token"},
        {"id": 3, "title": "bob", "token": "bob-token", "can_sync": False},
        {"id": 4, "title": "no token"},
        {"id": 1, "title": "owner again", "token": "owner-token"},
    ]
    return PlexManager("http://plex:32400/", "owner-token", store, settings_users=users)


class TestExtractGuids:
    def test_external_and_own_guids(self):
        item = plex_item("Heat", ["tmdb://949", "imdb://tt0113277"])
        assert extract_guids(item) == ["tmdb:949", "imdb:tt0113277", "plex:movie/abc"]

    def test_episode_uses_show_guids(self):
        show = plex_item("Lost", ["tvdb://73739"], item_type="show", guid=None)
        episode = SimpleNamespace(TYPE="episode", guids=[], guid=None, show=lambda: show)
        assert extract_guids(episode) == ["tvdb:73739"]

    def test_episode_with_own_guids_includes_show_guids(self):
        show = plex_item("Lost", ["tvdb://73739", "imdb://tt0411008"], item_type="show", guid="plex://show/s1")
        episode = plex_item("Pilot", ["tvdb://127131"], item_type="episode", guid="plex://episode/e1")
        episode.show = lambda: show

        guids = extract_guids(episode)

        assert guids == ["tvdb:127131", "plex:episode/e1", "tvdb:73739", "imdb:tt0411008", "plex:show/s1"]

    def test_season_includes_show_guids(self):
        show = plex_item("Lost", ["tvdb://73739"], item_type="show", guid=None)
        season = plex_item("Season 1", ["tvdb://14609"], item_type="season", guid=None)
        season.show = lambda: show
        assert "tvdb:73739" in extract_guids(season)


class TestUsers:
    def test_other_users_need_token_and_title(self, manager):
        assert [u["title"] for u in manager._other_users()] == ["alice", "bob"]

    def test_users_toggle_off(self, manager):
        manager.users_toggle = False
        assert manager._other_users() == []


class TestWatchlistRefresh:
    def test_self_watchlist_stored(self, manager, store):
        account = SimpleNamespace(id=1, title="owner")
        items = [plex_item("Heat", ["tmdb://949"]), plex_item("Song", [], item_type="track")]
        with patch.object(manager, "_fetch_watchlist", return_value={"account": account, "items": items}):
            assert manager.get_self_watchlist() == 1

        stored = store.get_all_movie_watchlist_items()
        assert stored[0].content_type == MOVIE
        assert "tmdb:949" in stored[0].guids
        assert store.get_all_users()[0].is_primary is True

    def test_self_watchlist_failure_raises(self, manager):
        with patch.object(manager, "_fetch_watchlist", side_effect=Exception("401 Unauthorized")):
            with pytest.raises(ConnectionError):
                manager.get_self_watchlist()

    def test_others_watchlists_keep_sync_setting(self, manager, store):
        def fetch(token, username):
            return {"account": SimpleNamespace(id=None), "items": [plex_item(f"{username} pick", [f"tmdb://{token}"])]}

        with patch.object(manager, "_fetch_watchlist", side_effect=fetch):
            assert manager.get_others_watchlists() == 2

        users = {u.id: u for u in store.get_all_users()}
        assert users[2].can_sync is True
        assert users[3].can_sync is False

    def test_any_user_failure_fails_refresh(self, manager):
        def fetch(token, username):
            if username == "bob":
                raise Exception("429 Too Many Requests")
            return {"account": SimpleNamespace(id=2), "items": []}

        with patch.object(manager, "_fetch_watchlist", side_effect=fetch):
            with pytest.raises(ConnectionError, match="bob"):
                manager.get_others_watchlists()


class TestProtectedGuids:
    def test_union_across_users(self, manager):
        per_user = {"owner-token": {"tmdb:1"}, "alice-token": {"tmdb:2"}, "bob-token": set()}
        with patch.object(manager, "_user_protected_guids",
                          side_effect=lambda token, username, name: per_user[token]):
            assert manager.get_protected_guids("Do Not Delete") == {"tmdb:1", "tmdb:2"}

    def test_failure_raises(self, manager):
        with patch.object(manager, "_user_protected_guids", side_effect=Exception("500")):
            with pytest.raises(ConnectionError, match="owner"):
                manager.get_protected_guids("Do Not Delete")

    def test_missing_playlist_created(self, manager):
        server = MagicMock()
        server.playlist.side_effect = NotFound("missing")
        manager.plex = server
        with patch.object(manager, "_create_playlist") as create:
            assert manager._user_protected_guids("owner-token", "owner", "Do Not Delete") == set()
        create.assert_called_once_with("owner-token", "Do Not Delete")

    def test_playlist_items_read(self, manager):
        server = MagicMock()
        server.playlist.return_value.items.return_value = [plex_item("Heat", ["tmdb://949"], guid=None)]
        manager.plex = server
        assert manager._user_protected_guids("owner-token", "owner", "Do Not Delete") == {"tmdb:949"}

    def test_playlist_episode_protects_its_show(self, manager):
        show = plex_item("Lost", ["tvdb://73739"], item_type="show", guid=None)
        episode = plex_item("Pilot", ["tvdb://127131"], item_type="episode", guid="plex://episode/e1")
        episode.show = lambda: show
        server = MagicMock()
        server.playlist.return_value.items.return_value = [episode]
        manager.plex = server

        protected = manager._user_protected_guids("owner-token", "owner", "Do Not Delete")

        assert "tvdb:73739" in protected
        assert "tvdb:127131" in protected
