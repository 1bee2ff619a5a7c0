"""Tests for the JSON watchlist store."""

import json
import os
from unittest.mock import patch

import pytest

from deletesync.models import MOVIE, SHOW, User, WatchlistItem
from deletesync.store import WatchlistStore


def write_store(path, data):
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f)


class TestLoading:
    def test_missing_file_is_empty(self, tmp_path):
        store = WatchlistStore(str(tmp_path / "store.json"))
        assert store.get_all_movie_watchlist_items() == []
        assert store.get_all_users() == []
        assert store.get_tracked_guids() == set()

    def test_corrupt_file_is_empty(self, tmp_path, caplog):
        path = tmp_path / "store.json"
        path.write_text("{not json", encoding="utf-8")
        store = WatchlistStore(str(path))
        assert store.get_all_show_watchlist_items() == []
        assert "Could not load watchlist store" in caplog.text

    def test_items_split_by_type_and_normalized(self, tmp_path):
        path = tmp_path / "store.json"
        write_store(path, {"watchlist": [
            {"user_id": 1, "title": "Heat", "type": "movie", "guids": ["TMDB://949"]},
            {"user_id": 1, "title": "Lost", "type": "show", "guids": '["tvdb:73739"]'},
        ]})
        store = WatchlistStore(str(path))

        movies = store.get_all_movie_watchlist_items()
        shows = store.get_all_show_watchlist_items()

        assert [(m.title, m.guids) for m in movies] == [("Heat", ["tmdb:949"])]
        assert shows[0].guids == ["tvdb:73739"]

    def test_malformed_guids_flagged(self, tmp_path):
        path = tmp_path / "store.json"
        write_store(path, {"watchlist": [{"user_id": 1, "title": "Bad", "type": "movie", "guids": "[tmdb"}]})
        item = WatchlistStore(str(path)).get_all_movie_watchlist_items()[0]
        assert item.guids == []
        assert item.malformed is True

    def test_users_default_to_sync_allowed(self, tmp_path):
        path = tmp_path / "store.json"
        write_store(path, {"users": [{"id": 1, "name": "owner"}, {"id": 2, "name": "kid", "can_sync": False},
                                     {"name": "no id"}]})
        users = WatchlistStore(str(path)).get_all_users()
        assert [(u.id, u.can_sync) for u in users] == [(1, True), (2, False)]


class TestWriting:
    def test_replace_user_watchlist_persists(self, tmp_path):
        path = str(tmp_path / "data" / "store.json")
        store = WatchlistStore(path)
        store.replace_user_watchlist(1, [WatchlistItem(1, "Heat", MOVIE, ["tmdb:949"])])
        store.replace_user_watchlist(2, [WatchlistItem(2, "Lost", SHOW, ["tvdb:1"])])
        store.replace_user_watchlist(1, [])

        reloaded = WatchlistStore(path)
        assert reloaded.get_all_movie_watchlist_items() == []
        assert [i.title for i in reloaded.get_all_show_watchlist_items()] == ["Lost"]
        assert not os.path.exists(path + ".tmp")

    def test_upsert_user(self, tmp_path):
        store = WatchlistStore(str(tmp_path / "store.json"))
        store.upsert_user(User(1, "owner"))
        store.upsert_user(User(1, "owner", can_sync=False))
        assert store.get_all_users() == [User(1, "owner", can_sync=False)]

    def test_tracked_guids_add_and_remove(self, tmp_path):
        store = WatchlistStore(str(tmp_path / "store.json"))
        store.add_tracked_guids(MOVIE, ["TMDB:1", "tmdb:2"])
        store.add_tracked_guids(SHOW, ["tvdb:3"])

        assert store.get_tracked_guids() == {"tmdb:1", "tmdb:2", "tvdb:3"}
        assert store.remove_tracked_guids(MOVIE, ["tmdb:1", "tmdb:404"]) == 1
        assert store.remove_tracked_guids(SHOW, ["tmdb:2"]) == 0
        assert WatchlistStore(store.store_file).get_tracked_guids() == {"tmdb:2", "tvdb:3"}

    def test_failed_save_raises_and_leaves_no_tmp_file(self, tmp_path, caplog):
        path = str(tmp_path / "store.json")
        store = WatchlistStore(path)
        store.add_tracked_guids(MOVIE, ["tmdb:1"])

        with patch("deletesync.store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                store.remove_tracked_guids(MOVIE, ["tmdb:1"])

        assert not os.path.exists(path + ".tmp")
        assert "Could not save watchlist store" in caplog.text
        assert WatchlistStore(path).get_tracked_guids() == {"tmdb:1"}

    def test_failed_watchlist_save_raises(self, tmp_path):
        store = WatchlistStore(str(tmp_path / "store.json"))
        with patch("deletesync.store.json.dump", side_effect=IOError("read-only")):
            with pytest.raises(OSError):
                store.replace_user_watchlist(1, [WatchlistItem(1, "Heat", MOVIE, ["tmdb:949"])])
        assert not os.path.exists(store.store_file + ".tmp")
