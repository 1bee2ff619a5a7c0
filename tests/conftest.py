"""Shared test fixtures for the PlexPrune test suite."""

import json
import os
import shutil
import sys
import tempfile
from dataclasses import replace
from unittest.mock import MagicMock

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from deletesync.config import DeletionPolicyConfig
from deletesync.models import LibraryItem, MOVIE, SHOW, User, WatchlistItem
from deletesync.service import DeleteSyncService


# ============================================================================
# Builders
# ============================================================================

def make_movie(title, guids, arr_id=1, instance_id=1, tags=None):
    """Radarr movie snapshot."""
    return LibraryItem(
        content_type=MOVIE,
        title=title,
        guids=list(guids),
        instance_id=instance_id,
        arr_id=arr_id,
        tags=list(tags or []),
        status="available",
    )


def make_show(title, guids, arr_id=1, instance_id=1, tags=None, ended=True):
    """Sonarr series snapshot."""
    return LibraryItem(
        content_type=SHOW,
        title=title,
        guids=list(guids),
        instance_id=instance_id,
        arr_id=arr_id,
        tags=list(tags or []),
        status="ended" if ended else "continuing",
    )


def make_policy(**overrides) -> DeletionPolicyConfig:
    """Deletion policy with movie deletion on and a 50% ceiling."""
    base = DeletionPolicyConfig(delete_movie=True, max_deletion_prevention=50)
    return replace(base, **overrides)


class FakeStore:
    """In-memory watchlist store."""

    def __init__(self, watchlist=None, users=None, tracked=None):
        self.watchlist = list(watchlist or [])
        self.users = list(users or [])
        self.tracked = set(tracked or [])
        self.removed = []

    def get_all_show_watchlist_items(self):
        return [item for item in self.watchlist if item.content_type == SHOW]

    def get_all_movie_watchlist_items(self):
        return [item for item in self.watchlist if item.content_type == MOVIE]

    def get_all_users(self):
        return list(self.users)

    def get_tracked_guids(self):
        return set(self.tracked)

    def remove_tracked_guids(self, content_type, guids):
        guids = set(guids)
        self.removed.append((content_type, guids))
        before = len(self.tracked)
        self.tracked -= guids
        return before - len(self.tracked)


def watchlisted(*guids, user_id=1, content_type=MOVIE):
    """One watchlist item per GUID."""
    return [
        WatchlistItem(user_id=user_id, title=f"Wanted {guid}", content_type=content_type, guids=[guid])
        for guid in guids
    ]


class ServiceHarness:
    """A DeleteSyncService wired to mocks, with handles on each collaborator."""

    def __init__(self, policy=None, movies=None, series=None, store=None, tags=None,
                 protected=None):
        self.policy = policy or make_policy()
        self.store = store or FakeStore(watchlist=watchlisted("tmdb:keep"))

        self.radarr_service = MagicMock(name="radarr_service")
        self.radarr_service.get_tags.return_value = tags or []
        self.sonarr_service = MagicMock(name="sonarr_service")
        self.sonarr_service.get_tags.return_value = tags or []

        self.radarr_manager = MagicMock(name="radarr_manager")
        self.radarr_manager.fetch_all_movies.return_value = list(movies or [])
        self.radarr_manager.get_radarr_service.return_value = self.radarr_service

        self.sonarr_manager = MagicMock(name="sonarr_manager")
        self.sonarr_manager.fetch_all_series.return_value = list(series or [])
        self.sonarr_manager.get_sonarr_service.return_value = self.sonarr_service

        self.plex_client = MagicMock(name="plex_client")
        self.plex_client.get_protected_guids.return_value = set(protected or [])

        self.notifier = MagicMock(name="notifier")
        self.sleeps = []

        self.service = DeleteSyncService(
            config_provider=lambda: self.policy,
            store=self.store,
            plex_client=self.plex_client,
            sonarr_manager=self.sonarr_manager,
            radarr_manager=self.radarr_manager,
            notifier=self.notifier,
            sleep=self.sleeps.append,
        )

    def run(self, dry_run=False):
        return self.service.run(dry_run=dry_run)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def temp_dir():
    """Provide a temporary directory, cleaned up after test."""
    d = tempfile.mkdtemp(prefix="plexprune_test_")
    yield d
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def sample_settings():
    """Minimal valid settings dict."""
    return {
        "PLEX_URL": "http://plex:32400/",
        "PLEX_TOKEN": "owner-token",
        "sonarr_instances": [
            {"id": 1, "name": "Sonarr", "url": "http://sonarr:8989/", "api_key": "s-key"},
        ],
        "radarr_instances": [
            {"id": 1, "name": "Radarr", "url": "http://radarr:7878", "api_key": "r-key"},
        ],
        "delete_movie": True,
        "max_deletion_prevention": 10,
    }


@pytest.fixture
def settings_file(temp_dir, sample_settings):
    """Write sample_settings to disk and return the path."""
    path = os.path.join(temp_dir, "plexprune_settings.json")
    sample_settings["data_folder"] = os.path.join(temp_dir, "data")
    sample_settings["logs_folder"] = os.path.join(temp_dir, "logs")
    with open(path, "w", encoding="utf-8") as f:
        json.dump(sample_settings, f)
    return path


@pytest.fixture
def owner():
    return User(id=1, name="owner", can_sync=True, is_primary=True)
