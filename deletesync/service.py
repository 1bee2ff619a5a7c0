"""
Delete-sync reconciliation.

DeleteSyncService drives one run end to end:
refresh watchlists -> build the watchlist universe -> fetch the Sonarr/Radarr
libraries -> load tracked/protected sets -> plan -> safety gate ->
delete (or simulate) -> approval cleanup -> notify.

Collaborators are passed in explicitly so the reconciliation can run
against fakes.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Set, Tuple

from deletesync.config import DeletionPolicyConfig
from deletesync.counters import DeletionCounters, DeletionRecord
from deletesync.guids import any_match, create_guid_set
from deletesync.models import LibraryItem, MOVIE, SHOW
from deletesync.protection import (
    ProtectionSetBuilder, TrackedGuidLoader, is_any_guid_protected, is_any_guid_tracked,
)
from deletesync.results import (
    DeleteSyncResult, build_result, create_empty_result, create_safety_triggered_result,
)
from deletesync.safety import check_safety, check_watchlist_universe
from deletesync.tag_cache import TagCache
from deletesync.tag_policy import TagDecision, TagPolicyEvaluator, category_enabled, normalize_removal_prefix

# Watchlist refresh retries (exponential backoff from the base delay)
REFRESH_RETRIES = 2
REFRESH_BASE_DELAY = 1.0

ALREADY_RUNNING_MESSAGE = "Delete sync already in progress"


class ItemAction(str, Enum):
    """What a run does with a single library item"""
    DELETE = "delete"
    PROTECTED = "protected"
    SKIP = "skip"
    IGNORE = "ignore"


@dataclass
class PlannedItem:
    """A library item with the action decided for it and the service that owns it."""
    item: LibraryItem
    action: ItemAction
    service: object = None


class DeleteSyncService:
    """Reconciles Sonarr/Radarr libraries against users' Plex watchlists.

    Only one run may be in flight; a second trigger returns an empty result
    with a message instead of waiting.
    """

    def __init__(self, config_provider: Callable[[], DeletionPolicyConfig], store, plex_client,
                 sonarr_manager, radarr_manager, notifier=None,
                 tag_cache: Optional[TagCache] = None,
                 protection_builder: Optional[ProtectionSetBuilder] = None,
                 tracked_loader: Optional[TrackedGuidLoader] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.config_provider = config_provider
        self.store = store
        self.plex_client = plex_client
        self.sonarr_manager = sonarr_manager
        self.radarr_manager = radarr_manager
        self.notifier = notifier
        self.tag_cache = tag_cache or TagCache()
        self.tag_policy = TagPolicyEvaluator(self.tag_cache)
        self.protection_builder = protection_builder
        self.tracked_loader = tracked_loader or TrackedGuidLoader(store)
        self._sleep = sleep
        self._run_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def run(self, dry_run: bool = False) -> DeleteSyncResult:
        """Run one reconciliation pass.

        Safety aborts are returned as results with safety_triggered set.
        Failures fetching the libraries or reading the store propagate.
        """
        if not self._run_lock.acquire(blocking=False):
            logging.warning("[DELETE SYNC] Delete-sync already in progress - ignoring duplicate trigger")
            return create_empty_result(ALREADY_RUNNING_MESSAGE, dry_run)

        try:
            self.tag_cache.clear()
            return self._run(dry_run)
        finally:
            self.tag_cache.clear()
            self._run_lock.release()

    def _run(self, dry_run: bool) -> DeleteSyncResult:
        config = self.config_provider()
        prefix = "[DRY RUN] " if dry_run else ""
        logging.info(f"[DELETE SYNC] {prefix}Starting delete sync ({config.deletion_mode} mode)")

        if not config.any_enabled:
            logging.info("[DELETE SYNC] Deletion is disabled for movies, ended shows and continuing shows")
            return create_empty_result(dry_run=dry_run)

        if config.is_tag_based and not normalize_removal_prefix(config.removed_tag_prefix):
            message = "Tag-based deletion is enabled but no removed tag prefix is configured"
            logging.warning(f"[DELETE SYNC] {message}")
            return create_empty_result(message, dry_run)

        refreshed, refresh_message = self._refresh_watchlists()
        if not refreshed:
            return self._safety_abort(refresh_message, config, dry_run)

        counters = DeletionCounters()
        universe = self._build_watchlist_universe(config, counters)
        universe_check = check_watchlist_universe(universe)
        if not universe_check.safe:
            return self._safety_abort(universe_check.message, config, dry_run)
        logging.info(f"[DELETE SYNC] Watchlist universe contains {len(universe)} GUIDs")

        series, movies = self._fetch_library()
        logging.info(f"[DELETE SYNC] Library contains {len(series)} series and {len(movies)} movies")

        try:
            tracked, protected = self._load_guid_sets(config)
        except Exception as e:
            logging.error(f"[DELETE SYNC] Could not load tracked/protected content: {type(e).__name__}: {e}")
            return self._safety_abort(
                f"Failed to load protected or tracked content: {e}", config, dry_run,
                series_count=len(series), movies_count=len(movies),
            )

        movie_plan = self._plan(movies, config, universe, tracked, protected)
        show_plan = self._plan(series, config, universe, tracked, protected)

        movie_candidates = sum(1 for planned in movie_plan if planned.action == ItemAction.DELETE)
        show_candidates = sum(1 for planned in show_plan if planned.action == ItemAction.DELETE)
        safety = check_safety(movie_candidates, show_candidates, len(movies) + len(series),
                              config.max_deletion_prevention)
        if not safety.safe:
            logging.error(f"[DELETE SYNC] {safety.message}")
            return self._safety_abort(
                safety.message, config, dry_run,
                series_count=show_candidates, movies_count=movie_candidates,
            )

        deleted_guids: Dict[str, Set[str]] = {MOVIE: set(), SHOW: set()}
        for planned in movie_plan:
            self._apply(planned, config, counters, dry_run, deleted_guids)
        self._log_category_summary("Movie", counters.movies_deleted, counters.movies_skipped,
                                   counters.movies_protected, config, dry_run)

        for planned in show_plan:
            self._apply(planned, config, counters, dry_run, deleted_guids)
        self._log_category_summary(
            f"TV show ({counters.ended_shows_deleted} ended, {counters.continuing_shows_deleted} continuing)",
            counters.total_shows_deleted, counters.total_shows_skipped, counters.shows_protected,
            config, dry_run,
        )

        if not dry_run and config.delete_sync_cleanup_approvals:
            self._cleanup_approvals(deleted_guids)

        result = build_result(counters, dry_run)
        logging.info(
            f"[DELETE SYNC] {prefix}Finished: {result.deleted} deleted, {result.skipped} skipped, "
            f"{result.protected} protected, {result.processed} processed"
        )
        if result.malformed_items:
            logging.warning(f"[DELETE SYNC] {result.malformed_items} watchlist items had malformed GUIDs")

        self._notify(result, dry_run, config)
        return result

    def _refresh_watchlists(self) -> Tuple[bool, str]:
        """Refresh the owner's and other users' watchlists concurrently, with retries."""
        for attempt in range(REFRESH_RETRIES + 1):
            if attempt > 0:
                logging.info(f"[DELETE SYNC] Refreshing watchlists attempt {attempt + 1}/{REFRESH_RETRIES + 1}")
            else:
                logging.debug("[DELETE SYNC] Refreshing watchlists to ensure we have current data")

            try:
                with ThreadPoolExecutor(max_workers=2) as executor:
                    futures = [
                        executor.submit(self.plex_client.get_self_watchlist),
                        executor.submit(self.plex_client.get_others_watchlists),
                    ]
                    for future in futures:
                        future.result()
                logging.debug("[DELETE SYNC] Watchlists refreshed successfully")
                return True, "Watchlists refreshed successfully"
            except Exception as e:
                if attempt == REFRESH_RETRIES:
                    logging.error(
                        f"[DELETE SYNC] Error refreshing watchlist data after {attempt + 1} attempts: "
                        f"{type(e).__name__}: {e}"
                    )
                    return False, f"Failed to refresh watchlist data: {e}"
                delay = REFRESH_BASE_DELAY * 2 ** attempt
                logging.warning(f"[DELETE SYNC] Watchlist refresh failed, retrying in {delay:g}s: {e}")
                self._sleep(delay)

        return False, "Unexpected error in watchlist refresh"

    def _build_watchlist_universe(self, config: DeletionPolicyConfig, counters: DeletionCounters) -> Set[str]:
        """Union the GUIDs on every eligible user's watchlist."""
        items = self.store.get_all_show_watchlist_items() + self.store.get_all_movie_watchlist_items()

        excluded_users: Set = set()
        if config.respect_user_sync_setting:
            excluded_users = {user.id for user in self.store.get_all_users() if not user.can_sync}
            if excluded_users:
                logging.info(f"[DELETE SYNC] Ignoring watchlists of {len(excluded_users)} users with sync disabled")

        for item in items:
            if item.malformed:
                counters.increment_malformed()
        return create_guid_set(item for item in items if item.user_id not in excluded_users)

    def _fetch_library(self) -> Tuple[List[LibraryItem], List[LibraryItem]]:
        with ThreadPoolExecutor(max_workers=2) as executor:
            series_future = executor.submit(self.sonarr_manager.fetch_all_series)
            movies_future = executor.submit(self.radarr_manager.fetch_all_movies)
            return series_future.result(), movies_future.result()

    def _load_guid_sets(self, config: DeletionPolicyConfig) -> Tuple[Optional[Set[str]], Optional[Set[str]]]:
        tracked = None
        if config.delete_sync_tracked_only:
            tracked = self.tracked_loader.load()

        protected = None
        if config.enable_plex_playlist_protection:
            builder = self.protection_builder or ProtectionSetBuilder(
                self.plex_client, config.plex_protection_playlist_name,
            )
            protected = builder.build_protected_guid_set()
        return tracked, protected

    def _service_for(self, item: LibraryItem):
        if item.is_movie:
            return self.radarr_manager.get_radarr_service(item.instance_id)
        return self.sonarr_manager.get_sonarr_service(item.instance_id)

    def _plan(self, items: List[LibraryItem], config: DeletionPolicyConfig, universe: Set[str],
              tracked: Optional[Set[str]], protected: Optional[Set[str]]) -> List[PlannedItem]:
        plan = []
        for item in items:
            try:
                plan.append(self._classify(item, config, universe, tracked, protected))
            except Exception as e:
                logging.error(f"[DELETE SYNC] Error evaluating '{item.title}': {type(e).__name__}: {e}")
                plan.append(PlannedItem(item, ItemAction.SKIP))
        return plan

    def _classify(self, item: LibraryItem, config: DeletionPolicyConfig, universe: Set[str],
                  tracked: Optional[Set[str]], protected: Optional[Set[str]]) -> PlannedItem:
        if any_match(item.guids, universe):
            return PlannedItem(item, ItemAction.IGNORE)
        if not category_enabled(item, config):
            return PlannedItem(item, ItemAction.IGNORE)

        kind = "radarr" if item.is_movie else "sonarr"
        service = self._service_for(item) if item.instance_id is not None else None
        if service is None:
            logging.warning(
                f"[DELETE SYNC] No {kind} service for instance {item.instance_id}, skipping deletion of '{item.title}'"
            )
            return PlannedItem(item, ItemAction.SKIP)

        def is_tracked(guids):
            return is_any_guid_tracked(
                guids, tracked, config.delete_sync_tracked_only,
                on_hit=lambda guid: logging.debug(f"[DELETE SYNC] '{item.title}' is tracked by {guid}"),
            )

        if config.is_tag_based:
            tag_map = self.tag_cache.get_tags_for_instance(item.instance_id, service, kind)
            decision = self.tag_policy.evaluate(item, tag_map, config, tracked, is_tracked)
            if decision == TagDecision.NOT_TRACKED:
                logging.debug(f"[DELETE SYNC] '{item.title}' is not tracked, skipping")
                return PlannedItem(item, ItemAction.SKIP)
            if decision != TagDecision.ELIGIBLE:
                return PlannedItem(item, ItemAction.IGNORE)
        elif not is_tracked(item.guids):
            logging.debug(f"[DELETE SYNC] '{item.title}' is not tracked, skipping")
            return PlannedItem(item, ItemAction.SKIP)

        if is_any_guid_protected(
            item.guids, protected, config.enable_plex_playlist_protection,
            on_hit=lambda guid: logging.debug(f"[DELETE SYNC] '{item.title}' is protected by {guid}"),
        ):
            return PlannedItem(item, ItemAction.PROTECTED, service)
        return PlannedItem(item, ItemAction.DELETE, service)

    def _apply(self, planned: PlannedItem, config: DeletionPolicyConfig, counters: DeletionCounters,
               dry_run: bool, deleted_guids: Dict[str, Set[str]]) -> None:
        item = planned.item
        if planned.action == ItemAction.IGNORE:
            return

        if planned.action == ItemAction.SKIP:
            if item.is_movie:
                counters.increment_movie_skipped()
            else:
                counters.increment_show_skipped(item.is_continuing)
            return

        if planned.action == ItemAction.PROTECTED:
            logging.info(
                f"[DELETE SYNC] Skipping deletion of '{item.title}' as it is protected in Plex playlist "
                f"'{config.plex_protection_playlist_name}'"
            )
            if item.is_movie:
                counters.increment_movie_protected()
            else:
                counters.increment_show_protected()
            return

        try:
            if dry_run:
                logging.info(
                    f"[DRY RUN] Would delete {self._describe(item)} '{item.title}' from instance {item.instance_id}"
                )
            else:
                logging.debug(f"[DELETE SYNC] Deleting '{item.title}' (delete files: {config.delete_files})")
                if item.is_movie:
                    planned.service.delete_from_radarr(item, config.delete_files)
                else:
                    planned.service.delete_from_sonarr(item, config.delete_files)
                deleted_guids[item.content_type].update(item.guids)
                logging.info(
                    f"[DELETE SYNC] Deleted {self._describe(item)} '{item.title}' from instance {item.instance_id}"
                )
        except Exception as e:
            action = "processing (DRY RUN)" if dry_run else "deleting"
            logging.error(
                f"[DELETE SYNC] Error {action} '{item.title}' from instance {item.instance_id}: "
                f"{type(e).__name__}: {e}"
            )
            if item.is_movie:
                counters.increment_movie_skipped()
            else:
                counters.increment_show_skipped(item.is_continuing)
            return

        record = DeletionRecord(
            title=item.title,
            guid=item.guids[0] if item.guids else "unknown",
            instance=str(item.instance_id),
        )
        if item.is_movie:
            counters.increment_movie_deleted(record)
        else:
            counters.increment_show_deleted(record, item.is_continuing)

    @staticmethod
    def _describe(item: LibraryItem) -> str:
        if item.is_movie:
            return "movie"
        return "continuing show" if item.is_continuing else "ended show"

    @staticmethod
    def _log_category_summary(label: str, deleted: int, skipped: int, protected: int,
                              config: DeletionPolicyConfig, dry_run: bool) -> None:
        mode = "Tag-based " if config.is_tag_based else ""
        dry = "(DRY RUN) " if dry_run else ""
        suffix = ""
        if config.enable_plex_playlist_protection:
            suffix = f", {protected} protected by playlist '{config.plex_protection_playlist_name}'"
        logging.info(
            f"[DELETE SYNC] {mode}{label} deletion {dry}summary: {deleted} identified for deletion, "
            f"{skipped} skipped{suffix}"
        )

    def _cleanup_approvals(self, deleted_guids: Dict[str, Set[str]]) -> None:
        """Drop approval tracking for content that no longer exists."""
        for content_type, guids in deleted_guids.items():
            if not guids:
                continue
            try:
                removed = self.store.remove_tracked_guids(content_type, guids)
                if removed:
                    logging.info(f"[DELETE SYNC] Removed {removed} tracked {content_type} approvals for deleted content")
            except Exception as e:
                logging.error(f"[DELETE SYNC] Error cleaning up {content_type} approvals: {type(e).__name__}: {e}")

    def _safety_abort(self, message: str, config: DeletionPolicyConfig, dry_run: bool,
                      series_count: int = 0, movies_count: int = 0) -> DeleteSyncResult:
        logging.warning(f"[DELETE SYNC] Safety check triggered, no content deleted: {message}")
        result = create_safety_triggered_result(message, series_count, movies_count, dry_run)
        self._notify(result, dry_run, config)
        return result

    def _notify(self, result: DeleteSyncResult, dry_run: bool, config: DeletionPolicyConfig) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.send_delete_sync_notification(result, dry_run, config)
        except Exception as e:
            logging.error(f"[DELETE SYNC] Error sending delete sync notification: {type(e).__name__}: {e}")
