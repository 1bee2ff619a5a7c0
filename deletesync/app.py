"""
Main PlexPrune application.
Wires the delete-sync engine to its collaborators and runs it once.
"""

import argparse
import logging
import os
import sys
import time
from pathlib import Path
from typing import Optional

from deletesync import __version__
from deletesync.arr_api import RadarrManager, SonarrManager
from deletesync.config import ConfigManager
from deletesync.logging_config import LoggingManager
from deletesync.notifier import DeleteSyncNotifier
from deletesync.plex_api import PlexManager
from deletesync.results import DeleteSyncResult
from deletesync.service import DeleteSyncService
from deletesync.store import WatchlistStore


def build_service(config_manager: ConfigManager) -> DeleteSyncService:
    """Create a DeleteSyncService from a loaded configuration.

    The deletion policy is read from config_manager on every run, so
    reloading the config changes the next run's policy.
    """
    store = WatchlistStore(str(config_manager.get_watchlist_store_file()))
    plex = config_manager.plex
    plex_manager = PlexManager(
        plex.plex_url,
        plex.plex_token,
        store,
        settings_users=plex.users,
        users_toggle=plex.users_toggle,
    )
    return DeleteSyncService(
        config_provider=lambda: config_manager.deletion,
        store=store,
        plex_client=plex_manager,
        sonarr_manager=SonarrManager(config_manager.sonarr_instances),
        radarr_manager=RadarrManager(config_manager.radarr_instances),
        notifier=DeleteSyncNotifier(config_manager.notification),
    )


def summarize(result: DeleteSyncResult) -> str:
    """One-line summary of a run for the SUMMARY log level."""
    if result.safety_triggered:
        return f"Delete sync aborted by safety check: {result.safety_message}"
    if result.message:
        return f"Delete sync: {result.message}"
    verb = "Would delete" if result.dry_run else "Deleted"
    return (
        f"{verb} {result.movies.deleted} movies and {result.shows.deleted} shows "
        f"({result.skipped} skipped, {result.protected} protected)"
    )


class PlexPruneApp:
    """Main PlexPrune application class."""

    def __init__(self, config_file: str, dry_run: bool = False, verbose: bool = False):
        self.config_file = config_file
        self.dry_run = dry_run  # Don't delete anything, just report
        self.verbose = verbose  # Enable DEBUG level logging
        self.start_time = time.time()

        self.config_manager = ConfigManager(config_file)
        self.logging_manager: Optional[LoggingManager] = None
        self.result: Optional[DeleteSyncResult] = None

    def run(self) -> int:
        """Run delete sync once.

        Returns:
            Process exit code: 0 on success (including safety aborts), 1 on failure.
        """
        try:
            self.config_manager.load_config()
        except (FileNotFoundError, ValueError, TypeError) as e:
            logging.basicConfig(level=logging.INFO)
            logging.critical(f"Could not load configuration: {e}")
            return 1

        self._setup_logging()
        if self.dry_run:
            logging.warning("DRY-RUN MODE - Nothing will be deleted")
        if self.verbose:
            logging.info("VERBOSE MODE - Showing DEBUG level logs")

        try:
            service = build_service(self.config_manager)
            self.result = service.run(dry_run=self.dry_run)
        except Exception as e:
            logging.critical(f"Delete sync failed: {type(e).__name__}: {e}")
            return 1
        finally:
            logging.info(f"Execution time: {time.time() - self.start_time:.1f}s")

        self.logging_manager.add_summary_message(summarize(self.result))
        self.logging_manager.log_summary()
        return 0

    def _setup_logging(self) -> None:
        """Set up logging and the webhook handler from the loaded config."""
        self.logging_manager = LoggingManager(
            logs_folder=self.config_manager.paths.logs_folder,
            log_level="debug" if self.verbose else self.config_manager.log_level,
        )
        self.logging_manager.setup_logging()
        self.logging_manager.setup_notification_handlers(self.config_manager.notification)
        logging.info("")
        build_commit = os.environ.get('GIT_COMMIT', 'dev')
        logging.info(f"=== PlexPrune v{__version__} (build: {build_commit}) ===")


def default_config_path() -> str:
    """Settings file next to the project root."""
    script_dir = Path(os.path.dirname(os.path.abspath(__file__)))
    project_root = script_dir.parent if script_dir.name == 'deletesync' else script_dir
    return str(project_root / "plexprune_settings.json")


def main(argv=None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Remove media no user is watching any more from Sonarr/Radarr")
    parser.add_argument("--dry-run", action="store_true", help="Report what would be deleted without deleting")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--config", default=None, help="Path to plexprune_settings.json")
    args = parser.parse_args(argv)

    app = PlexPruneApp(args.config or default_config_path(), dry_run=args.dry_run, verbose=args.verbose)
    return app.run()


if __name__ == "__main__":
    sys.exit(main())
