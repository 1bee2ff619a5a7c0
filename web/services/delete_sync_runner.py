"""Delete-sync runner service - runs delete sync in the background"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from deletesync.app import build_service
from deletesync.config import ConfigManager
from deletesync.results import DeleteSyncResult
from deletesync.service import DeleteSyncService
from web.config import DATA_DIR, LOGS_DIR, SETTINGS_FILE

LAST_RUN_FILE = DATA_DIR / "last_run.txt"


def save_last_run_time():
    """Save the current timestamp as the last run time."""
    try:
        LAST_RUN_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(LAST_RUN_FILE, 'w') as f:
            f.write(datetime.now().isoformat())
    except IOError as e:
        logging.debug(f"Could not save last run time: {e}")


def load_last_run_time() -> Optional[datetime]:
    """Read the last run time written by save_last_run_time."""
    try:
        if LAST_RUN_FILE.exists():
            with open(LAST_RUN_FILE, 'r') as f:
                timestamp_str = f.read().strip()
            if timestamp_str:
                return datetime.fromisoformat(timestamp_str)
    except (IOError, ValueError) as e:
        logging.debug(f"Could not read last run time: {e}")
    return None


class RunState(str, Enum):
    """Delete-sync run states"""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RunRecord:
    """The current or last delete-sync run"""
    state: RunState
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0
    dry_run: bool = False
    result: Optional[DeleteSyncResult] = None
    error_message: Optional[str] = None


def default_service_factory() -> DeleteSyncService:
    """Load the settings file and build a service from it."""
    config_manager = ConfigManager(str(SETTINGS_FILE))
    # Settings may override these; they default to the web config dir
    config_manager.paths.data_folder = str(DATA_DIR)
    config_manager.paths.logs_folder = str(LOGS_DIR)
    config_manager.load_config()
    return build_service(config_manager)


class DeleteSyncRunner:
    """Service for running delete sync on a background thread"""

    def __init__(self, service_factory: Callable[[], DeleteSyncService] = default_service_factory):
        self._service_factory = service_factory
        self._lock = threading.Lock()
        self._state = RunState.IDLE
        self._current: Optional[RunRecord] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> RunState:
        """Get current run state"""
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        """Check if a run is currently in progress"""
        return self.state == RunState.RUNNING

    @property
    def current_run(self) -> Optional[RunRecord]:
        """Get the current/last run"""
        with self._lock:
            return self._current

    def start_run(self, dry_run: bool = False) -> bool:
        """
        Start delete sync in a background thread.

        Args:
            dry_run: If True, report what would be deleted without deleting

        Returns:
            True if the run started, False if one is already running
        """
        with self._lock:
            if self._state == RunState.RUNNING:
                return False

            self._state = RunState.RUNNING
            self._current = RunRecord(
                state=RunState.RUNNING,
                started_at=datetime.now(),
                dry_run=dry_run,
            )

        self._thread = threading.Thread(
            target=self._run,
            args=(dry_run,),
            daemon=True
        )
        self._thread.start()
        return True

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until the background run finishes."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def _run(self, dry_run: bool):
        """Run delete sync (called in background thread)"""
        start_time = time.time()
        result = None
        error_message = None

        try:
            logging.info(f"Starting delete sync{' (dry_run)' if dry_run else ''}...")
            service = self._service_factory()
            result = service.run(dry_run=dry_run)
        except Exception as e:
            error_message = str(e)
            logging.exception("Delete sync failed")
        finally:
            duration = time.time() - start_time
            with self._lock:
                self._current.completed_at = datetime.now()
                self._current.duration_seconds = duration
                self._current.result = result
                if error_message is not None:
                    self._current.state = RunState.FAILED
                    self._current.error_message = error_message
                    self._state = RunState.FAILED
                else:
                    self._current.state = RunState.COMPLETED
                    self._state = RunState.COMPLETED

            save_last_run_time()

    def get_status_dict(self) -> dict:
        """Get status as a dictionary for API responses"""
        run = self.current_run

        if run is None:
            return {
                "state": RunState.IDLE.value,
                "is_running": False,
                "message": "No delete sync run yet"
            }

        status = {
            "state": run.state.value,
            "is_running": run.state == RunState.RUNNING,
            "dry_run": run.dry_run,
            "started_at": run.started_at.isoformat() if run.started_at else None,
            "completed_at": run.completed_at.isoformat() if run.completed_at else None,
            "duration_seconds": round(run.duration_seconds, 1),
            "error_message": run.error_message,
        }
        if run.result is not None:
            status["result"] = run.result.to_dict()
        return status


# Singleton instance
_delete_sync_runner: Optional[DeleteSyncRunner] = None
_delete_sync_runner_lock = threading.Lock()


def get_delete_sync_runner() -> DeleteSyncRunner:
    """Get or create the delete-sync runner singleton"""
    global _delete_sync_runner
    if _delete_sync_runner is None:
        with _delete_sync_runner_lock:
            if _delete_sync_runner is None:
                _delete_sync_runner = DeleteSyncRunner()
    return _delete_sync_runner
