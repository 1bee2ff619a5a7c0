"""
Logging configuration for PlexPrune.
Handles log setup, rotation, and the webhook notification handler.
"""

import json
import logging
import os
import sys
import threading
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List

import requests

# Global lock for thread-safe console output
_console_lock = threading.RLock()


class ThreadSafeStreamHandler(logging.StreamHandler):
    """A StreamHandler that uses a global lock for thread-safe console output.

    Watchlist refresh and library fetches log from worker threads; the lock
    keeps their lines from interleaving.
    """

    def emit(self, record):
        """Emit a record with thread-safe locking."""
        with _console_lock:
            super().emit(record)


# Define a new level called SUMMARY, above WARNING so it always reaches handlers
SUMMARY = logging.WARNING + 1
logging.addLevelName(SUMMARY, 'SUMMARY')

LEVEL_MAPPING = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


class WebhookHandler(logging.Handler):
    """Custom logging handler that forwards records to a Discord-style webhook."""

    SUMMARY = SUMMARY

    def __init__(self, webhook_url: str, timeout: int = 10):
        super().__init__()
        self.webhook_url = webhook_url
        self.timeout = timeout

    def emit(self, record):
        if record.levelno == SUMMARY:
            content = "PlexPrune Summary:\n" + record.getMessage()
        else:
            content = f"[{record.levelname}] {record.getMessage()}"
        self._post(content)

    def _post(self, content: str) -> None:
        payload = {"content": content}
        headers = {"Content-Type": "application/json"}
        try:
            response = requests.post(self.webhook_url, data=json.dumps(payload), headers=headers,
                                     timeout=self.timeout)
        except requests.RequestException:
            sys.stderr.write("Failed to send webhook message: request error\n")
            return
        if response.status_code not in (200, 204):
            # Not logged through logging, the record would come straight back here
            sys.stderr.write(f"Failed to send webhook message. Error code: {response.status_code}\n")


class LoggingManager:
    """Manages logging configuration and setup."""

    def __init__(self, logs_folder: str, log_level: str = "", max_log_files: int = 5):
        self.logs_folder = Path(logs_folder)
        self.log_level = log_level
        self.max_log_files = max_log_files
        self.log_file_pattern = "plexprune_log_*.log"
        self.logger = logging.getLogger()
        self.summary_messages: List[str] = []

    def setup_logging(self) -> None:
        """Set up logging configuration."""
        self._ensure_logs_folder()
        self._setup_log_file()
        self._set_log_level()
        self._clean_old_log_files()
        # Suppress noisy HTTP request logs
        logging.getLogger("urllib3").setLevel(logging.WARNING)
        logging.getLogger("requests").setLevel(logging.WARNING)
        logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)
        logging.getLogger("plexapi").setLevel(logging.WARNING)

    def _ensure_logs_folder(self) -> None:
        """Ensure the logs folder exists."""
        if not self.logs_folder.exists():
            try:
                self.logs_folder.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                raise PermissionError(f"{self.logs_folder} not writable, please fix the variable accordingly.")

    def _setup_log_file(self) -> None:
        """Set up the log file with rotation and the console handler."""
        current_time = datetime.now().strftime("%Y%m%d_%H%M")
        log_file = self.logs_folder / f"plexprune_log_{current_time}.log"
        latest_log_file = self.logs_folder / "plexprune_log_latest.log"

        formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=20*1024*1024,
            backupCount=self.max_log_files
        )
        file_handler.setFormatter(formatter)
        self.logger.addHandler(file_handler)

        console_handler = ThreadSafeStreamHandler()
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        # Create or update the symbolic link to the latest log file
        try:
            if latest_log_file.exists() or latest_log_file.is_symlink():
                latest_log_file.unlink()
            latest_log_file.symlink_to(log_file)
        except OSError as e:
            # Some filesystems (SMB shares, Windows) refuse symlinks
            logging.debug(f"Could not update latest log symlink: {e}")

    def _set_log_level(self) -> None:
        """Set the logging level."""
        if self.log_level:
            log_level = self.log_level.lower()
            if log_level in LEVEL_MAPPING:
                self.logger.setLevel(LEVEL_MAPPING[log_level])
            else:
                logging.warning(f"Invalid log_level: {log_level}. Using default level: INFO")
                self.logger.setLevel(logging.INFO)
        else:
            self.logger.setLevel(logging.INFO)

    def _clean_old_log_files(self) -> None:
        """Clean old log files to maintain the maximum count."""
        existing_log_files = list(self.logs_folder.glob(self.log_file_pattern))
        existing_log_files.sort(key=lambda x: x.stat().st_mtime)

        while len(existing_log_files) > self.max_log_files:
            os.remove(existing_log_files.pop(0))

    def setup_notification_handlers(self, notification_config) -> None:
        """Attach the webhook handler when a log webhook is configured."""
        if not notification_config.webhook_url:
            return
        webhook_handler = WebhookHandler(notification_config.webhook_url)
        self._set_handler_level(webhook_handler, notification_config.webhook_level)
        self.logger.addHandler(webhook_handler)

    def _set_handler_level(self, handler: logging.Handler, level_str: str) -> None:
        """Set the level for a logging handler."""
        if level_str:
            level_str = level_str.lower()
            level_mapping = dict(LEVEL_MAPPING, summary=SUMMARY)
            if level_str in level_mapping:
                handler.setLevel(level_mapping[level_str])
            else:
                logging.warning(f"Invalid notification level: {level_str}. Using default level: ERROR")
                handler.setLevel(logging.ERROR)
        else:
            handler.setLevel(logging.ERROR)

    def add_summary_message(self, message: str) -> None:
        """Add a message to the summary."""
        self.summary_messages.append(message)

    def log_summary(self) -> None:
        """Log the summary message.

        Uses newlines for multi-line output when there are multiple messages.
        """
        if self.summary_messages:
            if len(self.summary_messages) == 1:
                summary_message = self.summary_messages[0]
            else:
                summary_message = '\n  ' + '\n  '.join(self.summary_messages)
            self.logger.log(SUMMARY, summary_message)

    def shutdown(self) -> None:
        """Shutdown logging."""
        logging.shutdown()
