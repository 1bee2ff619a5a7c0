"""
Configuration management for PlexPrune.
Handles loading, validation, and management of application settings.
"""

import json
import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional, List, Tuple
from dataclasses import dataclass, field

# Get the directory where config.py is located
_SCRIPT_DIR = Path(os.path.dirname(os.path.abspath(__file__)))

# Project root detection: the package lives one level below the root
if _SCRIPT_DIR.name == 'deletesync':
    _PROJECT_ROOT = _SCRIPT_DIR.parent
else:
    _PROJECT_ROOT = _SCRIPT_DIR

DELETION_MODES = ("watchlist", "tag-based")

NOTIFY_OPTIONS = (
    "none", "all", "discord-only", "discord-webhook", "discord-message", "discord-both",
    "webhook-only", "dm-only", "apprise-only", "webhook", "message", "both",
)

DEFAULT_PROTECTION_PLAYLIST = "Do Not Delete"
DEFAULT_REMOVED_TAG_PREFIX = "plexprune:removed"
DEFAULT_MAX_DELETION_PREVENTION = 10

# Older settings files used camelCase keys
LEGACY_KEY_MAP = {
    "deleteMovie": "delete_movie",
    "deleteEndedShow": "delete_ended_show",
    "deleteContinuingShow": "delete_continuing_show",
    "deleteFiles": "delete_files",
    "deletionMode": "deletion_mode",
    "removedTagPrefix": "removed_tag_prefix",
    "deleteSyncRequiredTagRegex": "delete_sync_required_tag_regex",
    "deleteSyncTrackedOnly": "delete_sync_tracked_only",
    "enablePlexPlaylistProtection": "enable_plex_playlist_protection",
    "plexProtectionPlaylistName": "plex_protection_playlist_name",
    "maxDeletionPrevention": "max_deletion_prevention",
    "respectUserSyncSetting": "respect_user_sync_setting",
    "deleteSyncNotify": "delete_sync_notify",
    "deleteSyncNotifyOnlyOnDeletion": "delete_sync_notify_only_on_deletion",
    "deleteSyncCleanupApprovals": "delete_sync_cleanup_approvals",
}


@dataclass(frozen=True)
class DeletionPolicyConfig:
    """Deletion policy for one delete-sync run.

    Frozen so the policy cannot drift while a run is reconciling.
    max_deletion_prevention is kept as configured; the safety gate
    validates it.
    """
    delete_movie: bool = False
    delete_ended_show: bool = False
    delete_continuing_show: bool = False
    delete_files: bool = True
    deletion_mode: str = "watchlist"
    removed_tag_prefix: str = DEFAULT_REMOVED_TAG_PREFIX
    delete_sync_required_tag_regex: Optional[str] = None
    delete_sync_tracked_only: bool = False
    enable_plex_playlist_protection: bool = False
    plex_protection_playlist_name: str = DEFAULT_PROTECTION_PLAYLIST
    max_deletion_prevention: Any = DEFAULT_MAX_DELETION_PREVENTION
    respect_user_sync_setting: bool = True
    delete_sync_notify: str = "none"
    delete_sync_notify_only_on_deletion: bool = False
    delete_sync_cleanup_approvals: bool = False

    @property
    def any_enabled(self) -> bool:
        return self.delete_movie or self.delete_ended_show or self.delete_continuing_show

    @property
    def is_tag_based(self) -> bool:
        return self.deletion_mode == "tag-based"


@dataclass
class ArrInstanceConfig:
    """A single Sonarr or Radarr instance."""
    id: int
    name: str = ""
    base_url: str = ""
    api_key: str = ""
    enabled: bool = True
    timeout: int = 30


@dataclass
class NotificationConfig:
    """Configuration for notification settings."""
    discord_webhook_url: str = ""
    apprise_url: str = ""
    # Log forwarding (summary/errors) via webhook
    webhook_url: str = ""
    webhook_level: str = ""


@dataclass
class PathConfig:
    """Configuration for file paths and directories."""
    script_folder: str = str(_PROJECT_ROOT)
    logs_folder: str = str(_PROJECT_ROOT / "logs")
    data_folder: str = str(_PROJECT_ROOT / "data")


@dataclass
class PlexConfig:
    """Configuration for Plex server settings."""
    plex_url: str = ""
    plex_token: str = ""
    users_toggle: bool = True
    users: List[dict] = field(default_factory=list)  # User list from settings file


def migrate_legacy_keys(settings: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
    """Rename camelCase delete-sync keys to their snake_case form.

    Existing snake_case values win over legacy ones.

    Returns:
        Tuple of (updated_settings, was_migrated).
    """
    migrated = False
    for legacy, current in LEGACY_KEY_MAP.items():
        if legacy not in settings:
            continue
        value = settings.pop(legacy)
        if current not in settings:
            settings[current] = value
            logging.info(f"Migrated setting '{legacy}' -> '{current}'")
        migrated = True
    return settings, migrated


class ConfigManager:
    """Manages application configuration loading and validation."""

    def __init__(self, config_file: str):
        self.config_file = Path(config_file)
        self.settings_data: Dict[str, Any] = {}
        self.notification = NotificationConfig()
        self.paths = PathConfig()
        self.plex = PlexConfig()
        self.deletion = DeletionPolicyConfig()
        self.sonarr_instances: List[ArrInstanceConfig] = []
        self.radarr_instances: List[ArrInstanceConfig] = []
        self.log_level = ""
        self._migrated = False

    def load_config(self) -> None:
        """Load configuration from file and validate."""
        logging.debug(f"Loading configuration from: {self.config_file}")

        if not self.config_file.exists():
            logging.error(f"Settings file not found: {self.config_file}")
            raise FileNotFoundError(f"Settings file not found: {self.config_file}")

        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                self.settings_data = json.load(f)
            logging.debug("Configuration file loaded successfully")
        except json.JSONDecodeError as e:
            logging.error(f"Invalid JSON in settings file: {type(e).__name__}: {e}")
            raise ValueError(f"Invalid JSON in settings file: {e}")

        self.settings_data, self._migrated = migrate_legacy_keys(self.settings_data)

        self._validate_required_fields()
        self._validate_types()
        self._load_all_configs()
        self._validate_values()
        if self._migrated:
            self._save_updated_config()

        self.ensure_data_folder()
        logging.debug("Configuration loaded and validated successfully")

    def _load_all_configs(self) -> None:
        """Load all configuration sections."""
        self._load_plex_config()
        self._load_arr_config()
        self._load_deletion_config()
        self._load_path_config()
        self._load_notification_config()
        self.log_level = self.settings_data.get('log_level', '')

    def _load_plex_config(self) -> None:
        """Load Plex-related configuration."""
        self.plex.plex_url = self.settings_data['PLEX_URL'].rstrip('/')
        self.plex.plex_token = self.settings_data['PLEX_TOKEN']
        self.plex.users_toggle = self.settings_data.get('users_toggle', True)
        self.plex.users = self.settings_data.get('users', [])

    def _load_arr_config(self) -> None:
        """Load Sonarr and Radarr instance lists."""
        self.sonarr_instances = self._parse_instances('sonarr_instances')
        self.radarr_instances = self._parse_instances('radarr_instances')

    def _parse_instances(self, key: str) -> List[ArrInstanceConfig]:
        instances = []
        for index, data in enumerate(self.settings_data.get(key, [])):
            instance = ArrInstanceConfig(
                id=data.get('id', index + 1),
                name=data.get('name', f"{key.split('_')[0].capitalize()} {index + 1}"),
                base_url=data.get('url', '').rstrip('/'),
                api_key=data.get('api_key', ''),
                enabled=data.get('enabled', True),
                timeout=data.get('timeout', 30),
            )
            instances.append(instance)
            logging.debug(f"Loaded {key} entry: {instance.name} ({instance.base_url})")
        return instances

    def _load_deletion_config(self) -> None:
        """Load the delete-sync policy snapshot."""
        s = self.settings_data
        regex = s.get('delete_sync_required_tag_regex') or None

        deletion_mode = s.get('deletion_mode', 'watchlist')
        if deletion_mode not in DELETION_MODES:
            logging.warning(f"Invalid deletion_mode '{deletion_mode}', using 'watchlist'")
            deletion_mode = 'watchlist'

        notify = s.get('delete_sync_notify', 'none') or 'none'
        if notify not in NOTIFY_OPTIONS:
            logging.warning(f"Invalid delete_sync_notify '{notify}', using 'none'")
            notify = 'none'

        self.deletion = DeletionPolicyConfig(
            delete_movie=s.get('delete_movie', False),
            delete_ended_show=s.get('delete_ended_show', False),
            delete_continuing_show=s.get('delete_continuing_show', False),
            delete_files=s.get('delete_files', True),
            deletion_mode=deletion_mode,
            removed_tag_prefix=s.get('removed_tag_prefix', DEFAULT_REMOVED_TAG_PREFIX),
            delete_sync_required_tag_regex=regex,
            delete_sync_tracked_only=s.get('delete_sync_tracked_only', False),
            enable_plex_playlist_protection=s.get('enable_plex_playlist_protection', False),
            plex_protection_playlist_name=s.get('plex_protection_playlist_name') or DEFAULT_PROTECTION_PLAYLIST,
            max_deletion_prevention=s.get('max_deletion_prevention', DEFAULT_MAX_DELETION_PREVENTION),
            respect_user_sync_setting=s.get('respect_user_sync_setting', True),
            delete_sync_notify=notify,
            delete_sync_notify_only_on_deletion=s.get('delete_sync_notify_only_on_deletion', False),
            delete_sync_cleanup_approvals=s.get('delete_sync_cleanup_approvals', False),
        )

    def _load_path_config(self) -> None:
        """Load path-related configuration."""
        self.paths.logs_folder = self.settings_data.get('logs_folder', self.paths.logs_folder)
        self.paths.data_folder = self.settings_data.get('data_folder', self.paths.data_folder)

    def _load_notification_config(self) -> None:
        """Load notification-related configuration."""
        self.notification.discord_webhook_url = self.settings_data.get('discord_webhook_url', '')
        self.notification.apprise_url = self.settings_data.get('apprise_url', '')
        self.notification.webhook_url = self.settings_data.get('webhook_url', '')
        self.notification.webhook_level = self.settings_data.get('webhook_level', '')

    def _validate_required_fields(self) -> None:
        """Validate that all required fields exist in the configuration."""
        logging.debug("Validating required fields...")
        required_fields = ['PLEX_URL', 'PLEX_TOKEN']

        missing_fields = [f for f in required_fields if f not in self.settings_data]
        if missing_fields:
            logging.error(f"Missing required fields in settings: {missing_fields}")
            raise ValueError(f"Missing required fields in settings: {missing_fields}")

    def _validate_types(self) -> None:
        """Validate that configuration values have correct types."""
        logging.debug("Validating configuration types...")

        type_checks = {
            'PLEX_URL': str,
            'PLEX_TOKEN': str,
            'users': list,
            'sonarr_instances': list,
            'radarr_instances': list,
            'delete_movie': bool,
            'delete_ended_show': bool,
            'delete_continuing_show': bool,
            'delete_files': bool,
            'delete_sync_tracked_only': bool,
            'enable_plex_playlist_protection': bool,
            'respect_user_sync_setting': bool,
            'delete_sync_notify_only_on_deletion': bool,
            'delete_sync_cleanup_approvals': bool,
            'removed_tag_prefix': str,
        }

        type_errors = []
        for key, expected_type in type_checks.items():
            if key in self.settings_data:
                value = self.settings_data[key]
                if not isinstance(value, expected_type):
                    type_errors.append(
                        f"'{key}' expected {expected_type.__name__}, got {type(value).__name__}"
                    )

        if type_errors:
            error_msg = "Type validation errors: " + "; ".join(type_errors)
            logging.error(error_msg)
            raise TypeError(error_msg)

    def _validate_values(self) -> None:
        """Validate configuration value ranges and constraints."""
        logging.debug("Validating configuration values...")
        errors = []

        if not self.plex.plex_url.strip():
            errors.append("'PLEX_URL' cannot be empty")
        if not self.plex.plex_token.strip():
            errors.append("'PLEX_TOKEN' cannot be empty")

        for instance in self.sonarr_instances + self.radarr_instances:
            if instance.enabled and not instance.base_url:
                errors.append(f"Instance '{instance.name}' has no url")
            if instance.enabled and not instance.api_key:
                errors.append(f"Instance '{instance.name}' has no api_key")

        ids = [i.id for i in self.sonarr_instances]
        if len(ids) != len(set(ids)):
            errors.append("Duplicate Sonarr instance ids")
        ids = [i.id for i in self.radarr_instances]
        if len(ids) != len(set(ids)):
            errors.append("Duplicate Radarr instance ids")

        if errors:
            error_msg = "Configuration validation errors: " + "; ".join(errors)
            logging.error(error_msg)
            raise ValueError(error_msg)

        # Out-of-range ceilings are refused by the safety gate at run time
        ceiling = self.deletion.max_deletion_prevention
        try:
            ceiling_ok = 0 <= float(ceiling) <= 100
        except (TypeError, ValueError):
            ceiling_ok = False
        if not ceiling_ok:
            logging.warning(
                f"max_deletion_prevention '{ceiling}' is not a percentage between 0 and 100; "
                f"delete-sync runs will be refused until it is fixed"
            )

    def _save_updated_config(self) -> None:
        """Save migrated configuration back to file."""
        try:
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(self.settings_data, f, indent=4)
        except Exception as e:
            logging.error(f"Error saving settings: {type(e).__name__}: {e}")
            raise

    def get_data_folder(self) -> Path:
        """Get the path for the data folder."""
        return Path(self.paths.data_folder)

    def get_watchlist_store_file(self) -> Path:
        """Get the path for the watchlist/approval store file."""
        return self.get_data_folder() / "watchlist_store.json"

    def ensure_data_folder(self) -> None:
        """Ensure the data folder exists."""
        data_folder = self.get_data_folder()
        if not data_folder.exists():
            data_folder.mkdir(parents=True, exist_ok=True)
            logging.debug(f"Created data folder: {data_folder}")
