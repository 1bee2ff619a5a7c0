"""
Delete-sync notifications.
Posts a run summary to a Discord webhook and/or an Apprise API server.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

import requests

from deletesync.config import DeletionPolicyConfig, NotificationConfig
from deletesync.results import DeleteSyncResult

# Which notify settings enable which channel
_WEBHOOK_OPTIONS = {"all", "discord-only", "webhook-only", "discord-webhook", "discord-both", "webhook", "both"}
_MESSAGE_OPTIONS = {"all", "discord-only", "dm-only", "discord-message", "discord-both", "message", "both"}
_APPRISE_OPTIONS = {"all", "apprise-only"}

# Discord embed colours
COLOR_DELETED = 0xE74C3C
COLOR_DRY_RUN = 0x3498DB
COLOR_SAFETY = 0xF1C40F
COLOR_NOTHING = 0x95A5A6

MAX_LISTED_ITEMS = 10


def get_notification_channels(notify: str) -> Dict[str, bool]:
    """Map a delete_sync_notify setting to enabled channels."""
    notify = (notify or "none").lower()
    return {
        "webhook": notify in _WEBHOOK_OPTIONS,
        "message": notify in _MESSAGE_OPTIONS,
        "apprise": notify in _APPRISE_OPTIONS,
    }


def _title_for(result: DeleteSyncResult, dry_run: bool) -> str:
    if result.safety_triggered:
        return "Delete Sync Aborted - Safety Check"
    if dry_run:
        return "Delete Sync Simulation"
    return "Delete Sync Complete"


def _list_titles(records) -> str:
    titles = [f"- {record.title}" for record in records[:MAX_LISTED_ITEMS]]
    if len(records) > MAX_LISTED_ITEMS:
        titles.append(f"...and {len(records) - MAX_LISTED_ITEMS} more")
    return "\n".join(titles)


def format_summary(result: DeleteSyncResult, dry_run: bool) -> str:
    """Plain-text summary used by Apprise and as the embed description."""
    if result.safety_triggered:
        return f"{result.safety_message}\nNo content was deleted."

    verb = "Would delete" if dry_run else "Deleted"
    lines = [
        f"{verb} {result.movies.deleted} movies and {result.shows.deleted} shows.",
        f"Skipped: {result.skipped}, protected: {result.protected}, processed: {result.processed}.",
    ]
    if result.malformed_items:
        lines.append(f"{result.malformed_items} items had unreadable GUIDs.")
    return "\n".join(lines)


def build_discord_payload(result: DeleteSyncResult, dry_run: bool) -> Dict[str, Any]:
    """Build a Discord webhook payload with one summary embed."""
    if result.safety_triggered:
        color = COLOR_SAFETY
    elif dry_run:
        color = COLOR_DRY_RUN
    elif result.deleted:
        color = COLOR_DELETED
    else:
        color = COLOR_NOTHING

    fields: List[Dict[str, Any]] = []
    if result.movies.items:
        fields.append({"name": f"Movies ({result.movies.deleted})",
                       "value": _list_titles(result.movies.items), "inline": False})
    if result.shows.items:
        fields.append({"name": f"Shows ({result.shows.deleted})",
                       "value": _list_titles(result.shows.items), "inline": False})

    return {
        "username": "PlexPrune",
        "embeds": [{
            "title": _title_for(result, dry_run),
            "description": format_summary(result, dry_run),
            "color": color,
            "fields": fields,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }],
    }


class DeleteSyncNotifier:
    """Sends the delete-sync summary over the configured channels."""

    def __init__(self, config: NotificationConfig, timeout: int = 10):
        self.config = config
        self.timeout = timeout

    def send_delete_sync_notification(self, result: DeleteSyncResult, dry_run: bool,
                                      policy: DeletionPolicyConfig) -> bool:
        """Notify about a finished run.

        Returns:
            True if at least one channel accepted the message.
        """
        if policy.delete_sync_notify == "none":
            logging.debug("[DELETE SYNC] Notifications disabled")
            return False

        if policy.delete_sync_notify_only_on_deletion and result.deleted == 0:
            logging.info("[DELETE SYNC] No deletions, skipping notification as configured")
            return False

        channels = get_notification_channels(policy.delete_sync_notify)
        sent = False

        if channels["webhook"]:
            if self.config.discord_webhook_url:
                try:
                    self._send_discord(result, dry_run)
                    sent = True
                except (requests.RequestException, ValueError) as e:
                    logging.error(f"[DELETE SYNC] Discord notification failed: {type(e).__name__}: {e}")
            else:
                logging.debug("[DELETE SYNC] Discord webhook channel enabled but no webhook URL configured")

        if channels["message"] and not channels["webhook"]:
            logging.debug("[DELETE SYNC] Direct messages are not supported; configure a Discord webhook instead")

        if channels["apprise"]:
            if self.config.apprise_url:
                try:
                    self._send_apprise(result, dry_run)
                    sent = True
                except (requests.RequestException, ValueError) as e:
                    logging.error(f"[DELETE SYNC] Apprise notification failed: {type(e).__name__}: {e}")
            else:
                logging.debug("[DELETE SYNC] Apprise channel enabled but no Apprise URL configured")

        return sent

    def _send_discord(self, result: DeleteSyncResult, dry_run: bool) -> None:
        payload = build_discord_payload(result, dry_run)
        headers = {"Content-Type": "application/json"}
        response = requests.post(self.config.discord_webhook_url, data=json.dumps(payload),
                                 headers=headers, timeout=self.timeout)
        response.raise_for_status()
        logging.debug(f"[DELETE SYNC] Discord notification sent ({response.status_code})")

    def _send_apprise(self, result: DeleteSyncResult, dry_run: bool) -> None:
        url = f"{self.config.apprise_url.rstrip('/')}/notify"
        payload = {
            "title": _title_for(result, dry_run),
            "body": format_summary(result, dry_run),
            "type": "warning" if result.safety_triggered else "info",
        }
        response = requests.post(url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        logging.debug(f"[DELETE SYNC] Apprise notification sent ({response.status_code})")
