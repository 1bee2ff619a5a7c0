"""Scheduler service - manages scheduled delete-sync runs"""

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from web.config import SETTINGS_FILE
from web.services.delete_sync_runner import DeleteSyncRunner, get_delete_sync_runner, load_last_run_time

logger = logging.getLogger(__name__)

SCHEDULE_KEY = "delete_sync_schedule"


@dataclass
class ScheduleConfig:
    """Schedule configuration"""
    enabled: bool = False
    schedule_type: str = "interval"  # "interval" or "cron"
    interval_hours: int = 24
    interval_start_time: str = "03:00"  # HH:MM format - anchor time for intervals
    cron_expression: str = "0 3 * * *"
    dry_run: bool = False

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "schedule_type": self.schedule_type,
            "interval_hours": self.interval_hours,
            "interval_start_time": self.interval_start_time,
            "cron_expression": self.cron_expression,
            "dry_run": self.dry_run,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ScheduleConfig":
        return cls(
            enabled=data.get("enabled", False),
            schedule_type=data.get("schedule_type", "interval"),
            interval_hours=data.get("interval_hours", 24),
            interval_start_time=data.get("interval_start_time", "03:00"),
            cron_expression=data.get("cron_expression", "0 3 * * *"),
            dry_run=data.get("dry_run", False),
        )


class SchedulerService:
    """Service for managing scheduled delete-sync runs"""

    JOB_ID = "delete_sync_scheduled_run"

    def __init__(self, settings_file: Path = SETTINGS_FILE, runner: Optional[DeleteSyncRunner] = None):
        self._scheduler = BackgroundScheduler(
            job_defaults={
                'coalesce': True,  # Combine missed runs into one
                'max_instances': 1,  # Only one instance at a time
                'misfire_grace_time': 60 * 60,  # 1 hour grace time for missed jobs
            }
        )
        self._config: Optional[ScheduleConfig] = None
        self._settings_file = Path(settings_file)
        self._runner = runner
        self._next_run: Optional[datetime] = None
        self._started = False

    @property
    def runner(self) -> DeleteSyncRunner:
        if self._runner is None:
            self._runner = get_delete_sync_runner()
        return self._runner

    def start(self):
        """Start the scheduler"""
        if self._started:
            return

        self._scheduler.start()
        self._started = True

        self._load_config()
        if self._config and self._config.enabled:
            self._apply_schedule()

        logger.info("Scheduler service started")

    def stop(self):
        """Stop the scheduler"""
        if self._started:
            self._scheduler.shutdown(wait=False)
            self._started = False
            logger.info("Scheduler service stopped")

    def _load_config(self):
        """Load schedule config from settings file"""
        try:
            if self._settings_file.exists():
                with open(self._settings_file, 'r', encoding='utf-8') as f:
                    settings = json.load(f)
                self._config = ScheduleConfig.from_dict(settings.get(SCHEDULE_KEY, {}))
            else:
                self._config = ScheduleConfig()
        except (json.JSONDecodeError, IOError) as e:
            logger.error(f"Failed to load schedule config: {e}")
            self._config = ScheduleConfig()

    def _save_config(self):
        """Save schedule config to settings file"""
        try:
            settings = {}
            if self._settings_file.exists():
                with open(self._settings_file, 'r', encoding='utf-8') as f:
                    settings = json.load(f)

            settings[SCHEDULE_KEY] = self._config.to_dict()

            with open(self._settings_file, 'w', encoding='utf-8') as f:
                json.dump(settings, f, indent=2)
        except (json.JSONDecodeError, IOError) as e:
            logger.error(f"Failed to save schedule config: {e}")

    def _run_scheduled_job(self):
        """Execute the scheduled delete-sync run"""
        runner = self.runner

        if runner.is_running:
            logger.info("Scheduled delete sync skipped - run already in progress")
            return

        dry_run = self._config.dry_run if self._config else False
        logger.info(f"Starting scheduled delete sync{' (dry run)' if dry_run else ''}")
        runner.start_run(dry_run=dry_run)

    def _build_trigger(self, config: ScheduleConfig):
        """Create the APScheduler trigger and a description for a config."""
        if config.schedule_type == "interval":
            # Parse start time (HH:MM format) and create anchor datetime
            start_time = config.interval_start_time or "00:00"
            try:
                hour, minute = map(int, start_time.split(":"))
            except (ValueError, AttributeError):
                hour, minute = 0, 0

            anchor = datetime.now().replace(hour=hour, minute=minute, second=0, microsecond=0)
            trigger = IntervalTrigger(hours=config.interval_hours, start_date=anchor)
            return trigger, f"every {config.interval_hours} hour(s) starting at {start_time}"

        trigger = CronTrigger.from_crontab(config.cron_expression)
        return trigger, f"cron: {config.cron_expression}"

    def _apply_schedule(self):
        """Apply the current schedule configuration"""
        if self._scheduler.get_job(self.JOB_ID):
            self._scheduler.remove_job(self.JOB_ID)
            self._next_run = None

        if not self._config or not self._config.enabled:
            logger.info("Delete sync schedule disabled")
            return

        try:
            trigger, schedule_desc = self._build_trigger(self._config)
            self._scheduler.add_job(
                self._run_scheduled_job,
                trigger=trigger,
                id=self.JOB_ID,
                name="Delete Sync Scheduled Run",
                replace_existing=True,
            )

            job = self._scheduler.get_job(self.JOB_ID)
            if job:
                self._next_run = job.next_run_time

            logger.info(f"Delete sync schedule enabled: {schedule_desc}")
            if self._next_run:
                logger.info(f"Next scheduled run: {self._next_run.strftime('%Y-%m-%d %H:%M:%S')}")
        except ValueError as e:
            logger.error(f"Failed to apply schedule: {e}")

    def get_config(self) -> ScheduleConfig:
        """Get current schedule configuration"""
        if not self._config:
            self._load_config()
        return self._config or ScheduleConfig()

    def update_config(self, config: ScheduleConfig) -> Dict[str, Any]:
        """Update schedule configuration"""
        self._config = config
        self._save_config()

        if self._started:
            self._apply_schedule()

        return {
            "success": True,
            "message": "Schedule updated",
            "next_run": self._next_run.isoformat() if self._next_run else None,
        }

    def _format_relative_time(self, target: datetime) -> str:
        """Format a future datetime as relative time (e.g., 'in 12m', 'in 2h 30m')"""
        now = datetime.now()
        if target <= now:
            return "now"

        total_minutes = int((target - now).total_seconds()) // 60

        if total_minutes < 1:
            return "in <1m"
        elif total_minutes < 60:
            return f"in {total_minutes}m"
        hours = total_minutes // 60
        minutes = total_minutes % 60
        if minutes == 0:
            return f"in {hours}h"
        return f"in {hours}h {minutes}m"

    def get_status(self) -> Dict[str, Any]:
        """Get scheduler status"""
        job = self._scheduler.get_job(self.JOB_ID) if self._started else None
        config = self.get_config()

        if config.schedule_type == "interval":
            schedule_desc = f"Every {config.interval_hours}h from {config.interval_start_time or '00:00'}"
        else:
            schedule_desc = f"Cron: {config.cron_expression}"

        next_run_relative = None
        if job and job.next_run_time:
            next_time = job.next_run_time
            if next_time.tzinfo is not None:
                next_time = next_time.replace(tzinfo=None)
            next_run_relative = self._format_relative_time(next_time)

        last_run_dt = load_last_run_time()

        return {
            "enabled": config.enabled,
            "running": self._started,
            "schedule_type": config.schedule_type,
            "schedule_description": schedule_desc if config.enabled else "Disabled",
            "interval_hours": config.interval_hours,
            "interval_start_time": config.interval_start_time,
            "cron_expression": config.cron_expression,
            "dry_run": config.dry_run,
            "next_run": job.next_run_time.isoformat() if job and job.next_run_time else None,
            "next_run_relative": next_run_relative,
            "last_run": last_run_dt.isoformat() if last_run_dt else None,
        }

    def validate_cron(self, expression: str) -> Dict[str, Any]:
        """Validate a cron expression"""
        try:
            trigger = CronTrigger.from_crontab(expression)
        except ValueError as e:
            return {
                "valid": False,
                "message": str(e),
                "next_runs": [],
            }

        next_runs = []
        base = datetime.now().astimezone()
        for _ in range(3):
            next_time = trigger.get_next_fire_time(None, base)
            if next_time:
                next_runs.append(next_time.strftime("%Y-%m-%d %H:%M"))
                base = next_time + timedelta(seconds=1)

        return {
            "valid": True,
            "message": "Valid cron expression",
            "next_runs": next_runs,
        }


# Singleton instance
_scheduler_service: Optional[SchedulerService] = None
_scheduler_service_lock = threading.Lock()


def get_scheduler_service() -> SchedulerService:
    """Get or create the scheduler service singleton"""
    global _scheduler_service
    if _scheduler_service is None:
        with _scheduler_service_lock:
            if _scheduler_service is None:
                _scheduler_service = SchedulerService()
    return _scheduler_service
