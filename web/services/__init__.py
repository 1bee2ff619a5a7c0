"""Business logic services"""

from web.services.delete_sync_runner import (
    DeleteSyncRunner, RunRecord, RunState, get_delete_sync_runner,
)
from web.services.scheduler_service import SchedulerService, ScheduleConfig, get_scheduler_service

__all__ = [
    "DeleteSyncRunner",
    "RunRecord",
    "RunState",
    "get_delete_sync_runner",
    "SchedulerService",
    "ScheduleConfig",
    "get_scheduler_service",
]
