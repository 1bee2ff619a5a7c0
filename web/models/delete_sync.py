"""Pydantic models for delete-sync routes"""

from typing import Optional

from pydantic import BaseModel


class RunRequestModel(BaseModel):
    """Request to start a delete-sync run"""
    dry_run: bool = False


class ScheduleConfigModel(BaseModel):
    """Delete-sync schedule settings"""
    enabled: bool = False
    schedule_type: str = "interval"
    interval_hours: int = 24
    interval_start_time: str = "03:00"
    cron_expression: str = "0 3 * * *"
    dry_run: bool = False


class RunStartedModel(BaseModel):
    """Response to a run request"""
    success: bool
    message: str
    dry_run: bool = False
    state: Optional[str] = None
