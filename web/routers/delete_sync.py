"""Delete-sync routes - trigger runs, report status and manage the schedule"""

from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from web.models.delete_sync import RunRequestModel, RunStartedModel, ScheduleConfigModel
from web.services import ScheduleConfig, get_delete_sync_runner, get_scheduler_service

router = APIRouter()


@router.post("/run")
def run_delete_sync(request: Optional[RunRequestModel] = None):
    """Start a delete-sync run in the background.

    Returns 409 while a run is already in progress.
    """
    dry_run = request.dry_run if request else False
    runner = get_delete_sync_runner()

    if not runner.start_run(dry_run=dry_run):
        body = RunStartedModel(
            success=False,
            message="Delete sync already in progress",
            dry_run=dry_run,
            state=runner.state.value,
        )
        return JSONResponse(body.model_dump(), status_code=409)

    body = RunStartedModel(
        success=True,
        message="Dry run started" if dry_run else "Delete sync started",
        dry_run=dry_run,
        state=runner.state.value,
    )
    return JSONResponse(body.model_dump(), status_code=202)


@router.get("/status")
def delete_sync_status():
    """Current or last run, including its result once finished"""
    return JSONResponse(get_delete_sync_runner().get_status_dict())


@router.get("/schedule")
def get_schedule():
    """Schedule configuration and next/last run times"""
    return JSONResponse(get_scheduler_service().get_status())


@router.put("/schedule")
def update_schedule(config: ScheduleConfigModel):
    """Replace the schedule configuration"""
    scheduler = get_scheduler_service()
    if config.schedule_type == "cron":
        validation = scheduler.validate_cron(config.cron_expression)
        if not validation["valid"]:
            return JSONResponse(
                {"success": False, "message": f"Invalid cron expression: {validation['message']}"},
                status_code=400,
            )
    elif config.schedule_type != "interval":
        return JSONResponse(
            {"success": False, "message": f"Unknown schedule type: {config.schedule_type}"},
            status_code=400,
        )
    elif config.interval_hours < 1:
        return JSONResponse(
            {"success": False, "message": "interval_hours must be at least 1"},
            status_code=400,
        )

    result = scheduler.update_config(ScheduleConfig.from_dict(config.model_dump()))
    return JSONResponse(result)
