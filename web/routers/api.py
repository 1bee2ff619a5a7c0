"""API routes - health checks for container monitoring"""

from fastapi import APIRouter

from deletesync import __version__
from web.config import SETTINGS_FILE
from web.services import get_delete_sync_runner, get_scheduler_service

router = APIRouter()


@router.get("/health")
def health_check():
    """
    Health check endpoint for Docker container monitoring.

    Returns basic health status for container orchestration (Docker, Kubernetes, etc.).
    """
    schedule_status = get_scheduler_service().get_status()

    return {
        "status": "healthy",
        "version": __version__,
        "configured": SETTINGS_FILE.exists(),
        "scheduler_running": schedule_status.get("running", False),
        "delete_sync_running": get_delete_sync_runner().is_running,
    }
