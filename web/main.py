"""PlexPrune web service - FastAPI Application"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from deletesync import __version__
from web.config import PROJECT_ROOT, SETTINGS_FILE
from web.routers import api, delete_sync
from web.services import get_scheduler_service


def _suppress_noisy_loggers():
    """Suppress debug spam from third-party libraries"""
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)
    logging.getLogger("plexapi").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown"""
    # Startup
    _suppress_noisy_loggers()
    print("PlexPrune web service starting...")
    print(f"Project root: {PROJECT_ROOT}")
    if not SETTINGS_FILE.exists():
        print(f"Warning: settings file not found at {SETTINGS_FILE}; delete sync runs will fail until it exists")

    scheduler = get_scheduler_service()
    scheduler.start()

    yield

    # Shutdown
    print("PlexPrune web service shutting down...")
    scheduler.stop()


# Create FastAPI app
app = FastAPI(
    title="PlexPrune",
    description="Delete-sync service for Plex watchlists and Sonarr/Radarr",
    version=__version__,
    lifespan=lifespan
)

# Include routers
app.include_router(api.router, prefix="/api", tags=["api"])
app.include_router(delete_sync.router, prefix="/api/delete-sync", tags=["delete-sync"])
