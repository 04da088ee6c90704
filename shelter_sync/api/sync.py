"""
Data synchronization endpoints
"""
from fastapi import APIRouter, BackgroundTasks, HTTPException

from shelter_sync import scheduler
from shelter_sync.services.run_lock import is_running
from shelter_sync.utils.logger import log

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("")
async def trigger_sync(background_tasks: BackgroundTasks):
    """
    Run a shelter sync in the background.
    Check progress at GET /sync/status

    Only runs in this process are refused with 409. A run held by another
    process (PostgreSQL advisory lock) is accepted here, then skipped and
    reported as last_run.status == "skipped".
    """
    if is_running():
        raise HTTPException(status_code=409, detail="A shelter sync is already running")
    log.info("Manual shelter sync requested")
    background_tasks.add_task(scheduler.sync_shelters)
    return {"message": "Sync started in background", "check_progress": "/sync/status"}


@router.get("/status")
async def get_sync_status():
    """Outcome of the most recent sync and the scheduled jobs"""
    return {
        "running": is_running(),
        "last_run": scheduler.get_last_run(),
        "jobs": scheduler.get_scheduled_jobs(),
    }
