"""
Scheduler for the daily shelter refresh

Uses APScheduler to run the CKAN -> database sync on a cron schedule
(daily at 3am Toronto time by default).
"""
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo
import sys
import time

from shelter_sync.config import get_settings
from shelter_sync.services.exceptions import ShelterSyncError, SyncInProgressError
from shelter_sync.services.shelter_sync_service import run_sync
from shelter_sync.utils.helpers import utc_now
from shelter_sync.utils.logger import log

settings = get_settings()
SYNC_TZ = ZoneInfo(settings.sync_timezone)

scheduler = BackgroundScheduler(timezone=SYNC_TZ)

# Outcome of the most recent run, for /sync/status
_last_run: dict = {"status": "never_run"}


def _record_run(status: str, started_at: datetime, result: Optional[dict] = None, error: Optional[str] = None):
    _last_run.clear()
    _last_run.update({
        "status": status,
        "started_at": started_at.isoformat(),
        "finished_at": utc_now().isoformat(),
        "result": result,
        "error": error,
    })


def get_last_run() -> dict:
    return dict(_last_run)


def sync_shelters() -> Optional[dict]:
    """Run one shelter sync, recording and logging the outcome instead of raising"""
    started_at = utc_now()
    start = time.time()
    try:
        log.info("Running daily shelter refresh job...")
        result = run_sync()
        log.info(f"Shelter data refreshed successfully in {time.time() - start:.1f}s")
        _record_run("success", started_at, result=result)
        return result

    except SyncInProgressError as e:
        log.warning(f"Shelter sync skipped: {e}")
        _record_run("skipped", started_at, error=str(e))
        return None

    except ShelterSyncError as e:
        log.error(f"Shelter sync failed: {e}")
        _record_run("failed", started_at, error=str(e))
        return None

    except Exception as e:
        log.exception(f"Shelter sync error: {str(e)}")
        _record_run("failed", started_at, error=str(e))
        return None


def setup_scheduler():
    """
    Configure the scheduler.

    Cron times are in settings.sync_timezone (America/Toronto by default).
    """
    scheduler.add_job(
        sync_shelters,
        trigger=CronTrigger.from_crontab(settings.sync_schedule, timezone=SYNC_TZ),
        id='shelter_refresh',
        name='Daily Shelter Occupancy Refresh',
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )

    if settings.sync_on_startup:
        scheduler.add_job(
            sync_shelters,
            id='shelter_refresh_startup',
            name='Startup Shelter Refresh',
            replace_existing=True,
            max_instances=1
        )


def start_scheduler():
    """Start the scheduler"""
    setup_scheduler()
    scheduler.start()
    log.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        log.info("Scheduler stopped")


def get_scheduled_jobs() -> list:
    """
    Get list of all scheduled jobs

    Returns:
        List of job info dicts
    """
    jobs = []

    for job in scheduler.get_jobs():
        next_run = getattr(job, "next_run_time", None)

        jobs.append({
            'id': job.id,
            'name': job.name,
            'next_run': next_run.isoformat() if next_run else None,
            'trigger': str(job.trigger)
        })

    return jobs


# CLI for manual syncs

def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv

    if not argv:
        print("Usage: python -m shelter_sync.scheduler <command>")
        print("\nCommands:")
        print("  start    Start the scheduler and block")
        print("  sync     Run one shelter sync now")
        print("  list     List scheduled jobs")
        return 1

    command = argv[0]

    if command == "start":
        from shelter_sync.models.base import init_db
        init_db()
        print("Starting scheduler...")
        start_scheduler()

        try:
            while True:
                time.sleep(1)
        except (KeyboardInterrupt, SystemExit):
            print("\nShutting down scheduler...")
            stop_scheduler()
        return 0

    if command == "sync":
        from shelter_sync.models.base import init_db
        init_db()
        try:
            result = run_sync()
        except Exception as e:
            log.error(f"Shelter sync failed: {e}")
            print(f"✗ Error: {e}")
            return 1
        programs = result["programs"]
        print(
            f"✓ Synced {result['locations']['total']} locations, "
            f"{programs['inserted']} programs inserted, {programs['updated']} updated"
        )
        return 0

    if command == "list":
        setup_scheduler()
        print("\nScheduled Jobs:")
        print("-" * 80)
        for job in get_scheduled_jobs():
            print(f"\nID:       {job['id']}")
            print(f"Name:     {job['name']}")
            print(f"Next Run: {job['next_run']}")
            print(f"Trigger:  {job['trigger']}")
        return 0

    print(f"Unknown command: {command}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
