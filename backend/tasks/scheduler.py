"""
Background Task Scheduler for portal maintenance

UPDATE SCHEDULE:
- Batch Status Refresh: Daily at 00:05 (Scheduled -> Ongoing -> Completed)
- Activity Log Pruning: Daily at 3 AM, drops logs past the retention window
- Reset Code Purge: Hourly, drops expired password reset codes

Usage:
    python -m tasks.scheduler                      # Run scheduler (foreground)
    python -m tasks.scheduler --once batch-status  # Refresh batch statuses once
    python -m tasks.scheduler --once activity      # Prune activity logs once
    python -m tasks.scheduler --once reset-codes   # Purge expired reset codes once
"""

import asyncio
import argparse
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.triggers.cron import CronTrigger

from core.config import ACTIVITY_RETENTION_DAYS, ENVIRONMENT
from services.activity import get_activity_service
from services.batches import get_batch_service
from services.users import get_user_service


class TaskScheduler:
    """Manages background maintenance tasks"""

    def __init__(self):
        self.scheduler = AsyncIOScheduler()

    async def start(self):
        """Start the scheduler with configured tasks"""
        print("=" * 60)
        print("FSP Portal Scheduler")
        print("=" * 60)
        print(f"Started: {datetime.now()}")
        print(f"Environment: {ENVIRONMENT}")
        print(f"Activity retention: {ACTIVITY_RETENTION_DAYS} days")
        print("=" * 60)

        # Batch status refresh (daily, just after midnight)
        self.scheduler.add_job(
            self.refresh_batch_statuses,
            CronTrigger(hour=0, minute=5),
            id='refresh_batch_statuses',
            name='Batch Status Refresh',
            replace_existing=True,
            max_instances=1
        )

        # Activity log pruning (3 AM daily)
        self.scheduler.add_job(
            self.prune_activity_logs,
            CronTrigger(hour=3, minute=0),
            id='prune_activity_logs',
            name='Activity Log Pruning',
            replace_existing=True,
            max_instances=1
        )

        # Expired reset code purge (hourly)
        self.scheduler.add_job(
            self.purge_reset_codes,
            IntervalTrigger(hours=1),
            id='purge_reset_codes',
            name='Reset Code Purge (hourly)',
            replace_existing=True,
            max_instances=1
        )

        self.scheduler.start()
        print("\n[SUCCESS] Scheduler started with the following jobs:")
        for job in self.scheduler.get_jobs():
            print(f"  - {job.name}: {job.trigger}")
        print("\nPress Ctrl+C to stop\n")

    def shutdown(self):
        """Shutdown the scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)
            print("[INFO] Scheduler stopped")

    # BATCH STATUS REFRESH

    async def refresh_batch_statuses(self):
        """Move batches along their lifecycle from today's date"""
        try:
            loop = asyncio.get_event_loop()
            updated = await loop.run_in_executor(None, get_batch_service().refresh_statuses)
            print(f"[{datetime.now()}] Batch status refresh: {updated} batches updated")
        except Exception as e:
            print(f"[ERROR] Batch status refresh failed: {e}")

    # ACTIVITY LOG PRUNING

    async def prune_activity_logs(self):
        """Delete activity logs older than the retention window"""
        try:
            loop = asyncio.get_event_loop()
            deleted = await loop.run_in_executor(
                None, get_activity_service().prune, ACTIVITY_RETENTION_DAYS
            )
            print(f"[{datetime.now()}] Activity pruning: {deleted} entries deleted")
        except Exception as e:
            print(f"[ERROR] Activity pruning failed: {e}")

    # RESET CODE PURGE

    async def purge_reset_codes(self):
        """Delete expired password reset codes"""
        try:
            loop = asyncio.get_event_loop()
            purged = await loop.run_in_executor(None, get_user_service().purge_expired_reset_codes)
            print(f"[{datetime.now()}] Reset code purge: {purged} codes deleted")
        except Exception as e:
            print(f"[ERROR] Reset code purge failed: {e}")


async def run_scheduler():
    """Run the scheduler indefinitely"""
    scheduler = TaskScheduler()
    await scheduler.start()

    try:
        # Keep running until interrupted
        while True:
            await asyncio.sleep(1)
    except (KeyboardInterrupt, SystemExit):
        scheduler.shutdown()


def run_once(task: str):
    """Run a single task once"""
    if task == "batch-status":
        print("Refreshing batch statuses...")
        print(f"Result: {get_batch_service().refresh_statuses()} batches updated")

    elif task == "activity":
        print(f"Pruning activity logs older than {ACTIVITY_RETENTION_DAYS} days...")
        print(f"Result: {get_activity_service().prune(ACTIVITY_RETENTION_DAYS)} entries deleted")

    elif task == "reset-codes":
        print("Purging expired password reset codes...")
        print(f"Result: {get_user_service().purge_expired_reset_codes()} codes deleted")

    else:
        print(f"Unknown task: {task}")


def main():
    parser = argparse.ArgumentParser(
        description="FSP Portal Scheduler"
    )
    parser.add_argument(
        "--once",
        type=str,
        choices=["batch-status", "activity", "reset-codes"],
        help="Run a single task once and exit"
    )

    args = parser.parse_args()

    if args.once:
        run_once(args.once)
    else:
        asyncio.run(run_scheduler())


if __name__ == "__main__":
    main()
