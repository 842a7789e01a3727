"""Job scheduling for the watch cycles."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger


logger = structlog.get_logger(__name__)


class JobScheduler:
    """Hosts the periodic watch jobs and one-shot retries on APScheduler."""

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None):
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.running = False

    def start(self):
        """Start the scheduler. Must be called from inside the running event loop."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        self.scheduler.start()
        self.running = True
        logger.info("Job scheduler started")

    def stop(self):
        """Stop the scheduler without waiting for running jobs."""
        if not self.running:
            return

        self.scheduler.shutdown(wait=False)
        self.running = False
        logger.info("Job scheduler stopped")

    def add_interval_job(
        self,
        job_id: str,
        func: Callable,
        seconds: float,
        run_immediately: bool = False,
        description: Optional[str] = None,
    ):
        """Add an interval job; at most one instance runs at a time and missed ticks coalesce."""
        if job_id in self.jobs:
            logger.warning("Job already exists, replacing", job_id=job_id)
            self.remove_job(job_id)

        kwargs: Dict[str, Any] = {}
        if run_immediately:
            kwargs["next_run_time"] = datetime.now(timezone.utc)

        job = self.scheduler.add_job(
            func=func,
            trigger=IntervalTrigger(seconds=seconds),
            id=job_id,
            name=description or job_id,
            max_instances=1,
            coalesce=True,
            **kwargs,
        )

        self.jobs[job_id] = {
            "job": job,
            "type": "interval",
            "seconds": seconds,
            "description": description,
            "added_at": datetime.now(timezone.utc),
        }

        logger.info("Added interval job", job_id=job_id, interval_seconds=seconds, description=description)

    def add_delayed_job(self, job_id: str, func: Callable, delay_seconds: float, description: Optional[str] = None):
        """Run `func` once after `delay_seconds`, replacing any pending job with the same id."""
        run_date = datetime.now(timezone.utc) + timedelta(seconds=max(0.0, float(delay_seconds)))
        self.scheduler.add_job(
            func=func,
            trigger=DateTrigger(run_date=run_date),
            id=job_id,
            name=description or job_id,
            replace_existing=True,
            misfire_grace_time=None,
        )
        logger.info("Scheduled one-shot job", job_id=job_id, delay_seconds=delay_seconds)

    def remove_job(self, job_id: str) -> bool:
        """Remove a scheduled job."""
        if job_id not in self.jobs:
            logger.warning("Job not found", job_id=job_id)
            return False

        try:
            self.scheduler.remove_job(job_id)
            del self.jobs[job_id]
            logger.info("Removed job", job_id=job_id)
            return True
        except Exception as e:
            logger.error("Failed to remove job", job_id=job_id, error=str(e))
            return False

    def list_jobs(self) -> List[Dict[str, Any]]:
        """List the interval jobs with their next run time."""
        statuses = []
        for job_id, info in self.jobs.items():
            scheduler_job = self.scheduler.get_job(job_id)
            if scheduler_job is None:
                continue
            statuses.append({
                "job_id": job_id,
                "name": scheduler_job.name,
                "seconds": info["seconds"],
                "next_run": scheduler_job.next_run_time.isoformat() if scheduler_job.next_run_time else None,
            })
        return statuses
