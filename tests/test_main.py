from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from avalon_alerts.config import AlertsConfig
from avalon_alerts.main import register_jobs
from avalon_alerts.scheduler import JobScheduler


class _Watcher:
    async def run_cycle(self) -> list[str]:
        return []


def _config(nodes: list[str]) -> AlertsConfig:
    return AlertsConfig(
        apis=["https://api.example.org"],
        intervals={"watcher": 3600, "apiwatcher": 3600},
        apiwatcher={"nodes": nodes},
    )


@pytest.mark.asyncio
async def test_both_watches_run_immediately_at_startup() -> None:
    scheduler = JobScheduler()
    register_jobs(scheduler, _config(["https://n1.example.org"]), _Watcher(), _Watcher())  # type: ignore[arg-type]
    scheduler.start()
    try:
        soon = datetime.now(timezone.utc) + timedelta(seconds=60)
        for job_id in ("leader_watch", "endpoint_watch"):
            job = scheduler.scheduler.get_job(job_id)
            assert job is not None
            assert job.next_run_time <= soon
    finally:
        scheduler.stop()


@pytest.mark.asyncio
async def test_endpoint_watch_is_skipped_without_nodes() -> None:
    scheduler = JobScheduler()
    register_jobs(scheduler, _config([]), _Watcher(), _Watcher())  # type: ignore[arg-type]
    assert [job.id for job in scheduler.scheduler.get_jobs()] == ["leader_watch"]
