"""Watch cycles: poll, diff against the persisted state, persist, alert."""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional, Sequence

import httpx
import structlog

from avalon_alerts.endpoints import DEFAULT_PROBE_PATH, diff_down_nodes, probe_nodes
from avalon_alerts.leader_api import LeaderApiClient, LeaderFetchError, MalformedLeadersPayload
from avalon_alerts.leaders import diff_leaders
from avalon_alerts.models import PersistedState, TriggerSchedule
from avalon_alerts.notifications.telegram import TelegramNotifier
from avalon_alerts.scheduler import JobScheduler
from avalon_alerts.store import StateStore
from avalon_alerts.triggers import DEFAULT_TOLERANCE_SECONDS


logger = structlog.get_logger(__name__)

LEADER_RETRY_JOB_ID = "leader_watch_retry"


class LeaderWatcher:
    """
    Owns the leader cycle. Only one cycle runs at a time; a cycle that fails to
    fetch leader data leaves the state untouched and is retried against the
    next API node, a bounded number of times.
    """

    def __init__(
        self,
        state: PersistedState,
        store: StateStore,
        api: LeaderApiClient,
        notifier: TelegramNotifier,
        schedule: TriggerSchedule,
        *,
        retries: int = 3,
        retry_delay_seconds: float = 5.0,
        scheduler: Optional[JobScheduler] = None,
    ):
        self.state = state
        self.store = store
        self.api = api
        self.notifier = notifier
        self.schedule = schedule
        self.retries = max(0, int(retries))
        self.retry_delay_seconds = max(0.0, float(retry_delay_seconds))
        self.scheduler = scheduler
        self.retry_count = 0
        self._lock = asyncio.Lock()

    async def run_cycle(self) -> list[str]:
        """Scheduled entry point. Failed fetches are retried through the scheduler."""
        if self._lock.locked():
            logger.info("Leader cycle still running; skipping this tick")
            return []
        async with self._lock:
            try:
                fetched, alerts = await self._cycle()
            except Exception:
                logger.exception("Leader cycle crashed")
                return []
        if not fetched:
            self._schedule_retry()
        return alerts

    async def run_once(self) -> list[str]:
        """Run one cycle, retrying inline. Used by `--once`."""
        async with self._lock:
            for attempt in range(self.retries + 1):
                fetched, alerts = await self._cycle()
                if fetched:
                    return alerts
                self.api.rotate()
                if attempt < self.retries:
                    logger.info("Retrying the watcher in a bit", retry=attempt + 1, delay_seconds=self.retry_delay_seconds)
                    await asyncio.sleep(self.retry_delay_seconds)
            logger.warning("Reached the retries limit, giving up", retries=self.retries)
            return []

    async def _cycle(self) -> tuple[bool, list[str]]:
        logger.info("Watcher starting", api=self.api.current_api)
        try:
            new = await self.api.fetch_leaders()
        except MalformedLeadersPayload as exc:
            # The node answered; a retry would most likely get the same payload.
            logger.warning("Failed updating leaders data", api=self.api.current_api, error=str(exc))
            self.retry_count = 0
            return True, []
        except LeaderFetchError as exc:
            logger.error("API node failed to retrieve leader data", api=self.api.current_api, error=str(exc))
            return False, []

        alerts = diff_leaders(self.state.leaders, new, self.state.missers, self.schedule)
        self.state.leaders = list(new)
        self.retry_count = 0
        self.store.save(self.state)

        delivered = await self.notifier.notify_all(alerts)
        logger.info(
            "Watcher done",
            leaders=len(new),
            missers=len(self.state.missers),
            alerts=len(alerts),
            delivered=delivered,
        )
        return True, alerts

    def _schedule_retry(self) -> None:
        next_api = self.api.rotate()
        if self.scheduler is None:
            return
        if self.retry_count < self.retries:
            self.retry_count += 1
            logger.info(
                "Retrying the watcher in a bit",
                retry=self.retry_count,
                api=next_api,
                delay_seconds=self.retry_delay_seconds,
            )
            self.scheduler.add_delayed_job(
                LEADER_RETRY_JOB_ID,
                self.run_cycle,
                self.retry_delay_seconds,
                description="Retry leader watch",
            )
        else:
            logger.warning("Reached the retries limit, giving up", retries=self.retries)
            self.retry_count = 0


class EndpointWatcher:
    """Owns the endpoint availability cycle."""

    def __init__(
        self,
        state: PersistedState,
        store: StateStore,
        client: httpx.AsyncClient,
        notifier: TelegramNotifier,
        nodes: Sequence[str],
        schedule: TriggerSchedule,
        *,
        probe_path: str = DEFAULT_PROBE_PATH,
        probe_timeout_seconds: float = 10.0,
        probe_concurrency: int = 10,
        tolerance_seconds: float = DEFAULT_TOLERANCE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.state = state
        self.store = store
        self.client = client
        self.notifier = notifier
        self.nodes = list(nodes)
        self.schedule = schedule
        self.probe_path = probe_path
        self.probe_timeout_seconds = probe_timeout_seconds
        self.probe_concurrency = probe_concurrency
        self.tolerance_seconds = tolerance_seconds
        self.clock = clock
        self._lock = asyncio.Lock()

    async def run_cycle(self) -> list[str]:
        if self._lock.locked():
            logger.info("Endpoint cycle still running; skipping this tick")
            return []
        async with self._lock:
            try:
                return await self._cycle()
            except Exception:
                logger.exception("Endpoint cycle crashed")
                return []

    async def _cycle(self) -> list[str]:
        failing = await probe_nodes(
            self.client,
            self.nodes,
            path=self.probe_path,
            timeout_seconds=self.probe_timeout_seconds,
            concurrency=self.probe_concurrency,
        )
        result = diff_down_nodes(
            self.state.down,
            failing,
            now=self.clock(),
            schedule=self.schedule,
            tolerance=self.tolerance_seconds,
        )
        self.state.down = result.down
        self.store.save(self.state)

        delivered = await self.notifier.notify_all(result.alerts)
        logger.info(
            "API watcher done",
            nodes=len(self.nodes),
            down=len(result.down),
            went_down=result.went_down,
            recovered=result.recovered,
            alerts=len(result.alerts),
            delivered=delivered,
        )
        return result.alerts
