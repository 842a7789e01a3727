from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Iterable, Sequence

import httpx
import structlog

from avalon_alerts.models import DownRecord, TriggerSchedule
from avalon_alerts.triggers import DEFAULT_TOLERANCE_SECONDS, should_fire_downtime


logger = structlog.get_logger(__name__)

DEFAULT_PROBE_PATH = "/count"


@dataclass
class AvailabilityResult:
    down: list[DownRecord]
    alerts: list[str] = field(default_factory=list)
    went_down: list[str] = field(default_factory=list)
    recovered: list[str] = field(default_factory=list)


def format_duration(seconds: float) -> str:
    seconds = max(0, int(seconds))
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, rem = divmod(rem, 60)
    if days:
        return f"{days}d {hours:02}h {minutes:02}m"
    if hours:
        return f"{hours}h {minutes:02}m"
    return f"{minutes}m {rem:02}s"


def diff_down_nodes(
    previous: Sequence[DownRecord],
    failing: Iterable[str],
    *,
    now: float,
    schedule: TriggerSchedule,
    tolerance: float = DEFAULT_TOLERANCE_SECONDS,
) -> AvailabilityResult:
    """
    Fold one round of probe results into the down-set.

    Recovered nodes are reported with their total downtime, new failures are
    reported immediately, and nodes that stay down are re-reported following
    the time-based escalation schedule. First-failure timestamps are carried over
    untouched while a node stays down.
    """
    failing_nodes = list(dict.fromkeys(failing))
    failing_set = set(failing_nodes)
    previous_by_node = {record.node: record for record in previous}
    result = AvailabilityResult(down=[])

    for record in previous:
        if record.node in failing_set:
            continue
        elapsed = float(now) - float(record.timestamp)
        result.alerts.append(f"API node {record.node} is back up, was down for {format_duration(elapsed)}")
        result.recovered.append(record.node)

    still_down: list[DownRecord] = []
    for node in failing_nodes:
        existing = previous_by_node.get(node)
        if existing is not None:
            result.down.append(existing)
            still_down.append(existing)
            continue
        result.down.append(DownRecord(node=node, timestamp=float(now)))
        result.alerts.append(f"API node {node} went down")
        result.went_down.append(node)

    for record in still_down:
        secs = float(now) - float(record.timestamp)
        if should_fire_downtime(schedule, secs=secs, tolerance=tolerance):
            result.alerts.append(f"API node {record.node} is still down, for {format_duration(secs)}")

    return result


async def probe_node(
    client: httpx.AsyncClient,
    node: str,
    *,
    path: str = DEFAULT_PROBE_PATH,
    timeout_seconds: float = 10.0,
) -> bool:
    url = f"{node.rstrip('/')}{path}"
    started = time.perf_counter()
    try:
        resp = await client.get(url, timeout=timeout_seconds)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.warning(
            "API node failed to respond",
            node=node,
            error=f"{type(exc).__name__}: {exc}",
            elapsed_ms=round((time.perf_counter() - started) * 1000.0, 3),
        )
        return False

    if not resp.is_success:
        logger.warning("API node returned invalid status", node=node, status_code=resp.status_code)
        return False
    return True


async def probe_nodes(
    client: httpx.AsyncClient,
    nodes: Sequence[str],
    *,
    path: str = DEFAULT_PROBE_PATH,
    timeout_seconds: float = 10.0,
    concurrency: int = 10,
) -> list[str]:
    """Probe every node concurrently; return the ones that are unreachable, in config order."""
    semaphore = asyncio.Semaphore(max(1, int(concurrency)))

    async def _one(node: str) -> bool:
        async with semaphore:
            return await probe_node(client, node, path=path, timeout_seconds=timeout_seconds)

    results = await asyncio.gather(*(_one(node) for node in nodes))
    return [node for node, ok in zip(nodes, results) if not ok]
