from __future__ import annotations

from typing import Sequence

import structlog

from avalon_alerts.models import Leader, MisserRecord, TriggerSchedule
from avalon_alerts.triggers import should_fire


logger = structlog.get_logger(__name__)


def _unregistered_message(name: str) -> str:
    return f"Leader `{name}` unregistered"


def _registered_message(name: str) -> str:
    return f"Leader `{name}` registered"


def _missed_message(name: str, misses: int) -> str:
    return f"Leader `{name}` missed *{misses}* block(s)"


def _continues_message(name: str, total: int) -> str:
    return f"Leader `{name}` continues missing, now with *{total}* block(s) missed"


def _resolved_message(name: str, *, recovered: bool, total: int, missed: int) -> str:
    action = "started producing again" if recovered else "is out of schedule"
    return (
        f"Leader `{name}` {action}, after missing *{total}* block(s), "
        f"total blocks missed now is *{missed}*"
    )


def diff_leaders(
    old: Sequence[Leader],
    new: Sequence[Leader],
    missers: dict[str, MisserRecord],
    schedule: TriggerSchedule,
) -> list[str]:
    """
    Compare two consecutive leader snapshots and return the alerts to send.

    `missers` is updated in place: streaks are opened, their `last` alert mark
    advanced, and closed once the missed-count stops growing. Records of
    leaders that unregistered are dropped.
    """
    alerts: list[str] = []
    old_by_name = {leader.name: leader for leader in old}
    new_names = {leader.name for leader in new}

    for leader in old:
        if leader.name in new_names:
            continue
        alerts.append(_unregistered_message(leader.name))
        if missers.pop(leader.name, None) is not None:
            logger.info("Dropped misser record of unregistered leader", leader=leader.name)

    for leader in new:
        previous = old_by_name.get(leader.name)
        if previous is None:
            alerts.append(_registered_message(leader.name))
            if missers.pop(leader.name, None) is not None:
                logger.info("Dropped stale misser record of newly registered leader", leader=leader.name)
            continue

        misser = missers.get(leader.name)
        if misser is not None and leader.missed < misser.start:
            # Counter went backwards (e.g. chain reset); the streak is meaningless now.
            logger.warning(
                "Missed counter below streak start; dropping misser record",
                leader=leader.name,
                missed=leader.missed,
                start=misser.start,
            )
            del missers[leader.name]
            continue

        if misser is not None:
            total = leader.missed - misser.start + 1

            if leader.missed == previous.missed:
                alerts.append(
                    _resolved_message(
                        leader.name,
                        recovered=leader.produced > previous.produced,
                        total=total,
                        missed=leader.missed,
                    )
                )
                del missers[leader.name]
                continue

            misses = leader.missed - misser.last
            if should_fire(schedule, total=total, delta=misses):
                alerts.append(_continues_message(leader.name, total))
                misser.last = leader.missed
            continue

        misses = leader.missed - previous.missed
        if misses <= 0:
            continue
        missers[leader.name] = MisserRecord(start=previous.missed + 1, last=leader.missed)
        alerts.append(_missed_message(leader.name, misses))

    return alerts
