from __future__ import annotations

from avalon_alerts.models import TriggerSchedule


DEFAULT_TOLERANCE_SECONDS = 30.0


def should_fire(schedule: TriggerSchedule, *, total: int, delta: int) -> bool:
    """
    Count-based escalation.

    total: magnitude accumulated since the condition started.
    delta: magnitude accumulated since the last alert.

    Below the repeater a checkpoint fires when it lies in [total - delta, delta].
    From the repeater on, one alert per full repeater interval of new magnitude.
    """
    total = int(total)
    delta = int(delta)
    if total < schedule.repeater:
        low = total - delta
        return any(low <= t <= delta for t in schedule.checkpoints)
    return delta >= schedule.repeater


def should_fire_downtime(
    schedule: TriggerSchedule,
    *,
    secs: float,
    tolerance: float = DEFAULT_TOLERANCE_SECONDS,
) -> bool:
    """
    Time-based escalation for ongoing downtime: alert near any checkpoint, and
    then as a heartbeat every `repeater` seconds.
    """
    secs = max(0.0, float(secs))
    tolerance = float(tolerance)
    if any(abs(secs - t) < tolerance for t in schedule.checkpoints):
        return True
    return (secs % schedule.repeater) < tolerance
