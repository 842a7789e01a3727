from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Leader:
    name: str
    produced: int = 0
    missed: int = 0


@dataclass
class MisserRecord:
    # missed-count at which the current streak began / at which we last alerted
    start: int
    last: int


@dataclass
class DownRecord:
    node: str
    timestamp: float  # unix seconds, first observed down


@dataclass
class PersistedState:
    leaders: list[Leader] = field(default_factory=list)
    missers: dict[str, MisserRecord] = field(default_factory=dict)
    down: list[DownRecord] = field(default_factory=list)


@dataclass(frozen=True)
class TriggerSchedule:
    """
    Escalation schedule for repeat alerts.

    `repeater` is the interval after which an ongoing condition is re-alerted;
    `checkpoints` are the early thresholds alerted once before the repeater
    regime kicks in.
    """

    repeater: int
    checkpoints: tuple[int, ...] = ()

    @classmethod
    def from_list(cls, values: list[int]) -> "TriggerSchedule":
        if not values:
            raise ValueError("Trigger schedule must contain at least the repeater value")
        repeater = int(values[0])
        if repeater <= 0:
            raise ValueError(f"Trigger repeater must be positive, got {repeater}")
        checkpoints = sorted({int(v) for v in values[1:]})
        if any(t <= 0 for t in checkpoints):
            raise ValueError(f"Trigger checkpoints must be positive, got {checkpoints}")
        return cls(repeater=repeater, checkpoints=tuple(checkpoints))

    def to_list(self) -> list[int]:
        return [self.repeater, *self.checkpoints]


def _coerce_count(value: Any) -> int:
    try:
        return max(0, int(value))
    except Exception:
        return 0


def coerce_leader(raw: Any) -> Leader | None:
    if not isinstance(raw, dict):
        return None
    name = str(raw.get("name") or "").strip()
    if not name:
        return None
    return Leader(
        name=name,
        produced=_coerce_count(raw.get("produced")),
        missed=_coerce_count(raw.get("missed")),
    )


def coerce_leaders(raw: Any) -> list[Leader]:
    """
    Best-effort decode of a leaders list (API payload or state.json).
    Entries without a name are dropped; the first occurrence of a name wins.
    """
    if not isinstance(raw, list):
        return []
    out: list[Leader] = []
    seen: set[str] = set()
    for item in raw:
        leader = coerce_leader(item)
        if leader is None or leader.name in seen:
            continue
        seen.add(leader.name)
        out.append(leader)
    return out


def leader_to_dict(leader: Leader) -> dict[str, Any]:
    return {"name": leader.name, "produced": int(leader.produced), "missed": int(leader.missed)}
