from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog

from avalon_alerts.models import DownRecord, MisserRecord, PersistedState, coerce_leaders, leader_to_dict


logger = structlog.get_logger(__name__)

STATE_VERSION = 1


def _coerce_int(value: Any) -> int | None:
    try:
        return int(value)
    except Exception:
        return None


def coerce_missers(raw: Any) -> dict[str, MisserRecord]:
    """
    Decode misser records from state.json. Records written by older bots may
    carry extra fields (e.g. `produced`) or null entries; both are tolerated.
    """
    if not isinstance(raw, dict):
        return {}
    out: dict[str, MisserRecord] = {}
    for name, item in raw.items():
        if not isinstance(name, str) or not name or not isinstance(item, dict):
            continue
        start = _coerce_int(item.get("start"))
        last = _coerce_int(item.get("last"))
        if start is None or last is None:
            continue
        out[name] = MisserRecord(start=start, last=last)
    return out


def coerce_down(raw: Any) -> list[DownRecord]:
    if not isinstance(raw, list):
        return []
    out: list[DownRecord] = []
    seen: set[str] = set()
    for item in raw:
        if not isinstance(item, dict):
            continue
        node = str(item.get("node") or "").strip()
        if not node or node in seen:
            continue
        try:
            ts = float(item.get("timestamp"))
        except Exception:
            continue
        seen.add(node)
        out.append(DownRecord(node=node, timestamp=ts))
    return out


def state_to_payload(state: PersistedState) -> dict[str, Any]:
    return {
        "version": STATE_VERSION,
        "updated_at": datetime.now(timezone.utc).isoformat(),
        "leaders": [leader_to_dict(leader) for leader in state.leaders],
        "missers": {name: {"start": m.start, "last": m.last} for name, m in state.missers.items()},
        "down": [{"node": d.node, "timestamp": d.timestamp} for d in state.down],
    }


def state_from_payload(raw: Any) -> PersistedState:
    if not isinstance(raw, dict):
        return PersistedState()
    leaders = coerce_leaders(raw.get("leaders"))
    names = {leader.name for leader in leaders}
    missers = coerce_missers(raw.get("missers"))
    orphaned = sorted(name for name in missers if name not in names)
    if orphaned:
        logger.warning("Dropping misser records of unknown leaders", leaders=orphaned)
    return PersistedState(
        leaders=leaders,
        missers={name: record for name, record in missers.items() if name in names},
        down=coerce_down(raw.get("down")),
    )


class StateStore:
    """Flat JSON snapshot of the last known state."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> PersistedState:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.info("No state file yet; starting empty", path=str(self.path))
            return PersistedState()
        except Exception as exc:
            logger.warning("Failed to read state file", path=str(self.path), error=str(exc))
            return PersistedState()

        if not isinstance(raw, dict):
            logger.warning("State file is not a JSON object; starting empty", path=str(self.path))
            return PersistedState()

        state = state_from_payload(raw)
        logger.info(
            "Loaded state",
            path=str(self.path),
            leaders=len(state.leaders),
            missers=len(state.missers),
            down=len(state.down),
        )
        return state

    def save(self, state: PersistedState) -> bool:
        try:
            self._write_atomic(state_to_payload(state))
        except Exception as exc:
            logger.error("Failed to save state file", path=str(self.path), error=str(exc))
            return False
        return True

    def _write_atomic(self, payload: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(f"{self.path.name}.tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self.path)
