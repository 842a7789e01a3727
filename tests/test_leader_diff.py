from __future__ import annotations

from avalon_alerts.leaders import diff_leaders
from avalon_alerts.models import Leader, MisserRecord, TriggerSchedule


SCHEDULE = TriggerSchedule.from_list([5, 1, 3])


def test_identical_snapshots_are_silent() -> None:
    leaders = [Leader("a", produced=10, missed=5), Leader("b", produced=3, missed=0)]
    missers: dict[str, MisserRecord] = {}
    alerts = diff_leaders(leaders, list(leaders), missers, SCHEDULE)
    assert alerts == []
    assert missers == {}


def test_registration_and_unregistration() -> None:
    old = [Leader("a", 1, 0)]
    new = [Leader("b", 1, 0)]
    alerts = diff_leaders(old, new, {}, SCHEDULE)
    assert alerts == ["Leader `a` unregistered", "Leader `b` registered"]


def test_newly_registered_leader_with_misses_does_not_open_a_streak() -> None:
    missers: dict[str, MisserRecord] = {}
    alerts = diff_leaders([], [Leader("a", 0, 7)], missers, SCHEDULE)
    assert alerts == ["Leader `a` registered"]
    assert missers == {}


def test_unregistration_drops_misser_record() -> None:
    missers = {"a": MisserRecord(start=3, last=4)}
    alerts = diff_leaders([Leader("a", 1, 4)], [], missers, SCHEDULE)
    assert alerts == ["Leader `a` unregistered"]
    assert missers == {}


def test_registration_drops_stale_misser_record() -> None:
    missers = {"a": MisserRecord(start=3, last=5)}
    alerts = diff_leaders([], [Leader("a", 10, 10)], missers, SCHEDULE)
    assert alerts == ["Leader `a` registered"]
    assert missers == {}
    assert diff_leaders([Leader("a", 10, 10)], [Leader("a", 10, 10)], missers, SCHEDULE) == []


def test_first_miss_opens_streak() -> None:
    missers: dict[str, MisserRecord] = {}
    alerts = diff_leaders([Leader("a", 10, 0)], [Leader("a", 10, 1)], missers, SCHEDULE)
    assert alerts == ["Leader `a` missed *1* block(s)"]
    assert missers == {"a": MisserRecord(start=1, last=1)}


def test_multiple_misses_are_reported_as_one_alert() -> None:
    missers: dict[str, MisserRecord] = {}
    alerts = diff_leaders([Leader("a", 10, 4)], [Leader("a", 10, 7)], missers, SCHEDULE)
    assert alerts == ["Leader `a` missed *3* block(s)"]
    assert missers == {"a": MisserRecord(start=5, last=7)}


def test_non_positive_delta_without_streak_is_noop() -> None:
    missers: dict[str, MisserRecord] = {}
    alerts = diff_leaders([Leader("a", 10, 5)], [Leader("a", 11, 5)], missers, SCHEDULE)
    assert alerts == []
    alerts = diff_leaders([Leader("a", 10, 5)], [Leader("a", 11, 4)], missers, SCHEDULE)
    assert alerts == []
    assert missers == {}


def test_growing_streak_follows_escalation_schedule() -> None:
    missers: dict[str, MisserRecord] = {}
    snapshots = [
        Leader("a", 10, 0),
        Leader("a", 10, 1),  # opens the streak
        Leader("a", 10, 3),  # total=3 misses=2: checkpoint 1 in [1, 2]
        Leader("a", 10, 4),  # total=4 misses=1: silent
        Leader("a", 10, 5),  # total=5 misses=2: repeater regime, silent
        Leader("a", 10, 8),  # total=8 misses=5: fires
    ]
    emitted: list[list[str]] = []
    for old, new in zip(snapshots, snapshots[1:]):
        emitted.append(diff_leaders([old], [new], missers, SCHEDULE))
        record = missers["a"]
        assert record.start <= new.missed
        assert new.missed - record.start + 1 >= 1

    assert emitted == [
        ["Leader `a` missed *1* block(s)"],
        ["Leader `a` continues missing, now with *3* block(s) missed"],
        [],
        [],
        ["Leader `a` continues missing, now with *8* block(s) missed"],
    ]
    assert missers == {"a": MisserRecord(start=1, last=8)}


def test_streak_resolution_when_producing_again() -> None:
    missers = {"a": MisserRecord(start=1, last=3)}
    alerts = diff_leaders([Leader("a", 10, 4)], [Leader("a", 12, 4)], missers, SCHEDULE)
    assert alerts == [
        "Leader `a` started producing again, after missing *4* block(s), total blocks missed now is *4*"
    ]
    assert missers == {}


def test_streak_resolution_when_out_of_schedule() -> None:
    missers = {"a": MisserRecord(start=2, last=3)}
    alerts = diff_leaders([Leader("a", 10, 3)], [Leader("a", 10, 3)], missers, SCHEDULE)
    assert alerts == [
        "Leader `a` is out of schedule, after missing *2* block(s), total blocks missed now is *3*"
    ]
    assert missers == {}


def test_resolved_streak_then_new_miss_opens_fresh_record() -> None:
    missers = {"a": MisserRecord(start=1, last=2)}
    diff_leaders([Leader("a", 10, 2)], [Leader("a", 11, 2)], missers, SCHEDULE)
    assert missers == {}
    alerts = diff_leaders([Leader("a", 11, 2)], [Leader("a", 11, 3)], missers, SCHEDULE)
    assert alerts == ["Leader `a` missed *1* block(s)"]
    assert missers == {"a": MisserRecord(start=3, last=3)}


def test_counter_below_streak_start_drops_record_silently() -> None:
    missers = {"a": MisserRecord(start=10, last=12)}
    alerts = diff_leaders([Leader("a", 50, 12)], [Leader("a", 0, 0)], missers, SCHEDULE)
    assert alerts == []
    assert missers == {}


def test_each_leader_yields_at_most_one_alert() -> None:
    old = [Leader("a", 1, 0), Leader("b", 1, 0), Leader("c", 1, 0)]
    new = [Leader("a", 1, 2), Leader("b", 2, 0), Leader("d", 0, 0)]
    missers: dict[str, MisserRecord] = {}
    alerts = diff_leaders(old, new, missers, SCHEDULE)
    assert alerts == [
        "Leader `c` unregistered",
        "Leader `a` missed *2* block(s)",
        "Leader `d` registered",
    ]
    assert set(missers) == {"a"}
