from __future__ import annotations

from datetime import datetime

from sentinel.core.event_log import EventLog


def _clock():
    t = iter(datetime(2026, 1, 1, 12, 0, s) for s in range(60))
    return lambda: next(t)


def test_entries_keep_arrival_order_and_display_newest_first() -> None:
    log = EventLog(clock=_clock())
    log.append("a")
    log.append("b", level="warn")
    log.append("c")

    assert [e.text for e in log.entries] == ["a", "b", "c"]
    assert [e.seq for e in log.entries] == [1, 2, 3]
    assert [e.text for e in log.newest_first()] == ["c", "b", "a"]
    assert log.entries[1].level == "warn"
    assert len(log) == 3


def test_display_prefixes_local_time() -> None:
    log = EventLog(clock=_clock())
    e = log.append("[srv1] done")
    assert e.display() == "[12:00:00] [srv1] done"


def test_max_display_limits_view_not_storage() -> None:
    log = EventLog(max_display=2, clock=_clock())
    for t in ["a", "b", "c", "d"]:
        log.append(t)
    assert [e.text for e in log.newest_first()] == ["d", "c"]
    assert len(log.entries) == 4


def test_identical_lines_are_not_coalesced() -> None:
    log = EventLog()
    log.append("same")
    log.append("same")
    assert len(log) == 2
