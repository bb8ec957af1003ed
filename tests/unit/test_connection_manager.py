from __future__ import annotations

import asyncio
import json
import random
from typing import List

import pytest

from sentinel.core.connection import ConnectionManager, ReconnectPolicy
from sentinel.core.state import SessionState
from sentinel.errors import ChannelUnavailable
from sentinel.models import ConnectionState
from sentinel.telemetry.audit import AuditLogger

from channel_fakes import FakeDialer, FakeScheduler, settle


def _manager(tmp_path, dialer: FakeDialer, scheduler: FakeScheduler, policy: ReconnectPolicy | None = None):
    state = SessionState(correlation_id="c1")
    audit = AuditLogger(str(tmp_path / "audit.jsonl"))
    mgr = ConnectionManager(state, dial=dialer, policy=policy or ReconnectPolicy(), audit=audit, scheduler=scheduler)
    return state, mgr


def _events(tmp_path) -> List[str]:
    lines = (tmp_path / "audit.jsonl").read_text(encoding="utf-8").splitlines()
    return [json.loads(ln)["event_type"] for ln in lines]


def test_fixed_policy_always_waits_base_delay() -> None:
    p = ReconnectPolicy(base_delay_s=3.0, mode="fixed")
    assert [p.delay_for(n) for n in range(1, 8)] == [3.0] * 7


def test_exponential_policy_starts_at_base_and_is_capped() -> None:
    p = ReconnectPolicy(base_delay_s=3.0, mode="exponential", max_delay_s=20.0, multiplier=2.0, jitter=0.0)
    assert [p.delay_for(n) for n in range(1, 6)] == [3.0, 6.0, 12.0, 20.0, 20.0]


def test_exponential_jitter_stays_within_bounds() -> None:
    p = ReconnectPolicy(base_delay_s=3.0, mode="exponential", max_delay_s=30.0, jitter=0.5, rng=random.Random(7))
    assert p.delay_for(1) == 3.0
    for n in range(2, 30):
        assert 3.0 <= p.delay_for(n) <= 30.0


def test_open_then_close_schedules_exactly_one_reconnect(tmp_path) -> None:
    async def scenario() -> None:
        dialer = FakeDialer()
        scheduler = FakeScheduler()
        state, mgr = _manager(tmp_path, dialer, scheduler)
        opened: List[int] = []
        closed: List[int] = []
        mgr.on_open(lambda: opened.append(1))
        mgr.on_close(lambda: closed.append(1))

        mgr.connect()
        await settle()
        assert state.connection_state == ConnectionState.open
        assert mgr.is_open
        assert opened == [1]

        dialer.last.drop()
        await settle()
        assert state.connection_state == ConnectionState.closed
        assert closed == [1]
        assert len(scheduler.pending) == 1
        assert scheduler.pending[0].delay == 3.0
        assert mgr.reconnect_pending

        # A second connect request while the reconnect is pending must not create a second timer.
        mgr._schedule_reconnect()
        assert len(scheduler.pending) == 1

        scheduler.fire_next()
        await settle()
        assert state.connection_state == ConnectionState.open
        assert dialer.dials == 2
        assert not mgr.reconnect_pending
        await mgr.stop()

    asyncio.run(scenario())
    assert _events(tmp_path).count("channel.reconnect_scheduled") == 1


def test_reconnects_forever_after_repeated_dial_failures(tmp_path) -> None:
    async def scenario() -> None:
        dialer = FakeDialer(failures=5)
        scheduler = FakeScheduler()
        state, mgr = _manager(tmp_path, dialer, scheduler)

        mgr.connect()
        await settle()
        for _ in range(5):
            assert state.connection_state == ConnectionState.closed
            assert len(scheduler.pending) == 1
            assert scheduler.pending[0].delay == 3.0
            scheduler.fire_next()
            await settle()

        assert state.connection_state == ConnectionState.open
        assert dialer.dials == 6
        assert scheduler.pending == []
        await mgr.stop()

    asyncio.run(scenario())
    assert _events(tmp_path).count("channel.dial_failed") == 5


def test_attempt_counter_resets_after_successful_open(tmp_path) -> None:
    async def scenario() -> None:
        dialer = FakeDialer(failures=2)
        scheduler = FakeScheduler()
        policy = ReconnectPolicy(base_delay_s=3.0, mode="exponential", max_delay_s=30.0, jitter=0.0)
        _, mgr = _manager(tmp_path, dialer, scheduler, policy)

        mgr.connect()
        await settle()
        assert scheduler.pending[0].delay == 3.0
        scheduler.fire_next()
        await settle()
        assert scheduler.pending[0].delay == 6.0
        scheduler.fire_next()
        await settle()
        assert mgr.is_open

        dialer.last.drop()
        await settle()
        assert scheduler.pending[0].delay == 3.0
        await mgr.stop()

    asyncio.run(scenario())


def test_messages_are_delivered_in_arrival_order(tmp_path) -> None:
    async def scenario() -> None:
        dialer = FakeDialer()
        _, mgr = _manager(tmp_path, dialer, FakeScheduler())
        got: List[str] = []
        mgr.on_message(got.append)

        mgr.connect()
        await settle()
        dialer.last.push("one", "two", "three")
        await settle()
        assert got == ["one", "two", "three"]
        await mgr.stop()

    asyncio.run(scenario())


def test_listener_error_does_not_stop_delivery(tmp_path) -> None:
    async def scenario() -> None:
        dialer = FakeDialer()
        _, mgr = _manager(tmp_path, dialer, FakeScheduler())
        got: List[str] = []

        def boom(_: str) -> None:
            raise RuntimeError("listener failed")

        mgr.on_message(boom)
        mgr.on_message(got.append)
        mgr.connect()
        await settle()
        dialer.last.push("a", "b")
        await settle()
        assert got == ["a", "b"]
        assert mgr.is_open
        await mgr.stop()

    asyncio.run(scenario())
    assert "protocol.anomaly" in _events(tmp_path)


def test_send_while_not_open_raises_and_is_not_queued(tmp_path) -> None:
    async def scenario() -> None:
        dialer = FakeDialer()
        _, mgr = _manager(tmp_path, dialer, FakeScheduler())
        with pytest.raises(ChannelUnavailable):
            await mgr.send("hello")

        mgr.connect()
        await settle()
        conn = dialer.last
        conn.drop()
        await settle()
        with pytest.raises(ChannelUnavailable):
            await mgr.send("hello")
        assert conn.sent == []
        await mgr.stop()

    asyncio.run(scenario())


def test_stop_cancels_pending_reconnect(tmp_path) -> None:
    async def scenario() -> None:
        dialer = FakeDialer()
        scheduler = FakeScheduler()
        state, mgr = _manager(tmp_path, dialer, scheduler)
        mgr.connect()
        await settle()
        dialer.last.drop()
        await settle()
        timer = scheduler.pending[0]

        await mgr.stop()
        assert timer.cancelled
        assert state.connection_state == ConnectionState.closed
        mgr.connect()
        await settle()
        assert dialer.dials == 1

    asyncio.run(scenario())
