from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from sentinel.client.http_client import BackendClient
from sentinel.core.snapshot import SnapshotStore
from sentinel.core.state import SessionState
from sentinel.errors import PullFailure
from sentinel.telemetry.audit import AuditLogger

from channel_fakes import FakeBackend, report_json


def _store(tmp_path, backend: FakeBackend):
    state = SessionState(correlation_id="c1")
    client = BackendClient(base_url="http://backend.test", transport=backend.transport())
    return state, SnapshotStore(state, client, AuditLogger(str(tmp_path / "audit.jsonl")))


def test_refresh_replaces_snapshot_wholesale(tmp_path) -> None:
    backend = FakeBackend(reports=[report_json("srv1"), report_json("srv2")])
    state, store = _store(tmp_path, backend)

    asyncio.run(store.refresh())
    assert set(state.snapshot) == {"srv1", "srv2"}
    assert state.snapshot_refreshed_at is not None

    backend.reports = [report_json("srv2", cpuUsage=50.0)]
    asyncio.run(store.refresh())
    # Not merged: srv1 is gone.
    assert store.lookup("srv1") is None
    assert store.lookup("srv2").cpu_usage_percent == 50.0


def test_failed_refresh_leaves_previous_snapshot(tmp_path) -> None:
    backend = FakeBackend(reports=[report_json("srv1")])
    state, store = _store(tmp_path, backend)
    asyncio.run(store.refresh())
    before = state.snapshot
    before_report = store.lookup("srv1")

    backend.fail_reports = True
    with pytest.raises(PullFailure):
        asyncio.run(store.refresh())
    assert state.snapshot is before
    assert store.lookup("srv1") == before_report


def test_empty_report_is_a_valid_snapshot(tmp_path) -> None:
    backend = FakeBackend(reports=[report_json("srv1")])
    state, store = _store(tmp_path, backend)
    asyncio.run(store.refresh())
    backend.reports = None
    asyncio.run(store.refresh())
    assert dict(state.snapshot) == {}


def test_snapshot_is_read_only(tmp_path) -> None:
    state, store = _store(tmp_path, FakeBackend(reports=[report_json("srv1")]))
    asyncio.run(store.refresh())
    with pytest.raises(TypeError):
        state.snapshot["srv9"] = state.snapshot["srv1"]  # type: ignore[index]


def test_load_directory_and_duplicates(tmp_path) -> None:
    backend = FakeBackend(
        servers=[
            {"name": "srv1", "host": "a"},
            {"name": "srv2", "host": "b"},
            {"name": "srv1", "host": "c"},
        ]
    )
    state, store = _store(tmp_path, backend)
    asyncio.run(store.load_directory())
    assert [s.name for s in state.directory] == ["srv1", "srv2"]
    assert state.directory[0].host == "a"
    assert state.directory_loaded


def test_load_directory_failure_is_recorded(tmp_path) -> None:
    backend = FakeBackend()
    backend.fail_servers = True
    state, store = _store(tmp_path, backend)
    with pytest.raises(PullFailure):
        asyncio.run(store.load_directory())
    assert not state.directory_loaded
    assert state.directory == ()
    assert "http_500" in (state.directory_error or "")


def test_stale_response_is_dropped(tmp_path) -> None:
    """
    Two overlapping refreshes: the older one answers last and must not overwrite the newer result.
    """

    async def scenario() -> None:
        first_release = asyncio.Event()
        calls = {"n": 0}

        class SlowFirstTransport(httpx.AsyncBaseTransport):
            async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
                calls["n"] += 1
                if calls["n"] == 1:
                    await first_release.wait()
                    return httpx.Response(200, json=[report_json("old")])
                return httpx.Response(200, json=[report_json("new")])

        state = SessionState(correlation_id="c1")
        client = BackendClient(base_url="http://backend.test", transport=SlowFirstTransport())
        store = SnapshotStore(state, client, AuditLogger(str(tmp_path / "audit.jsonl")))

        older = asyncio.create_task(store.refresh())
        while calls["n"] < 1:
            await asyncio.sleep(0)
        await store.refresh()
        assert set(state.snapshot) == {"new"}

        first_release.set()
        await older
        assert set(state.snapshot) == {"new"}

    asyncio.run(scenario())


def test_bad_report_row_does_not_block_the_others(tmp_path) -> None:
    backend = FakeBackend(reports=[report_json("srv1")])
    state, store = _store(tmp_path, backend)
    asyncio.run(store.refresh())

    backend.reports = [report_json("srv1", memTotalMB=1, memUsedMB=5), report_json("srv2", cpuUsage=40.0)]
    asyncio.run(store.refresh())
    assert set(state.snapshot) == {"srv2"}
    assert store.lookup("srv2").cpu_usage_percent == 40.0

    records = [json.loads(ln) for ln in (tmp_path / "audit.jsonl").read_text(encoding="utf-8").splitlines()]
    anomalies = [r["payload"] for r in records if r["event_type"] == "protocol.anomaly"]
    assert [(a["reason"], a["server_name"], a["index"]) for a in anomalies] == [("invalid_report_row", "srv1", 0)]
