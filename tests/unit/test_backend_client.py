from __future__ import annotations

import asyncio

import httpx
import pytest

from sentinel.client.http_client import BackendClient
from sentinel.errors import PullFailure

from channel_fakes import report_json


def _client(handler) -> BackendClient:
    return BackendClient(base_url="http://backend.test", transport=httpx.MockTransport(handler))


def test_list_servers_parses_directory() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/servers"
        return httpx.Response(200, json=[{"Name": "srv1", "Host": "10.0.0.1", "User": "ops", "Port": 2222}])

    servers = asyncio.run(_client(handler).list_servers())
    assert [(s.name, s.host, s.port) for s in servers] == [("srv1", "10.0.0.1", 2222)]


def test_null_report_body_is_empty() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"null", headers={"Content-Type": "application/json"})

    batch = asyncio.run(_client(handler).latest_report())
    assert batch.reports == [] and batch.rejected == []


def test_latest_report_parses_camel_case() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[report_json("srv1"), report_json("srv2", isOnline=False)])

    reports = asyncio.run(_client(handler).latest_report()).reports
    assert [r.server_name for r in reports] == ["srv1", "srv2"]
    assert reports[1].is_online is False


@pytest.mark.parametrize(
    "response, reason",
    [
        (httpx.Response(500, text="boom"), "http_500"),
        (httpx.Response(200, text="<html>oops</html>"), "non_json_response"),
        (httpx.Response(200, json={"servers": []}), "unexpected_json_type"),
    ],
)
def test_failures_surface_as_pull_failure(response: httpx.Response, reason: str) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return response

    with pytest.raises(PullFailure) as ei:
        asyncio.run(_client(handler).latest_report())
    assert reason in str(ei.value)


def test_transport_error_is_pull_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(PullFailure) as ei:
        asyncio.run(_client(handler).list_servers())
    assert ei.value.endpoint == "/api/servers"
    assert ei.value.status_code is None


def test_directory_schema_mismatch_is_pull_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"Host": "10.0.0.1"}])

    with pytest.raises(PullFailure) as ei:
        asyncio.run(_client(handler).list_servers())
    assert "schema_mismatch" in str(ei.value)


def test_bad_report_row_is_rejected_alone() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json=[report_json("srv1", memTotalMB=1, memUsedMB=5), "junk", report_json("srv2")],
        )

    batch = asyncio.run(_client(handler).latest_report())
    assert [r.server_name for r in batch.reports] == ["srv2"]
    assert [(b.index, b.server_name) for b in batch.rejected] == [(0, "srv1"), (1, None)]
    assert "exceeds memTotalMB" in batch.rejected[0].error
