from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from sentinel.errors import PullFailure
from sentinel.models import Server, ServerReport
from sentinel.settings import Settings

_SERVERS = TypeAdapter(List[Server])


@dataclass(frozen=True)
class RejectedRow:
    index: int
    server_name: Optional[str]
    error: str


@dataclass(frozen=True)
class ReportBatch:
    reports: List[ServerReport] = field(default_factory=list)
    rejected: List[RejectedRow] = field(default_factory=list)


@dataclass(frozen=True)
class BackendClient:
    """
    Pull side of the backend API.

    Every failure mode (transport error, non-2xx, non-JSON body, directory schema mismatch) surfaces as
    PullFailure so callers deal with exactly one condition. Mockable via an httpx transport.
    """

    base_url: str
    servers_path: str = "/api/servers"
    latest_report_path: str = "/api/latest-report"
    timeout_s: float = 10.0
    transport: httpx.AsyncBaseTransport | None = None

    @classmethod
    def from_settings(cls, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> "BackendClient":
        return cls(
            base_url=settings.base_url,
            servers_path=settings.servers_path,
            latest_report_path=settings.latest_report_path,
            timeout_s=float(settings.pull_timeout_s),
            transport=transport,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url.rstrip("/"), timeout=self.timeout_s, transport=self.transport)

    async def _get_list(self, path: str) -> List[Any]:
        try:
            async with self._client() as c:
                r = await c.get(path, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            raise PullFailure(path, f"{type(e).__name__}: {e}") from e
        if not (200 <= r.status_code < 300):
            raise PullFailure(path, r.text[:240].strip() or "error", status_code=r.status_code)
        try:
            data = r.json()
        except ValueError as e:
            snippet = r.text[:240].strip()
            raise PullFailure(path, f"non_json_response: {snippet}" if snippet else "non_json_response") from e
        # A backend that never completed a run may encode its empty collection as null.
        if data is None:
            return []
        if not isinstance(data, list):
            raise PullFailure(path, f"unexpected_json_type: {type(data).__name__}")
        return data

    async def list_servers(self) -> List[Server]:
        data = await self._get_list(self.servers_path)
        try:
            return _SERVERS.validate_python(data)
        except ValidationError as e:
            raise PullFailure(self.servers_path, f"schema_mismatch: {e.error_count()} error(s): {e.errors()[0]['msg']}") from e

    async def latest_report(self) -> ReportBatch:
        """
        Rows are validated one at a time; a malformed row is set aside in `rejected` and the rest
        still make up the batch.
        """
        data = await self._get_list(self.latest_report_path)
        reports: List[ServerReport] = []
        rejected: List[RejectedRow] = []
        for i, row in enumerate(data):
            try:
                reports.append(ServerReport.model_validate(row))
            except ValidationError as e:
                name = (row.get("serverName") or row.get("ServerName")) if isinstance(row, dict) else None
                rejected.append(RejectedRow(index=i, server_name=name if isinstance(name, str) else None, error=e.errors()[0]["msg"]))
        return ReportBatch(reports=reports, rejected=rejected)
