from __future__ import annotations

from datetime import datetime, timezone
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Tuple

from sentinel.client.http_client import BackendClient
from sentinel.core.state import SessionState
from sentinel.errors import PullFailure
from sentinel.models import Server, ServerReport
from sentinel.telemetry.audit import AuditLogger


class SnapshotStore:
    """
    Pulled state: the server directory and the latest full report.

    The report snapshot is replaced wholesale on success (one reference swap, readers never see a
    partial set) and left untouched on failure. A malformed row is dropped on its own;
    the other rows still land. Responses are applied in issue order: a response
    from an older refresh that lands after a newer one has been applied is dropped.
    """

    def __init__(
        self,
        state: SessionState,
        client: BackendClient,
        audit: AuditLogger,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._state = state
        self._client = client
        self._audit = audit
        self._clock = clock
        self._issued = 0
        self._applied = 0

    async def load_directory(self) -> Tuple[Server, ...]:
        corr = self._state.correlation_id
        try:
            servers = await self._client.list_servers()
        except PullFailure as e:
            self._state.directory_error = str(e)
            self._audit.write(corr, "directory.failed", {"error": str(e), "status_code": e.status_code})
            raise
        unique: Dict[str, Server] = {}
        for s in servers:
            if s.name in unique:
                self._audit.write(corr, "protocol.anomaly", {"reason": "duplicate_server_name", "name": s.name})
                continue
            unique[s.name] = s
        self._state.directory = tuple(unique.values())
        self._state.directory_loaded = True
        self._state.directory_error = None
        self._audit.write(corr, "directory.loaded", {"servers": len(self._state.directory)})
        return self._state.directory

    async def refresh(self) -> Mapping[str, ServerReport]:
        corr = self._state.correlation_id
        self._issued += 1
        seq = self._issued
        try:
            batch = await self._client.latest_report()
        except PullFailure as e:
            self._audit.write(corr, "snapshot.refresh_failed", {"seq": seq, "error": str(e), "status_code": e.status_code})
            raise
        if seq < self._applied:
            self._audit.write(corr, "snapshot.stale_response_dropped", {"seq": seq, "applied_seq": self._applied})
            return self._state.snapshot
        for bad in batch.rejected:
            self._audit.write(
                corr,
                "protocol.anomaly",
                {"reason": "invalid_report_row", "seq": seq, "index": bad.index, "server_name": bad.server_name, "error": bad.error},
            )
        snapshot = MappingProxyType({r.server_name: r for r in batch.reports})
        self._state.snapshot = snapshot
        self._state.snapshot_refreshed_at = self._clock()
        self._applied = seq
        self._audit.write(corr, "snapshot.refreshed", {"seq": seq, "reports": len(snapshot)})
        return snapshot

    def lookup(self, server_name: str) -> Optional[ServerReport]:
        """
        The report from the last successful pull, or None when that pull had no entry for the server.
        """
        return self._state.snapshot.get(server_name)
