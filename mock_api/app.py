from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect


app = FastAPI(title="Sentinel Mock Backend", version="0.1.0")

COMPLETION_MARKER = "🏁 Process complete."


def _stable_int(seed: str) -> int:
    h = hashlib.sha256(seed.encode("utf-8")).hexdigest()
    return int(h[:8], 16)


@dataclass(frozen=True)
class MockServer:
    name: str
    host: str
    user: str
    port: int = 22

    def as_json(self) -> Dict[str, Any]:
        return {"name": self.name, "host": self.host, "user": self.user, "port": self.port}


SERVERS: List[MockServer] = [
    MockServer("web-1", "10.0.0.11", "ops"),
    MockServer("db-1", "10.0.0.21", "ops"),
    MockServer("cache-1", "10.0.0.31", "ops", 2222),
]

# Last completed run; None until the first run finishes.
_last_report: Optional[List[Dict[str, Any]]] = None


def _seed() -> str:
    return os.getenv("MOCK_SENTINEL_SEED", "seed")


def _is_online(server: MockServer) -> bool:
    # Deterministic outage: roughly one server in five is unreachable for a given seed.
    return _stable_int(f"{_seed()}:online:{server.name}") % 5 != 0


def build_report(server: MockServer, run_no: int) -> Dict[str, Any]:
    """
    Deterministic metrics for one server on the n-th run, in the backend's camelCase wire format.
    """
    now = datetime.now(timezone.utc).isoformat()
    base = {
        "serverName": server.name,
        "serverHost": server.host,
        "isOnline": False,
        "error": "",
        "cacheCleared": False,
        "cpuUsage": 0.0,
        "memTotalMB": 0,
        "memUsedMB": 0,
        "memFreeMB": 0,
        "swapTotalMB": 0,
        "swapUsedMB": 0,
        "topProcesses": "",
        "timestamp": now,
    }
    if not _is_online(server):
        base["error"] = "Server is unreachable"
        return base
    n = _stable_int(f"{_seed()}:{server.name}:{run_no}")
    total = 4096 * (1 + n % 4)
    used = (n // 7) % total
    swap_total = 2048
    swap_used = (n // 13) % swap_total
    base.update(
        {
            "isOnline": True,
            "cacheCleared": (n % 3) != 0,
            "cpuUsage": round((n % 10000) / 100.0, 2),
            "memTotalMB": total,
            "memUsedMB": used,
            "memFreeMB": total - used,
            "swapTotalMB": swap_total,
            "swapUsedMB": swap_used,
            "topProcesses": "COMMAND         %MEM\npostgres         12.1\njava              8.4\nnginx             1.2",
        }
    )
    return base


def progress_lines(server: MockServer, report: Dict[str, Any]) -> List[str]:
    lines = [f"[{server.name}] Pinging server..."]
    if not report["isOnline"]:
        lines.append(f"[{server.name}] ❌ Server is unreachable.")
        return lines
    lines.append(f"[{server.name}] ✅ Server is online.")
    lines.append(f"[{server.name}] Attempting to clear cache...")
    if report["cacheCleared"]:
        lines.append(f"[{server.name}] ✅ Cache cleared successfully.")
    else:
        lines.append(f"[{server.name}] ⚠️ Failed to clear cache: sudo: a password is required")
    lines.append(f"[{server.name}] Fetching health metrics...")
    lines.append(f"[{server.name}] ✅ Metrics collected.")
    return lines


def select_servers(requested: List[str]) -> List[MockServer]:
    if not requested or requested == ["all"]:
        return list(SERVERS)
    wanted = set(requested)
    return [s for s in SERVERS if s.name in wanted]


def reset() -> None:
    global _last_report, _run_counter
    _last_report = None
    _run_counter = 0


_run_counter = 0


@app.get("/api/servers")
def servers() -> List[Dict[str, Any]]:
    return [s.as_json() for s in SERVERS]


@app.get("/api/latest-report")
def latest_report() -> List[Dict[str, Any]]:
    return list(_last_report or [])


@app.get("/health")
def health() -> Dict[str, Any]:
    return {"ok": True}


@app.websocket("/ws/run")
async def ws_run(ws: WebSocket) -> None:
    global _last_report, _run_counter
    await ws.accept()
    try:
        while True:
            raw = await ws.receive_text()
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError as e:
                await ws.send_text(f"❌ Invalid message format: {e}")
                continue
            if not isinstance(msg, dict) or msg.get("action") != "run":
                continue
            requested = [str(x) for x in (msg.get("servers") or [])]
            targets = select_servers(requested)
            if not targets:
                await ws.send_text("⚠️ No servers selected to run.")
                await ws.send_text(COMPLETION_MARKER)
                continue
            _run_counter += 1
            await ws.send_text("🚀 Starting health check process...")
            reports: List[Dict[str, Any]] = []
            for server in targets:
                report = build_report(server, _run_counter)
                for line in progress_lines(server, report):
                    await ws.send_text(line)
                reports.append(report)
            _last_report = reports
            await ws.send_text(f"✅ Report created: reports/health_report_{_run_counter}.xlsx")
            await ws.send_text(COMPLETION_MARKER)
    except WebSocketDisconnect:
        return
