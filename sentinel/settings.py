from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SENTINEL_", extra="ignore")

    # Backend origin. The push channel URL is derived from it (http -> ws, https -> wss).
    base_url: str = "http://localhost:8080"
    servers_path: str = "/api/servers"
    latest_report_path: str = "/api/latest-report"
    ws_path: str = "/ws/run"
    pull_timeout_s: float = 10.0

    # Reconnect loop. The first attempt after a loss always waits reconnect_delay_s.
    # fixed: every attempt waits reconnect_delay_s, forever.
    # exponential: later attempts grow by reconnect_multiplier up to reconnect_max_delay_s, with jitter.
    reconnect_delay_s: float = 3.0
    reconnect_backoff: Literal["fixed", "exponential"] = "fixed"
    reconnect_max_delay_s: float = 30.0
    reconnect_multiplier: float = 2.0
    reconnect_jitter: float = 0.1

    # Line that terminates a run on the push channel.
    completion_marker: str = "🏁 Process complete."
    # Optional watchdog; None keeps a run InFlight until its terminator arrives.
    run_timeout_s: float | None = None

    audit_log_path: str = "var/audit/sentinel_audit.jsonl"
    # Client-local storage (theme preference).
    client_state_path: str = "var/config/client_state.json"
    # Display cap for the event log panel; None keeps every entry.
    event_log_max_entries: int | None = None

    # Local dashboard surface
    ui_host: str = "127.0.0.1"
    ui_port: int = 8090

    def ws_url(self) -> str:
        base = self.base_url.strip().rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://") :]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://") :]
        elif "://" not in base:
            base = "ws://" + base
        return base + "/" + self.ws_path.lstrip("/")
