from __future__ import annotations

import asyncio
from typing import Any, Coroutine, Optional, Set

import httpx

from sentinel.client.http_client import BackendClient
from sentinel.client.ws_channel import websocket_dialer
from sentinel.core.connection import ConnectionManager, Dialer, ReconnectPolicy, Scheduler
from sentinel.core.event_log import EventLog
from sentinel.core.run_controller import RunController
from sentinel.core.snapshot import SnapshotStore
from sentinel.core.state import SessionState
from sentinel.core.status import StatusProjector
from sentinel.errors import InvalidRunTargets, PullFailure
from sentinel.models import ALL_SERVERS, RunRecord, RunState
from sentinel.protocol.parser import ProgressEvent
from sentinel.settings import Settings
from sentinel.telemetry.audit import AuditLogger
from sentinel.view.coordinator import Renderer, ViewCoordinator
from sentinel.view.models import View
from sentinel.view.theme import ClientStateStore


class DashboardSession:
    """
    One client session: owns SessionState and wires every component together.

    All stimuli (user actions, push-channel messages, pull responses) enter through this object and
    run to completion on one event loop.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        backend: Optional[BackendClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        dial: Optional[Dialer] = None,
        scheduler: Optional[Scheduler] = None,
        policy: Optional[ReconnectPolicy] = None,
        audit: Optional[AuditLogger] = None,
        renderer: Optional[Renderer] = None,
    ) -> None:
        self.settings = settings
        self.audit = audit or AuditLogger(settings.audit_log_path)
        self.state = SessionState(
            correlation_id=self.audit.new_correlation_id(),
            event_log=EventLog(max_display=settings.event_log_max_entries),
        )
        self.client_state = ClientStateStore(settings.client_state_path)
        self.snapshots = SnapshotStore(
            self.state,
            backend or BackendClient.from_settings(settings, transport=transport),
            self.audit,
        )
        self.connection = ConnectionManager(
            self.state,
            dial=dial or websocket_dialer(settings.ws_url()),
            policy=policy or ReconnectPolicy.from_settings(settings),
            audit=self.audit,
            scheduler=scheduler,
        )
        self.runs = RunController(
            self.state,
            self.connection,
            self.audit,
            run_timeout_s=settings.run_timeout_s,
            scheduler=scheduler,
        )
        self.projector = StatusProjector(self.state, self.audit, completion_marker=settings.completion_marker)
        self.views = ViewCoordinator(
            self.state,
            self.snapshots,
            self.audit,
            renderer=renderer,
            client_state=self.client_state,
        )
        self._tasks: Set["asyncio.Task[Any]"] = set()

        self.connection.on_open(self._on_channel_open)
        self.connection.on_close(self._on_channel_close)
        self.connection.on_message(self._on_channel_message)
        self.projector.on_run_complete(self._on_terminator)
        self.runs.on_state_changed(self._on_run_state_changed)
        self.runs.on_completed(self._on_run_completed)

    @property
    def view(self) -> Optional[View]:
        return self.views.current

    async def start(self) -> None:
        self.audit.write(
            self.state.correlation_id,
            "session.started",
            {"base_url": self.settings.base_url, "ws_url": self.settings.ws_url()},
        )
        self.state.theme_light = self.client_state.load_theme_light()
        # Any existing report first, then the directory; only the directory failure is user-visible.
        try:
            await self.snapshots.refresh()
        except PullFailure:
            pass
        try:
            await self.snapshots.load_directory()
        except PullFailure:
            pass
        self.views.show_dashboard()
        self.connection.connect()

    async def stop(self) -> None:
        self.runs.cancel_timers()
        await self.connection.stop()
        tasks = list(self._tasks)
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def drain(self) -> None:
        """
        Wait for background work spawned by earlier stimuli (completion-triggered pulls).
        """
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ---- user actions ----
    async def run_all(self) -> RunRecord:
        return await self.runs.submit_run(ALL_SERVERS)

    async def run_selected(self) -> RunRecord:
        names = [s.name for s in self.state.directory if s.name in self.state.selection]
        if not names:
            raise InvalidRunTargets("No servers selected.")
        return await self.runs.submit_run(names)

    async def run_single(self) -> RunRecord:
        nav = self.state.navigation
        if not nav.is_detail or not nav.server_name:
            raise InvalidRunTargets("Open a server's detail view to run a single check.")
        return await self.runs.submit_run([nav.server_name])

    def abandon_run(self) -> bool:
        return self.runs.abandon()

    def select(self, server_name: str) -> bool:
        return self.views.show_detail(server_name)

    def back(self) -> View:
        return self.views.back()

    def toggle_selection(self, server_name: str) -> bool:
        return self.views.toggle_selection(server_name)

    def set_theme(self, light: bool) -> View:
        return self.views.set_theme(light)

    def toggle_log_panel(self) -> View:
        return self.views.toggle_log_panel()

    async def refresh(self) -> bool:
        try:
            await self.snapshots.refresh()
        except PullFailure:
            return False
        self.views.rerender()
        return True

    # ---- channel / run listeners ----
    def _on_channel_open(self) -> None:
        self.state.event_log.append("✅ WebSocket connection established.", level="success")
        self.views.rerender()

    def _on_channel_close(self) -> None:
        self.state.event_log.append("⚠️ WebSocket connection closed. Reconnecting...", level="warn")
        self.views.rerender()

    def _on_channel_message(self, raw: str) -> None:
        self.projector.apply(raw)
        self.views.rerender()

    def _on_terminator(self, event: ProgressEvent) -> None:
        self.runs.complete()

    def _on_run_state_changed(self, run_state: RunState) -> None:
        if run_state == RunState.in_flight:
            self.projector.arm()
        else:
            self.projector.disarm()
        self.views.rerender()

    def _on_run_completed(self, record: RunRecord) -> None:
        self._spawn(self.views.on_run_completed())

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
