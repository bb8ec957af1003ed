from __future__ import annotations

from typing import Callable, Optional

from sentinel.core.snapshot import SnapshotStore
from sentinel.core.state import SessionState
from sentinel.errors import PullFailure
from sentinel.models import Navigation, Server, ServerReport
from sentinel.telemetry.audit import AuditLogger
from sentinel.view.models import (
    ChartSeries,
    Chrome,
    DashboardView,
    DetailMetrics,
    DetailView,
    ServerCard,
    View,
)
from sentinel.view.theme import ClientStateStore

AWAITING_TASK = "Awaiting task..."
NO_DATA_YET = "No data yet. Run a check to collect metrics."

Renderer = Callable[[View], None]


def _metrics_for(report: ServerReport) -> DetailMetrics:
    cpu = round(float(report.cpu_usage_percent), 2)
    return DetailMetrics(
        online=report.is_online,
        status_label="Online" if report.is_online else "Offline",
        error=report.error,
        cpu_usage_percent=cpu,
        mem_used_mb=report.mem_used_mb,
        mem_total_mb=report.mem_total_mb,
        mem_free_mb=report.mem_free_mb,
        swap_used_mb=report.swap_used_mb,
        swap_total_mb=report.swap_total_mb,
        swap_free_mb=report.effective_swap_free_mb,
        cache_cleared=report.cache_cleared,
        top_processes=report.top_processes,
        timestamp=report.timestamp,
        cpu_chart=ChartSeries(label="CPU Usage %", labels=[report.server_name], values=[cpu]),
        mem_chart=ChartSeries(label="Memory Used (MB)", labels=[report.server_name], values=[float(report.mem_used_mb)]),
    )


class ViewCoordinator:
    """
    Owns navigation and is the only thing that produces what gets rendered.

    Views are rebuilt from SessionState on every render. The detail view keeps only the server
    name and re-reads the directory and snapshot each time, so a background refresh heals it.
    """

    def __init__(
        self,
        state: SessionState,
        snapshots: SnapshotStore,
        audit: AuditLogger,
        *,
        renderer: Optional[Renderer] = None,
        client_state: Optional[ClientStateStore] = None,
    ) -> None:
        self._state = state
        self._snapshots = snapshots
        self._audit = audit
        self._renderer = renderer
        self._client_state = client_state
        self.current: Optional[View] = None

    # ---- navigation ----
    def show_dashboard(self) -> DashboardView:
        self._state.navigation = Navigation.dashboard()
        view = self._build_dashboard()
        self._emit(view)
        return view

    def show_detail(self, server_name: str) -> bool:
        """
        Navigate to a server's detail view. Unknown names are a guarded no-op (returns False).
        """
        server = self._state.server(server_name)
        if server is None:
            return False
        self._state.navigation = Navigation.detail(server_name)
        self._emit(self._build_detail(server))
        return True

    def back(self) -> DashboardView:
        return self.show_dashboard()

    def rerender(self) -> View:
        nav = self._state.navigation
        if nav.is_detail and nav.server_name:
            server = self._state.server(nav.server_name)
            if server is not None:
                view: View = self._build_detail(server)
                self._emit(view)
                return view
        return self.show_dashboard()

    async def on_run_completed(self) -> bool:
        """
        Pull the fresh snapshot after a run. On success a visible detail view is re-rendered from it;
        on failure the previous snapshot stays in place (the store already logged the diagnostic).
        """
        try:
            await self._snapshots.refresh()
        except PullFailure:
            return False
        nav = self._state.navigation
        if nav.is_detail and nav.server_name:
            self.show_detail(nav.server_name)
        return True

    # ---- cosmetic state ----
    def set_theme(self, light: bool) -> View:
        self._state.theme_light = bool(light)
        if self._client_state is not None:
            self._client_state.save_theme_light(self._state.theme_light)
        self._audit.write(self._state.correlation_id, "theme.changed", {"theme": "light" if light else "dark"})
        return self.rerender()

    def toggle_log_panel(self) -> View:
        self._state.log_panel_collapsed = not self._state.log_panel_collapsed
        return self.rerender()

    def toggle_selection(self, server_name: str) -> bool:
        if not self._state.has_server(server_name):
            return False
        if server_name in self._state.selection:
            self._state.selection.discard(server_name)
        else:
            self._state.selection.add(server_name)
        self.rerender()
        return True

    # ---- builders ----
    def _chrome(self) -> Chrome:
        return Chrome(
            theme="light" if self._state.theme_light else "dark",
            log_panel_collapsed=self._state.log_panel_collapsed,
            log_lines=[e.display() for e in self._state.event_log.newest_first()],
            connection=self._state.connection_state.value,
            controls_enabled=self._state.controls_enabled,
        )

    def _build_dashboard(self) -> DashboardView:
        error = None
        if not self._state.directory_loaded and self._state.directory_error:
            error = f"Failed to load servers: {self._state.directory_error}"
        cards = [
            ServerCard(
                name=s.name,
                host=s.host,
                user=s.user,
                status=self._status_label(s.name),
                selected=s.name in self._state.selection,
            )
            for s in self._state.directory
        ]
        return DashboardView(cards=cards, error=error, chrome=self._chrome())

    def _status_label(self, server_name: str) -> str:
        # A recorded blank status is shown as blank; only "never reported" gets the placeholder.
        status = self._state.statuses.get(server_name)
        return AWAITING_TASK if status is None else status

    def _build_detail(self, server: Server) -> DetailView:
        report = self._snapshots.lookup(server.name)
        return DetailView(
            server_name=server.name,
            host=server.host,
            port=server.port,
            user=server.user,
            metrics=_metrics_for(report) if report is not None else None,
            placeholder=None if report is not None else NO_DATA_YET,
            chrome=self._chrome(),
        )

    def _emit(self, view: View) -> None:
        self.current = view
        if self._renderer is not None:
            self._renderer(view)
