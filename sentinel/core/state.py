from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Set, Tuple

from sentinel.core.event_log import EventLog
from sentinel.models import ConnectionState, Navigation, RunRecord, RunState, Server, ServerReport


@dataclass
class SessionState:
    """
    Everything the client knows during one session, owned in one place.

    Each component writes only its own slice:
    - directory / snapshot: SnapshotStore
    - statuses: StatusProjector
    - run_state / current_run: RunController
    - connection_state: ConnectionManager
    - navigation / selection / theme / log panel: ViewCoordinator
    """

    correlation_id: str = ""
    event_log: EventLog = field(default_factory=EventLog)

    directory: Tuple[Server, ...] = ()
    directory_loaded: bool = False
    directory_error: Optional[str] = None

    # Replaced wholesale on every successful pull; never mutated in place.
    snapshot: Mapping[str, ServerReport] = field(default_factory=lambda: MappingProxyType({}))
    snapshot_refreshed_at: Optional[datetime] = None

    statuses: Dict[str, str] = field(default_factory=dict)

    run_state: RunState = RunState.idle
    current_run: Optional[RunRecord] = None

    connection_state: ConnectionState = ConnectionState.closed

    navigation: Navigation = field(default_factory=Navigation.dashboard)
    selection: Set[str] = field(default_factory=set)
    theme_light: bool = False
    log_panel_collapsed: bool = False

    def server(self, name: str) -> Optional[Server]:
        for s in self.directory:
            if s.name == name:
                return s
        return None

    def has_server(self, name: str) -> bool:
        return self.server(name) is not None

    @property
    def controls_enabled(self) -> bool:
        return self.run_state == RunState.idle
