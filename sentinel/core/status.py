from __future__ import annotations

from typing import Callable, List

from sentinel.core.event_log import Level
from sentinel.core.state import SessionState
from sentinel.protocol.parser import DEFAULT_COMPLETION_MARKER, EventKind, ProgressEvent, parse_progress_line
from sentinel.telemetry.audit import AuditLogger


def _level_for(event: ProgressEvent) -> Level:
    if event.kind == EventKind.error or "❌" in event.raw:
        return "error"
    if "⚠️" in event.raw:
        return "warn"
    if "✅" in event.raw or event.kind == EventKind.run_complete:
        return "success"
    return "info"


class StatusProjector:
    """
    Interprets inbound progress lines.

    Every line goes to the event log verbatim, in arrival order. Tagged lines update the per-server
    status projection (last write wins). The terminator is signalled once per armed run; any other
    terminator is a protocol anomaly and is only logged.
    """

    def __init__(
        self,
        state: SessionState,
        audit: AuditLogger,
        *,
        completion_marker: str = DEFAULT_COMPLETION_MARKER,
    ) -> None:
        self._state = state
        self._audit = audit
        self._completion_marker = completion_marker
        self._armed = False
        self._on_status: List[Callable[[str, str], None]] = []
        self._on_run_complete: List[Callable[[ProgressEvent], None]] = []

    def on_status(self, listener: Callable[[str, str], None]) -> None:
        self._on_status.append(listener)

    def on_run_complete(self, listener: Callable[[ProgressEvent], None]) -> None:
        self._on_run_complete.append(listener)

    def arm(self) -> None:
        self._armed = True

    def disarm(self) -> None:
        self._armed = False

    def apply(self, raw: str) -> ProgressEvent:
        event = parse_progress_line(raw, completion_marker=self._completion_marker)
        self._state.event_log.append(raw, level=_level_for(event))

        if event.server_name:
            self._state.statuses[event.server_name] = event.text
            for listener in list(self._on_status):
                listener(event.server_name, event.text)
        if event.is_terminator:
            if not self._armed:
                self._audit.write(
                    self._state.correlation_id,
                    "protocol.anomaly",
                    {"reason": "terminator_without_run", "message": raw[:500]},
                )
                return event
            self._armed = False
            for listener in list(self._on_run_complete):
                listener(event)
        return event
