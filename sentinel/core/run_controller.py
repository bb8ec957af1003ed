from __future__ import annotations

import asyncio
import json
import uuid
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Union

from pydantic import ValidationError

from sentinel.core.connection import ConnectionManager, Scheduler, TimerHandle
from sentinel.core.state import SessionState
from sentinel.errors import ChannelUnavailable, InvalidRunTargets, RunInFlight
from sentinel.models import ALL_SERVERS, RunRecord, RunRequest, RunState
from sentinel.telemetry.audit import AuditLogger

Targets = Union[str, Iterable[str]]


class RunController:
    """
    Single-flight run discipline. The only writer of run_state / current_run.

    Idle -> InFlight on an accepted submission; InFlight -> Idle on the terminator (complete),
    on the optional watchdog, or on an explicit abandon. Submissions while InFlight are rejected.
    """

    def __init__(
        self,
        state: SessionState,
        connection: ConnectionManager,
        audit: AuditLogger,
        *,
        run_timeout_s: float | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._state = state
        self._connection = connection
        self._audit = audit
        self._run_timeout_s = run_timeout_s
        self._scheduler = scheduler
        self._clock = clock
        self._timeout_handle: Optional[TimerHandle] = None
        self._on_state_changed: List[Callable[[RunState], None]] = []
        self._on_completed: List[Callable[[RunRecord], None]] = []

    def on_state_changed(self, listener: Callable[[RunState], None]) -> None:
        self._on_state_changed.append(listener)

    def on_completed(self, listener: Callable[[RunRecord], None]) -> None:
        self._on_completed.append(listener)

    @property
    def state(self) -> RunState:
        return self._state.run_state

    @property
    def controls_enabled(self) -> bool:
        return self._state.run_state == RunState.idle

    def build_request(self, targets: Targets) -> RunRequest:
        if isinstance(targets, str):
            if targets == ALL_SERVERS:
                return RunRequest(targets=ALL_SERVERS)
            targets = [targets]
        wanted: List[str] = []
        for name in targets:
            if name not in wanted:
                wanted.append(name)
        if not wanted:
            raise InvalidRunTargets("No servers selected.")
        if wanted == [ALL_SERVERS]:
            return RunRequest(targets=ALL_SERVERS)
        unknown = [n for n in wanted if not self._state.has_server(n)]
        if unknown:
            raise InvalidRunTargets(f"Unknown server(s): {', '.join(sorted(unknown))}")
        ordered = tuple(s.name for s in self._state.directory if s.name in wanted)
        try:
            return RunRequest(targets=ordered)
        except ValidationError as e:
            raise InvalidRunTargets(str(e)) from e

    async def submit_run(self, targets: Targets) -> RunRecord:
        corr = self._state.correlation_id
        request = self.build_request(targets)
        if self._state.run_state == RunState.in_flight:
            self._audit.write(corr, "run.rejected", {"reason": "run_in_flight", "targets": request.to_wire()["servers"]})
            raise RunInFlight()
        if not self._connection.is_open:
            self._audit.write(corr, "run.rejected", {"reason": "channel_unavailable", "targets": request.to_wire()["servers"]})
            raise ChannelUnavailable()

        record = RunRecord(run_id=uuid.uuid4().hex, request=request, started_at=self._clock())
        # Flip to InFlight before the send suspends so a second submission cannot slip in.
        self._transition(RunState.in_flight, record)
        try:
            await self._connection.send(json.dumps(request.to_wire(), ensure_ascii=False))
        except ChannelUnavailable:
            self._transition(RunState.idle, None)
            self._audit.write(corr, "run.rejected", {"reason": "send_failed", "run_id": record.run_id})
            raise
        self._audit.write(corr, "run.submitted", {"run_id": record.run_id, "targets": request.to_wire()["servers"]})
        self._arm_timeout(record)
        return record

    def complete(self) -> bool:
        """
        Terminator received. Returns False (and changes nothing) when no run is in flight.
        """
        record = self._state.current_run
        if self._state.run_state != RunState.in_flight or record is None:
            return False
        self._cancel_timeout()
        self._transition(RunState.idle, None)
        elapsed = (self._clock() - record.started_at).total_seconds()
        self._audit.write(self._state.correlation_id, "run.completed", {"run_id": record.run_id, "elapsed_s": round(elapsed, 3)})
        for listener in list(self._on_completed):
            listener(record)
        return True

    def abandon(self) -> bool:
        """
        Manual recovery after a channel loss mid-run: give up on the in-flight run.
        Only allowed once the channel is Open again; no refresh follows.
        """
        record = self._state.current_run
        if self._state.run_state != RunState.in_flight or record is None:
            return False
        if not self._connection.is_open:
            raise ChannelUnavailable()
        self._cancel_timeout()
        self._transition(RunState.idle, None)
        self._state.event_log.append("⚠️ Run abandoned. Controls re-enabled.", level="warn")
        self._audit.write(self._state.correlation_id, "run.abandoned", {"run_id": record.run_id})
        return True

    def cancel_timers(self) -> None:
        self._cancel_timeout()

    def _transition(self, new_state: RunState, record: Optional[RunRecord]) -> None:
        self._state.run_state = new_state
        self._state.current_run = record
        for listener in list(self._on_state_changed):
            listener(new_state)

    def _arm_timeout(self, record: RunRecord) -> None:
        if self._run_timeout_s is None:
            return
        scheduler = self._scheduler or asyncio.get_running_loop().call_later
        self._timeout_handle = scheduler(float(self._run_timeout_s), lambda: self._on_timeout(record))

    def _cancel_timeout(self) -> None:
        handle = self._timeout_handle
        self._timeout_handle = None
        if handle is not None:
            handle.cancel()

    def _on_timeout(self, record: RunRecord) -> None:
        self._timeout_handle = None
        if self._state.current_run is not record:
            return
        self._transition(RunState.idle, None)
        self._state.event_log.append(
            f"⚠️ No completion received within {self._run_timeout_s:g}s. Controls re-enabled.", level="warn"
        )
        self._audit.write(self._state.correlation_id, "run.timed_out", {"run_id": record.run_id, "timeout_s": self._run_timeout_s})
