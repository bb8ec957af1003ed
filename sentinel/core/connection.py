from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Coroutine, List, Optional, Protocol

from sentinel.core.state import SessionState
from sentinel.errors import ChannelUnavailable
from sentinel.models import ConnectionState
from sentinel.settings import Settings
from sentinel.telemetry.audit import AuditLogger


class ChannelConnection(Protocol):
    async def send(self, message: str) -> None: ...

    async def recv(self) -> Any: ...

    async def close(self) -> None: ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


Dialer = Callable[[], Awaitable[ChannelConnection]]
Scheduler = Callable[[float, Callable[[], None]], TimerHandle]
Spawner = Callable[[Coroutine[Any, Any, None]], "asyncio.Task[None]"]


@dataclass(frozen=True)
class ReconnectPolicy:
    """
    Delay before the n-th consecutive reconnect attempt (n starts at 1, reset on a successful open).

    The first attempt after any loss waits exactly `base_delay_s`. In fixed mode every attempt does.
    In exponential mode later attempts grow by `multiplier` up to `max_delay_s`, with +/- `jitter`.
    Attempts never stop in either mode.
    """

    base_delay_s: float = 3.0
    mode: str = "fixed"
    max_delay_s: float = 30.0
    multiplier: float = 2.0
    jitter: float = 0.1
    rng: random.Random = field(default_factory=random.Random, compare=False, repr=False)

    @classmethod
    def from_settings(cls, settings: Settings, *, rng: random.Random | None = None) -> "ReconnectPolicy":
        return cls(
            base_delay_s=float(settings.reconnect_delay_s),
            mode=settings.reconnect_backoff,
            max_delay_s=float(settings.reconnect_max_delay_s),
            multiplier=float(settings.reconnect_multiplier),
            jitter=float(settings.reconnect_jitter),
            rng=rng or random.Random(),
        )

    def delay_for(self, attempt: int) -> float:
        base = max(0.0, float(self.base_delay_s))
        if attempt <= 1 or self.mode != "exponential":
            return base
        cap = max(base, float(self.max_delay_s))
        raw = min(cap, base * (float(self.multiplier) ** (attempt - 1)))
        if self.jitter > 0:
            raw *= 1.0 + self.rng.uniform(-self.jitter, self.jitter)
        return min(cap, max(base, raw))


class ConnectionManager:
    """
    Owns the single push channel: connect, detect loss, reconnect.

    Observable transitions are opened / closed / message. Messages are delivered to listeners in
    arrival order from one receive loop, each one handled to completion before the next is read.
    At most one reconnect is ever pending; a send while not Open fails immediately.
    """

    def __init__(
        self,
        state: SessionState,
        *,
        dial: Dialer,
        policy: ReconnectPolicy,
        audit: AuditLogger,
        scheduler: Scheduler | None = None,
        spawn: Spawner | None = None,
    ) -> None:
        self._state = state
        self._dial = dial
        self._policy = policy
        self._audit = audit
        self._scheduler = scheduler
        self._spawn = spawn
        self._conn: Optional[ChannelConnection] = None
        self._task: Optional["asyncio.Task[None]"] = None
        self._reconnect_handle: Optional[TimerHandle] = None
        self._attempt = 0
        self._stopped = False
        self._on_open: List[Callable[[], None]] = []
        self._on_close: List[Callable[[], None]] = []
        self._on_message: List[Callable[[str], None]] = []

    # ---- observers ----
    def on_open(self, listener: Callable[[], None]) -> None:
        self._on_open.append(listener)

    def on_close(self, listener: Callable[[], None]) -> None:
        self._on_close.append(listener)

    def on_message(self, listener: Callable[[str], None]) -> None:
        self._on_message.append(listener)

    @property
    def state(self) -> ConnectionState:
        return self._state.connection_state

    @property
    def is_open(self) -> bool:
        return self._state.connection_state == ConnectionState.open and self._conn is not None

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    # ---- lifecycle ----
    def connect(self) -> None:
        """
        Start a connection attempt now. No-op while an attempt or an open channel is alive.
        """
        if self._stopped:
            return
        if self._task is not None and not self._task.done():
            return
        self._cancel_reconnect()
        spawn = self._spawn or asyncio.get_running_loop().create_task
        self._task = spawn(self._run())

    async def stop(self) -> None:
        self._stopped = True
        self._cancel_reconnect()
        task = self._task
        self._task = None
        conn = self._conn
        self._conn = None
        if conn is not None:
            try:
                await conn.close()
            except Exception:  # noqa: BLE001
                pass
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except (asyncio.CancelledError, Exception):  # noqa: BLE001
                pass
        self._state.connection_state = ConnectionState.closed

    async def send(self, message: str) -> None:
        conn = self._conn
        if not self.is_open or conn is None:
            raise ChannelUnavailable()
        try:
            await conn.send(message)
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001
            raise ChannelUnavailable(f"WebSocket send failed: {type(e).__name__}: {e}") from e

    # ---- internals ----
    async def _run(self) -> None:
        corr = self._state.correlation_id
        self._state.connection_state = ConnectionState.connecting
        self._audit.write(corr, "channel.connecting", {"attempt": self._attempt})
        try:
            conn = await self._dial()
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001
            self._audit.write(corr, "channel.dial_failed", {"error": f"{type(e).__name__}: {e}"})
            self._handle_closed()
            return

        if self._stopped:
            try:
                await conn.close()
            except Exception:  # noqa: BLE001
                pass
            return

        self._conn = conn
        self._attempt = 0
        self._state.connection_state = ConnectionState.open
        self._audit.write(corr, "channel.opened", {})
        self._notify(self._on_open)

        reason = "closed"
        try:
            while True:
                message = await conn.recv()
                if isinstance(message, (bytes, bytearray)):
                    message = bytes(message).decode("utf-8", errors="replace")
                self._deliver(str(message))
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001
            reason = f"{type(e).__name__}: {e}"
        finally:
            if self._conn is conn:
                self._conn = None
        self._audit.write(corr, "channel.closed", {"reason": reason})
        self._handle_closed()

    def _handle_closed(self) -> None:
        self._state.connection_state = ConnectionState.closed
        if self._stopped:
            return
        self._notify(self._on_close)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._stopped or self._reconnect_handle is not None:
            return
        self._attempt += 1
        delay = self._policy.delay_for(self._attempt)
        scheduler = self._scheduler or asyncio.get_running_loop().call_later
        self._reconnect_handle = scheduler(delay, self._on_reconnect_due)
        self._audit.write(
            self._state.correlation_id,
            "channel.reconnect_scheduled",
            {"attempt": self._attempt, "delay_s": round(delay, 3)},
        )

    def _on_reconnect_due(self) -> None:
        self._reconnect_handle = None
        self.connect()

    def _cancel_reconnect(self) -> None:
        handle = self._reconnect_handle
        self._reconnect_handle = None
        if handle is not None:
            handle.cancel()

    def _deliver(self, message: str) -> None:
        for listener in list(self._on_message):
            try:
                listener(message)
            except Exception as e:  # noqa: BLE001
                self._audit.write(
                    self._state.correlation_id,
                    "protocol.anomaly",
                    {"reason": "listener_error", "error": f"{type(e).__name__}: {e}", "message": message[:500]},
                )

    def _notify(self, listeners: List[Callable[[], None]]) -> None:
        for listener in list(listeners):
            try:
                listener()
            except Exception as e:  # noqa: BLE001
                self._audit.write(
                    self._state.correlation_id,
                    "protocol.anomaly",
                    {"reason": "listener_error", "error": f"{type(e).__name__}: {e}"},
                )
