from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Literal, Optional, Tuple

Level = Literal["info", "success", "warn", "error"]


@dataclass(frozen=True)
class EventLogEntry:
    seq: int
    ts: datetime
    text: str
    level: Level = "info"

    def display(self) -> str:
        return f"[{self.ts.strftime('%H:%M:%S')}] {self.text}"


class EventLog:
    """
    Append-only record of every inbound progress message plus the client's own notices.

    Stored in arrival order; the log panel shows it newest first. Entries are never reordered,
    coalesced or removed. `max_display` only limits what `newest_first()` returns.
    """

    def __init__(self, *, max_display: Optional[int] = None, clock: Callable[[], datetime] = datetime.now) -> None:
        self._entries: List[EventLogEntry] = []
        self._max_display = max_display
        self._clock = clock

    def append(self, text: str, *, level: Level = "info") -> EventLogEntry:
        entry = EventLogEntry(seq=len(self._entries) + 1, ts=self._clock(), text=text, level=level)
        self._entries.append(entry)
        return entry

    @property
    def entries(self) -> Tuple[EventLogEntry, ...]:
        return tuple(self._entries)

    def newest_first(self) -> List[EventLogEntry]:
        out = list(reversed(self._entries))
        if self._max_display is not None:
            out = out[: max(0, self._max_display)]
        return out

    def __len__(self) -> int:
        return len(self._entries)
