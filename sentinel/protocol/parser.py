from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple


DEFAULT_COMPLETION_MARKER = "🏁 Process complete."

# First bracketed group anywhere in the line, non-greedy.
_SERVER_TAG_RE = re.compile(r"\[(?P<name>.*?)\]")
_ERROR_PREFIX = "❌"


class EventKind(str, Enum):
    info = "info"
    server_status = "server_status"
    run_complete = "run_complete"
    error = "error"


@dataclass(frozen=True)
class ProgressEvent:
    kind: EventKind
    raw: str
    text: str
    server_name: Optional[str] = None

    @property
    def is_terminator(self) -> bool:
        return self.kind == EventKind.run_complete


def _parse_envelope(raw: str) -> Optional[ProgressEvent]:
    s = raw.strip()
    if not (s.startswith("{") and s.endswith("}")):
        return None
    try:
        obj: Any = json.loads(s)
    except json.JSONDecodeError:
        return None
    if not isinstance(obj, dict):
        return None
    try:
        kind = EventKind(str(obj.get("kind") or ""))
    except ValueError:
        return None
    text = obj.get("text")
    text = text if isinstance(text, str) else ""
    server = obj.get("server")
    server = server.strip() if isinstance(server, str) and server.strip() else None
    if kind == EventKind.server_status and server is None:
        # A status without a target cannot be projected.
        return ProgressEvent(kind=EventKind.info, raw=raw, text=text)
    return ProgressEvent(kind=kind, raw=raw, text=text, server_name=server if kind == EventKind.server_status else None)


def _server_tag(raw: str) -> Optional[Tuple[str, str]]:
    m = _SERVER_TAG_RE.search(raw)
    if not m or not m.group("name").strip():
        return None
    return m.group("name").strip(), raw.rsplit("]", 1)[-1].strip()


def parse_progress_line(raw: str, *, completion_marker: str = DEFAULT_COMPLETION_MARKER) -> ProgressEvent:
    """
    Decode one inbound push-channel message.

    Precedence: typed envelope, terminator phrase, `[name]` tag, untagged error, info.
    The status text of a tagged line is everything after the last `]`. A tagged terminator
    keeps its server name and status so the projection still sees it.
    Never raises: unrecognised input is INFO.
    """
    envelope = _parse_envelope(raw)
    if envelope is not None:
        return envelope

    tag = _server_tag(raw)
    if completion_marker and completion_marker in raw:
        if tag is not None:
            return ProgressEvent(kind=EventKind.run_complete, raw=raw, text=tag[1], server_name=tag[0])
        return ProgressEvent(kind=EventKind.run_complete, raw=raw, text=raw.strip())

    if tag is not None:
        return ProgressEvent(kind=EventKind.server_status, raw=raw, text=tag[1], server_name=tag[0])

    if raw.lstrip().startswith(_ERROR_PREFIX):
        return ProgressEvent(kind=EventKind.error, raw=raw, text=raw.strip())

    return ProgressEvent(kind=EventKind.info, raw=raw, text=raw.strip())
