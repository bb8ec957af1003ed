from __future__ import annotations

import json
import os
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional


class AuditLogger:
    """
    Append-only JSONL diagnostics sink.

    Writes are best-effort: a failing disk must never stop event processing.
    """

    def __init__(self, path: str, *, actor: str = "sentinel"):
        self.path = path
        self.actor = actor
        try:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        except OSError:
            pass

    def new_correlation_id(self) -> str:
        return uuid.uuid4().hex

    def write(
        self,
        correlation_id: str,
        event_type: str,
        payload: Dict[str, Any],
        *,
        timestamp: Optional[str] = None,
    ) -> None:
        record = {
            "ts": timestamp or datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "correlation_id": correlation_id,
            "actor": self.actor,
            "event_type": event_type,
            "payload": payload,
        }
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
        except OSError:
            return

    def recent(self, max_records: int = 200) -> List[Dict[str, Any]]:
        """
        Last `max_records` parseable records, oldest first. Unreadable lines are skipped.
        """
        if max_records <= 0:
            return []
        lines: Deque[str] = deque(maxlen=max_records)
        try:
            with open(self.path, "r", encoding="utf-8", errors="replace") as f:
                for ln in f:
                    lines.append(ln)
        except OSError:
            return []
        out: List[Dict[str, Any]] = []
        for ln in lines:
            try:
                obj = json.loads(ln)
            except json.JSONDecodeError:
                continue
            if isinstance(obj, dict) and obj.get("event_type"):
                out.append(obj)
        return out
