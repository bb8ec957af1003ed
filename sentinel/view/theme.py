from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class ClientStateStore:
    """
    Client-local storage (a small JSON file). Holds cosmetic preferences only.
    """

    path: str

    def load(self) -> Dict[str, Any]:
        try:
            if not os.path.exists(self.path):
                return {}
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            return {}
        return data if isinstance(data, dict) else {}

    def save(self, data: Dict[str, Any]) -> None:
        try:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f)
        except OSError:
            return

    def load_theme_light(self) -> bool:
        return self.load().get("theme") == "light"

    def save_theme_light(self, light: bool) -> None:
        data = self.load()
        data["theme"] = "light" if light else "dark"
        self.save(data)
