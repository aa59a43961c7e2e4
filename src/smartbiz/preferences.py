from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional

from .errors import ValidationError
from .logging import get_logger
from .paths import find_project_root, var_dir


LOG = get_logger("preferences")

PREFERENCES_FILENAME = "preferences.json"
THEMES = ("light", "dark")
DEFAULT_THEME = "light"


class PreferenceStore:
    """UI preferences persisted as JSON under ``<project-root>/var/``."""

    def __init__(self, root_dir: Optional[str] = None) -> None:
        folder = var_dir(find_project_root(root_dir))
        os.makedirs(folder, exist_ok=True)
        self.path = os.path.join(folder, PREFERENCES_FILENAME)

    def _read(self) -> Dict[str, Any]:
        if not os.path.isfile(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            LOG.warning(f"Failed to read {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        tmp = f"{self.path}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp, self.path)

    def get_theme(self) -> str:
        theme = self._read().get("theme")
        return theme if theme in THEMES else DEFAULT_THEME

    def set_theme(self, theme: str) -> str:
        value = (theme or "").strip().lower()
        if value not in THEMES:
            raise ValidationError(f"theme must be one of {', '.join(THEMES)}")
        data = self._read()
        data["theme"] = value
        self._write(data)
        LOG.info(f"Theme set to {value}")
        return value
