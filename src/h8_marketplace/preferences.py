"""Display preferences persisted as a small JSON file.

Only the dark-mode flag is stored. It is read once at startup, falling back
to the configured OS colour-scheme preference, and written on every toggle.
"""

from __future__ import annotations

import json
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

DARK_MODE_KEY = "h8_dark_mode"


class PreferenceStore:
    def __init__(self, path: str | Path, prefers_dark_scheme: bool = False) -> None:
        self._path = Path(path)
        self.dark_mode = self._load(prefers_dark_scheme)

    def _load(self, default: bool) -> bool:
        if not self._path.exists():
            return default
        try:
            with open(self._path, encoding="utf-8") as f:
                saved = json.load(f)
        except (OSError, json.JSONDecodeError):
            logger.warning("preferences_unreadable", path=str(self._path), exc_info=True)
            return default
        value = saved.get(DARK_MODE_KEY) if isinstance(saved, dict) else None
        return value if isinstance(value, bool) else default

    def _save(self) -> None:
        with open(self._path, "w", encoding="utf-8") as f:
            json.dump({DARK_MODE_KEY: self.dark_mode}, f)

    def toggle_dark_mode(self) -> bool:
        self.dark_mode = not self.dark_mode
        self._save()
        return self.dark_mode
