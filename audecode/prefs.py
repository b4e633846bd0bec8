"""Audecode — persisted preferences.

A flat JSON object on disk, read once when the store is created and
rewritten on every :meth:`set`.  ``AUDECODE_PREFS`` overrides the location.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def default_prefs_path() -> Path:
    env = os.environ.get("AUDECODE_PREFS")
    if env:
        return Path(env)
    return Path.home() / ".config" / "audecode" / "prefs.json"


class MemoryPreferences:
    """In-process store; nothing survives the process."""

    def __init__(self, initial: dict | None = None):
        self._data = dict(initial or {})
        self.writes = 0

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self.writes += 1


class JsonPreferences(MemoryPreferences):
    """JSON-file store.  A missing or unreadable file reads as empty."""

    def __init__(self, path: str | os.PathLike | None = None):
        self.path = Path(path) if path is not None else default_prefs_path()
        super().__init__(self._load())

    def _load(self) -> dict:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("ignoring unreadable preferences %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("ignoring preferences %s: top level is not an object", self.path)
            return {}
        return data

    def set(self, key: str, value: Any) -> None:
        super().set(key, value)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
            raise
