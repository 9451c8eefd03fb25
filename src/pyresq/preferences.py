"""Small persisted key/value store for client preferences."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Protocol

_logger = logging.getLogger(__name__)


class PreferenceStore(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...


class JsonFilePreferences:
    """Preferences kept in a single JSON object on disk.

    A missing, unreadable or malformed file reads as empty. Writes replace
    the file atomically.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError:
            _logger.debug("Cannot read preferences from %s", self._path, exc_info=True)
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            _logger.debug("Ignoring malformed preferences file %s", self._path)
            return {}
        return data if isinstance(data, dict) else {}

    def _store(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, sort_keys=True), encoding="utf-8")
        os.replace(tmp, self._path)

    def get(self, key: str) -> Any | None:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._store(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key not in data:
            return
        del data[key]
        self._store(data)
