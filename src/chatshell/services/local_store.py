"""Durable key-value store shared by every chat surface.

Values are JSON-compatible and the whole map is rewritten on every write
(temp file then ``replace``), so a crash never leaves a half-written file.
Writes are last-writer-wins; there is no versioning.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator

__all__ = ["LocalStore"]

LOGGER = logging.getLogger(__name__)


class LocalStore:
    """JSON-file backed key-value map; purely in-memory when ``path`` is None."""

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path).expanduser() if path is not None else None
        self._data: Dict[str, Any] = self._read()

    @property
    def path(self) -> Path | None:
        return self._path

    def get(self, key: str, default: Any = None) -> Any:
        """Return a copy of the stored value so callers cannot mutate it in place."""

        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)
        self._write()

    def remove(self, key: str) -> bool:
        if key not in self._data:
            return False
        del self._data[key]
        self._write()
        return True

    def keys(self) -> Iterator[str]:
        return iter(sorted(self._data))

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def reload(self) -> None:
        """Re-read the backing file, discarding in-memory state."""

        self._data = self._read()

    def _read(self) -> Dict[str, Any]:
        if self._path is None or not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.warning("Local store %s is unreadable, starting empty: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Local store %s does not hold an object, starting empty", self._path)
            return {}
        return payload

    def _write(self) -> None:
        if self._path is None:
            return
        body = json.dumps(self._data, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
