"""Write-through JSON mapping store shared by the session and workspace stores."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any

from loguru import logger

from sessionbridge.core import utils as _utils
from sessionbridge.core.errors import PersistenceError


class JsonMappingStore:
    """In-memory mirror of a JSON object file.

    Reads are served from memory. Every mutation rewrites the whole file
    before returning. A write failure does not undo the in-memory change; it
    is logged and kept as a durability warning until taken.
    """

    label = "mappings"

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()
        self._data: dict[str, dict[str, Any]] = {}
        self._last_persist_error: PersistenceError | None = None
        self._loaded = False

    def load(self) -> int:
        with self._lock:
            try:
                raw = _utils.read_json_dict(self.path)
            except (OSError, ValueError) as exc:
                logger.warning(f"{self.label}_load_failed path={self.path}: {exc}")
                raw = {}
            self._data = {str(k): dict(v) for k, v in raw.items() if isinstance(v, dict)}
            self._loaded = True
            count = len(self._data)
        logger.info(f"{self.label}_loaded path={self.path} count={count}")
        return count

    @property
    def _entries(self) -> dict[str, dict[str, Any]]:
        # First access loads the backing file so a write never drops entries it has not seen.
        with self._lock:
            if not self._loaded:
                self.load()
            return self._data

    def close(self) -> PersistenceError | None:
        if not self._loaded:
            return None
        return self._write_through()

    def _write_through(self) -> PersistenceError | None:
        with self._lock:
            snapshot = {key: dict(value) for key, value in self._entries.items()}
            try:
                _utils.write_json_dict(self.path, snapshot)
            except OSError as exc:
                error = PersistenceError(str(self.path), str(exc))
                self._last_persist_error = error
                logger.warning(f"{self.label}_persist_failed path={self.path}: {exc}")
                return error
        return None

    def take_durability_warning(self) -> PersistenceError | None:
        with self._lock:
            error = self._last_persist_error
            self._last_persist_error = None
        return error

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["JsonMappingStore"]
