from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger

from sessionbridge.core import utils as _utils
from sessionbridge.core.errors import InvalidPathError
from sessionbridge.core.json_store import JsonMappingStore


@dataclass(frozen=True)
class WorkspaceRecord:
    path: str
    set_at: str

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "WorkspaceRecord | None":
        path = str(payload.get("path") or "").strip()
        if not path:
            return None
        return cls(path=path, set_at=str(payload.get("setAt") or ""))


def validate_workspace_path(path: str | Path) -> Path:
    raw = str(path or "").strip()
    if not raw:
        raise InvalidPathError(raw, "path is empty")
    candidate = Path(raw).expanduser()
    try:
        if not candidate.exists():
            raise InvalidPathError(raw, "no such file or directory")
        if not candidate.is_dir():
            raise InvalidPathError(raw, "path is not a directory")
        return candidate.resolve()
    except OSError as exc:
        raise InvalidPathError(raw, str(exc)) from exc


class WorkspaceStore(JsonMappingStore):
    """Durable mapping of conversation id to working directory."""

    label = "workspaces"

    def set(self, conversation_id: int | str, path: str | Path) -> WorkspaceRecord:
        resolved = validate_workspace_path(path)
        key = str(conversation_id)
        with self._lock:
            payload = dict(self._entries.get(key) or {})
            payload["path"] = str(resolved)
            payload["setAt"] = _utils.utc_now_iso()
            self._entries[key] = payload
            self._write_through()
        logger.info(f"workspace_set conversation={key} path={resolved}")
        return WorkspaceRecord(path=payload["path"], set_at=payload["setAt"])

    def get(self, conversation_id: int | str, default_path: str | Path) -> str:
        record = self.info(conversation_id)
        if record is None:
            return str(default_path)
        return record.path

    def info(self, conversation_id: int | str) -> WorkspaceRecord | None:
        with self._lock:
            payload = self._entries.get(str(conversation_id))
            if payload is None:
                return None
            return WorkspaceRecord.from_dict(payload)

    def remove(self, conversation_id: int | str) -> bool:
        key = str(conversation_id)
        with self._lock:
            existed = self._entries.pop(key, None) is not None
            if existed:
                self._write_through()
        if existed:
            logger.info(f"workspace_cleared conversation={key}")
        return existed

    def list(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {key: dict(value) for key, value in self._entries.items()}


__all__ = ["WorkspaceRecord", "WorkspaceStore", "validate_workspace_path"]
