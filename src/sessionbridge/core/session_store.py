from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from loguru import logger

from sessionbridge.core import utils as _utils
from sessionbridge.core.json_store import JsonMappingStore

_KNOWN_FIELDS = {"handle", "createdAt", "previousHandle", "lastUsedAt", "uuid", "previousUUID"}


@dataclass
class SessionRecord:
    handle: str
    created_at: str
    previous_handle: Optional[str] = None
    last_used_at: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def started(self) -> bool:
        return bool(self.last_used_at)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "SessionRecord | None":
        # "uuid"/"previousUUID" are the field names of older session files.
        handle = str(payload.get("handle") or payload.get("uuid") or "").strip()
        if not handle:
            return None
        previous = str(payload.get("previousHandle") or payload.get("previousUUID") or "").strip()
        last_used = str(payload.get("lastUsedAt") or "").strip()
        return cls(
            handle=handle,
            created_at=str(payload.get("createdAt") or ""),
            previous_handle=previous or None,
            last_used_at=last_used or None,
            extra={k: v for k, v in payload.items() if k not in _KNOWN_FIELDS},
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extra)
        payload["handle"] = self.handle
        payload["createdAt"] = self.created_at
        if self.previous_handle:
            payload["previousHandle"] = self.previous_handle
        if self.last_used_at:
            payload["lastUsedAt"] = self.last_used_at
        return payload


def new_session_handle() -> str:
    return str(uuid.uuid4())


class SessionStore(JsonMappingStore):
    """Durable mapping of logical session key to the assistant's session handle."""

    label = "sessions"

    def __init__(self, path, handle_factory=new_session_handle) -> None:
        super().__init__(path)
        self._new_handle = handle_factory

    def info(self, logical_key: str) -> SessionRecord | None:
        with self._lock:
            payload = self._entries.get(logical_key)
            if payload is None:
                return None
            return SessionRecord.from_dict(payload)

    def get_or_create(self, logical_key: str) -> str:
        with self._lock:
            current = self.info(logical_key)
            if current is not None:
                return current.handle
            record = SessionRecord(handle=self._new_handle(), created_at=_utils.utc_now_iso())
            self._entries[logical_key] = record.to_dict()
            self._write_through()
        logger.info(f"session_created key={logical_key} handle={record.handle}")
        return record.handle

    def reset(self, logical_key: str) -> str:
        with self._lock:
            previous = self.info(logical_key)
            record = SessionRecord(
                handle=self._new_handle(),
                created_at=_utils.utc_now_iso(),
                previous_handle=previous.handle if previous else None,
                extra=previous.extra if previous else {},
            )
            self._entries[logical_key] = record.to_dict()
            self._write_through()
        logger.info(f"session_reset key={logical_key} handle={record.handle}")
        return record.handle

    def mark_used(self, logical_key: str, handle: str) -> None:
        """Record that the assistant has seen ``handle``; later calls resume it."""
        with self._lock:
            record = self.info(logical_key)
            if record is None or record.handle != handle or record.started:
                return
            record.last_used_at = _utils.utc_now_iso()
            self._entries[logical_key] = record.to_dict()
            self._write_through()

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._entries)


__all__ = ["SessionRecord", "SessionStore", "new_session_handle"]
