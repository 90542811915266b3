from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from loguru import logger


class AdmissionGate:
    """One in-flight invocation per conversation; denied requests are dropped, not queued."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._in_flight: set[str] = set()

    @staticmethod
    def _key(conversation_id: int | str) -> str:
        return str(conversation_id)

    def try_acquire(self, conversation_id: int | str) -> bool:
        key = self._key(conversation_id)
        with self._lock:
            if key in self._in_flight:
                logger.info(f"admission_busy conversation={key}")
                return False
            self._in_flight.add(key)
        return True

    def release(self, conversation_id: int | str) -> None:
        with self._lock:
            self._in_flight.discard(self._key(conversation_id))

    def is_busy(self, conversation_id: int | str) -> bool:
        with self._lock:
            return self._key(conversation_id) in self._in_flight

    def in_flight(self) -> set[str]:
        with self._lock:
            return set(self._in_flight)

    @contextmanager
    def slot(self, conversation_id: int | str) -> Iterator[bool]:
        """Yield whether the slot was acquired; an acquired slot is released on every exit path."""
        acquired = self.try_acquire(conversation_id)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(conversation_id)


__all__ = ["AdmissionGate"]
