"""Error taxonomy for the bridge core.

None of these are fatal to the process except ``ConfigError``, which only the
bootstrap raises. Each error renders a message fit to show the requester.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for every structured failure the relay reports."""


class InvalidPathError(BridgeError):
    def __init__(self, path: str, reason: str) -> None:
        self.path = str(path)
        self.reason = str(reason)
        super().__init__(f"Invalid path: {self.path} - {self.reason}")


class SpawnError(BridgeError):
    def __init__(self, reason: str) -> None:
        self.reason = str(reason)
        super().__init__(f"Failed to start assistant: {self.reason}")


class ExternalProcessError(BridgeError):
    def __init__(self, exit_code: int, stderr_excerpt: str) -> None:
        self.exit_code = int(exit_code)
        self.stderr_excerpt = str(stderr_excerpt or "")
        detail = self.stderr_excerpt or "Unknown error"
        super().__init__(f"Assistant failed (exit={self.exit_code}): {detail}")


class InvocationTimeoutError(BridgeError, TimeoutError):
    def __init__(self, timeout_sec: float) -> None:
        self.timeout_sec = float(timeout_sec)
        super().__init__(f"Assistant timed out after {self.timeout_sec:g} seconds")


class PersistenceError(BridgeError):
    def __init__(self, path: str, reason: str) -> None:
        self.path = str(path)
        self.reason = str(reason)
        super().__init__(f"Could not persist {self.path}: {self.reason}")


class ConfigError(BridgeError):
    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__("Missing required environment variables: " + ", ".join(self.missing))


class TranscriptionError(BridgeError):
    def __init__(self, reason: str) -> None:
        self.reason = str(reason)
        super().__init__(f"Transcription failed: {self.reason}")


class TelegramApiError(BridgeError):
    def __init__(self, method: str, description: str) -> None:
        self.method = str(method)
        self.description = str(description)
        super().__init__(f"Telegram API error in {self.method}: {self.description}")


__all__ = [
    "BridgeError",
    "ConfigError",
    "ExternalProcessError",
    "InvalidPathError",
    "InvocationTimeoutError",
    "PersistenceError",
    "SpawnError",
    "TelegramApiError",
    "TranscriptionError",
]
