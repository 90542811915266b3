"""Minimal Telegram Bot API client over requests."""

from __future__ import annotations

from typing import Any, Optional

import requests

from sessionbridge.core.constants import DEFAULT_TELEGRAM_API_TIMEOUT_SEC, TELEGRAM_API_BASE
from sessionbridge.core.errors import TelegramApiError


class TelegramClient:
    def __init__(
        self,
        token: str,
        *,
        timeout_sec: float = DEFAULT_TELEGRAM_API_TIMEOUT_SEC,
        session: requests.Session | None = None,
        api_base: str = TELEGRAM_API_BASE,
    ) -> None:
        self.token = token
        self.timeout_sec = float(timeout_sec)
        self.session = session or requests.Session()
        self.api_base = api_base.rstrip("/")

    def _call(self, method: str, payload: dict[str, Any] | None = None, *, timeout: float | None = None) -> Any:
        url = f"{self.api_base}/bot{self.token}/{method}"
        try:
            res = self.session.post(url, json=payload or {}, timeout=timeout or self.timeout_sec)
        except requests.RequestException as exc:
            raise TelegramApiError(method, str(exc)) from exc
        try:
            body = res.json()
        except ValueError:
            raise TelegramApiError(method, f"HTTP {res.status_code}") from None
        if not isinstance(body, dict) or not body.get("ok"):
            description = body.get("description") if isinstance(body, dict) else None
            raise TelegramApiError(method, str(description or f"HTTP {res.status_code}"))
        return body.get("result")

    def get_updates(self, offset: int = 0, timeout: int = 30) -> list[dict[str, Any]]:
        payload: dict[str, Any] = {"timeout": int(timeout), "allowed_updates": ["message"]}
        if offset:
            payload["offset"] = int(offset)
        result = self._call("getUpdates", payload, timeout=self.timeout_sec + timeout)
        return [item for item in (result or []) if isinstance(item, dict)]

    def send_message(self, chat_id: int | str, text: str, parse_mode: Optional[str] = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        return self._call("sendMessage", payload) or {}

    def edit_message_text(
        self,
        chat_id: int | str,
        message_id: int,
        text: str,
        parse_mode: Optional[str] = None,
    ) -> Any:
        payload: dict[str, Any] = {"chat_id": chat_id, "message_id": int(message_id), "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        return self._call("editMessageText", payload)

    def delete_message(self, chat_id: int | str, message_id: int) -> bool:
        return bool(self._call("deleteMessage", {"chat_id": chat_id, "message_id": int(message_id)}))

    def send_chat_action(self, chat_id: int | str, action: str = "typing") -> bool:
        return bool(self._call("sendChatAction", {"chat_id": chat_id, "action": action}))

    def get_file(self, file_id: str) -> dict[str, Any]:
        return self._call("getFile", {"file_id": file_id}) or {}

    def download_file(self, file_path: str) -> bytes:
        url = f"{self.api_base}/file/bot{self.token}/{file_path}"
        try:
            res = self.session.get(url, timeout=self.timeout_sec)
            res.raise_for_status()
        except requests.RequestException as exc:
            raise TelegramApiError("downloadFile", str(exc)) from exc
        return res.content


__all__ = ["TelegramClient"]
