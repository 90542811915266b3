"""Voice transcription collaborator (Whisper + optional cleanup pass)."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any

import requests
from loguru import logger

from sessionbridge.core.constants import (
    DEFAULT_TRANSCRIPTION_LANGUAGE,
    OPENAI_API_BASE,
    REFINE_MODEL,
    REFINE_SYSTEM_PROMPT,
    WHISPER_MODEL,
)
from sessionbridge.core.errors import TranscriptionError
from sessionbridge.core.utils import compact_prompt_text


class Transcriber:
    def __init__(
        self,
        api_key: str,
        *,
        language: str = DEFAULT_TRANSCRIPTION_LANGUAGE,
        refine: bool = True,
        timeout_sec: float = 120.0,
        session: requests.Session | None = None,
        api_base: str = OPENAI_API_BASE,
    ) -> None:
        self.api_key = api_key
        self.language = language
        self.refine_enabled = bool(refine)
        self.timeout_sec = float(timeout_sec)
        self.session = session or requests.Session()
        self.api_base = api_base.rstrip("/")

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def transcribe_file(self, audio_path: Path) -> str:
        logger.info(f"transcription_start path={audio_path}")
        try:
            with open(audio_path, "rb") as fh:
                res = self.session.post(
                    f"{self.api_base}/audio/transcriptions",
                    headers=self._headers(),
                    data={"model": WHISPER_MODEL, "language": self.language, "response_format": "text"},
                    files={"file": (Path(audio_path).name, fh)},
                    timeout=self.timeout_sec,
                )
            res.raise_for_status()
        except (OSError, requests.RequestException) as exc:
            raise TranscriptionError(str(exc)) from exc
        transcript = res.text.strip()
        logger.info(f"transcription_raw text={compact_prompt_text(transcript)}")
        return transcript

    def refine(self, transcript: str) -> str:
        if not self.refine_enabled or not transcript:
            return transcript
        payload: dict[str, Any] = {
            "model": REFINE_MODEL,
            "messages": [
                {"role": "system", "content": REFINE_SYSTEM_PROMPT},
                {"role": "user", "content": transcript},
            ],
            "temperature": 0.3,
            "max_tokens": 2000,
        }
        try:
            res = self.session.post(
                f"{self.api_base}/chat/completions",
                headers=self._headers(),
                json=payload,
                timeout=self.timeout_sec,
            )
            res.raise_for_status()
            body = res.json()
        except (requests.RequestException, ValueError) as exc:
            raise TranscriptionError(f"refinement failed: {exc}") from exc
        try:
            refined = str(body["choices"][0]["message"]["content"] or "").strip()
        except (KeyError, IndexError, TypeError):
            refined = ""
        return refined or transcript

    def transcribe_bytes(self, audio: bytes, suffix: str = ".ogg") -> tuple[str, str]:
        """Return ``(raw, refined)`` for an audio blob."""
        fd, name = tempfile.mkstemp(prefix="voice_", suffix=suffix)
        temp_path = Path(name)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(audio)
            raw = self.transcribe_file(temp_path)
            return raw, self.refine(raw)
        finally:
            try:
                temp_path.unlink()
            except OSError:
                pass


__all__ = ["Transcriber"]
