"""Pure utility helpers shared by the stores, the relay and the transport."""

from __future__ import annotations

import json
import os
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sessionbridge.core.constants import DEFAULT_MAX_MESSAGE_CHARS, SECURE_DIR_MODE, SECURE_FILE_MODE


def _coerce_float(raw: str, default: float, minimum: float) -> float:
    raw = raw.strip()
    if not raw:
        return max(minimum, default)
    try:
        return max(minimum, float(raw))
    except ValueError:
        return max(minimum, default)


def env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return max(minimum, default)
    try:
        return max(minimum, int(raw))
    except ValueError:
        return max(minimum, default)


def env_float(name: str, default: float, minimum: float = 0.0) -> float:
    return _coerce_float(os.getenv(name, ""), default, minimum)


def env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    return default


def parse_int_list(raw: str) -> tuple[list[int], list[str]]:
    """Parse a comma separated id list, returning the ids and the rejected tokens."""
    values: list[int] = []
    rejected: list[str] = []
    for token in str(raw or "").split(","):
        token = token.strip()
        if not token:
            continue
        try:
            values.append(int(token))
        except ValueError:
            rejected.append(token)
    return values, rejected


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def read_json_dict(path: Path) -> dict[str, Any]:
    """Read a JSON object; a missing file is empty, anything unreadable raises."""
    if not path.exists():
        return {}
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"expected a JSON object, got {type(raw).__name__}")
    return raw


def secure_file(path: Path) -> None:
    try:
        path.chmod(SECURE_FILE_MODE)
    except OSError:
        pass


def secure_dir(path: Path) -> None:
    try:
        path.chmod(SECURE_DIR_MODE)
    except OSError:
        pass


def write_json_dict(path: Path, payload: dict[str, Any]) -> None:
    """Atomically replace ``path`` with ``payload``; raises ``OSError`` on failure."""
    if not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        secure_dir(path.parent)
    tmp = path.with_name(f".{path.name}.tmp.{os.getpid()}.{time.time_ns()}")
    try:
        tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        secure_file(tmp)
        os.replace(tmp, path)
    finally:
        if tmp.exists():
            try:
                tmp.unlink()
            except OSError:
                pass


def compact_prompt_text(value: object, max_len: int = 100) -> str:
    text = re.sub(r"\s+", " ", str(value or "")).strip()
    if not text:
        return ""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def split_message(text: str, max_chars: int = DEFAULT_MAX_MESSAGE_CHARS) -> list[str]:
    """Split text into transport-sized parts, preferring newline then space boundaries."""
    rendered = str(text or "")
    limit = max(1, int(max_chars))
    if len(rendered) <= limit:
        return [rendered]

    parts: list[str] = []
    remaining = rendered
    while remaining:
        if len(remaining) <= limit:
            parts.append(remaining)
            break
        split_at = remaining.rfind("\n", 0, limit + 1)
        if split_at == -1 or split_at < limit / 2:
            split_at = remaining.rfind(" ", 0, limit + 1)
        if split_at == -1 or split_at < limit / 2:
            split_at = limit
        parts.append(remaining[:split_at])
        remaining = remaining[split_at:].strip()
    return parts


__all__ = [name for name in globals() if not name.startswith("__")]
