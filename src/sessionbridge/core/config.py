from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from sessionbridge.core import constants as _constants
from sessionbridge.core import utils as _utils
from sessionbridge.core.errors import ConfigError
from sessionbridge.runtime import project_file, project_root

PROJECT_ROOT = project_root()

load_dotenv(project_file(".env"), override=False)


def _format_default_str(value: str, default: str) -> str:
    return (value or "").strip() or default


def _resolve_path(name: str, default: Path) -> Path:
    return Path(os.getenv(name, "").strip() or str(default)).expanduser().resolve()


@dataclass(slots=True)
class BridgeConfig:
    root: Path
    data_dir: Path
    logs_dir: Path
    sessions_file: Path
    workspaces_file: Path
    telegram_token: str
    openai_api_key: str
    anthropic_api_key: str
    allowed_users: list[int]
    working_directory: Path
    claude_binary: str
    claude_model: str
    session_prefix: str
    refine_transcripts: bool
    transcription_language: str
    invocation_timeout_sec: float
    max_message_chars: int
    append_system_prompt: str
    skip_permissions: bool
    poll_timeout_sec: int
    telegram_api_timeout_sec: float
    typing_interval_sec: float

    @classmethod
    def from_env(
        cls,
        root: Path | None = None,
    ) -> tuple["BridgeConfig", list[str]]:
        base_root = Path(root or PROJECT_ROOT).resolve()
        warnings: list[str] = []

        data_dir = _resolve_path("DATA_DIR", base_root / "data")
        logs_dir = _resolve_path("LOGS_DIR", base_root / "logs")
        sessions_file = _resolve_path("SESSIONS_FILE", data_dir / _constants.SESSIONS_FILENAME)
        workspaces_file = _resolve_path("WORKSPACES_FILE", data_dir / _constants.WORKSPACES_FILENAME)

        allowed_users, rejected = _utils.parse_int_list(os.getenv("ALLOWED_USERS", ""))
        if rejected:
            warnings.append(f"ignored invalid ALLOWED_USERS entries: {', '.join(rejected)}")

        working_directory = _resolve_path("WORKING_DIRECTORY", Path.cwd())
        if not working_directory.is_dir():
            warnings.append(f"WORKING_DIRECTORY is not a directory: {working_directory}")

        openai_api_key = os.getenv("OPENAI_API_KEY", "").strip()
        if not openai_api_key:
            warnings.append("OPENAI_API_KEY is not set; voice messages are disabled")

        config = cls(
            root=base_root,
            data_dir=data_dir,
            logs_dir=logs_dir,
            sessions_file=sessions_file,
            workspaces_file=workspaces_file,
            telegram_token=os.getenv("TELEGRAM_BOT_TOKEN", "").strip(),
            openai_api_key=openai_api_key,
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", "").strip(),
            allowed_users=allowed_users,
            working_directory=working_directory,
            claude_binary=_format_default_str(os.getenv("CLAUDE_BINARY", ""), _constants.DEFAULT_CLAUDE_BINARY),
            claude_model=os.getenv("CLAUDE_MODEL", "").strip(),
            session_prefix=_format_default_str(os.getenv("SESSION_PREFIX", ""), _constants.DEFAULT_SESSION_PREFIX),
            refine_transcripts=_utils.env_bool("REFINE_TRANSCRIPTS", True),
            transcription_language=_format_default_str(
                os.getenv("TRANSCRIPTION_LANGUAGE", ""), _constants.DEFAULT_TRANSCRIPTION_LANGUAGE
            ),
            invocation_timeout_sec=_utils.env_float(
                "CLAUDE_TIMEOUT_SEC", _constants.DEFAULT_INVOCATION_TIMEOUT_SEC, minimum=1.0
            ),
            max_message_chars=_utils.env_int(
                "MAX_RESPONSE_LENGTH", _constants.DEFAULT_MAX_MESSAGE_CHARS, minimum=100
            ),
            append_system_prompt=os.getenv("APPEND_SYSTEM_PROMPT", "").strip(),
            skip_permissions=_utils.env_bool("CLAUDE_SKIP_PERMISSIONS", True),
            poll_timeout_sec=_utils.env_int(
                "TELEGRAM_POLL_TIMEOUT_SEC", _constants.DEFAULT_TELEGRAM_POLL_TIMEOUT_SEC, minimum=0
            ),
            telegram_api_timeout_sec=_utils.env_float(
                "TELEGRAM_API_TIMEOUT_SEC", _constants.DEFAULT_TELEGRAM_API_TIMEOUT_SEC, minimum=1.0
            ),
            typing_interval_sec=_utils.env_float(
                "TYPING_INTERVAL_SEC", _constants.DEFAULT_TYPING_INTERVAL_SEC, minimum=1.0
            ),
        )
        return config, warnings

    def validate(self) -> list[str]:
        missing: list[str] = []
        if not self.telegram_token:
            missing.append("TELEGRAM_BOT_TOKEN")
        return missing

    def require_valid(self) -> None:
        missing = self.validate()
        if missing:
            raise ConfigError(missing)

    @property
    def voice_enabled(self) -> bool:
        return bool(self.openai_api_key)
