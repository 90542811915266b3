"""Shared constants for the bridge core."""

from __future__ import annotations

import re

SECURE_FILE_MODE = 0o600
SECURE_DIR_MODE = 0o700

DEFAULT_CLAUDE_BINARY = "claude"
DEFAULT_SESSION_PREFIX = "telegram"
DEFAULT_INVOCATION_TIMEOUT_SEC = 5 * 60
DEFAULT_MAX_MESSAGE_CHARS = 4000
DEFAULT_TRANSCRIPTION_LANGUAGE = "de"
DEFAULT_TELEGRAM_POLL_TIMEOUT_SEC = 30
DEFAULT_TELEGRAM_API_TIMEOUT_SEC = 20.0
DEFAULT_TYPING_INTERVAL_SEC = 4.0
DEFAULT_STDERR_EXCERPT_CHARS = 2000

WORKSPACE_FINGERPRINT_CHARS = 8
CREDENTIAL_ENV_NAME = "ANTHROPIC_API_KEY"

SESSIONS_FILENAME = "sessions.json"
WORKSPACES_FILENAME = "repos.json"

ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)|\x1b[@-Z\\-_]")
SPINNER_GLYPHS = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"
SPINNER_LINE_RE = re.compile(rf"^[ \t]*[{SPINNER_GLYPHS}]")
EXCESS_BLANK_LINES_RE = re.compile(r"\n{3,}")

# Characters with special meaning inside a double-quoted POSIX shell word.
SHELL_DOUBLE_QUOTE_SPECIALS = ("\\", '"', "$", "`")

WHISPER_MODEL = "whisper-1"
REFINE_MODEL = "gpt-4o-mini"
OPENAI_API_BASE = "https://api.openai.com/v1"
TELEGRAM_API_BASE = "https://api.telegram.org"

REFINE_SYSTEM_PROMPT = (
    "Du bist ein Transkriptions-Assistent. Deine Aufgabe ist es, gesprochenen Text zu bereinigen:\n\n"
    "1. Entferne Füllwörter (ähm, äh, also, halt, quasi, sozusagen, irgendwie)\n"
    "2. Entferne Wiederholungen und Stotterer\n"
    "3. Korrigiere offensichtliche Spracherkennungsfehler\n"
    "4. Behalte den Inhalt und die Bedeutung exakt bei\n"
    "5. Formatiere als klaren, lesbaren Text\n"
    "6. KEINE Zusammenfassung - der volle Inhalt muss erhalten bleiben\n\n"
    "Antworte NUR mit dem bereinigten Text, ohne Erklärungen."
)

__all__ = [name for name in globals() if not name.startswith("__")]
