"""One-shot invocations of the external assistant CLI.

Each call spawns the binary with an argument vector (no shell), drains
stdout and stderr concurrently while waiting, and settles into sanitized
text or one of ``SpawnError``, ``ExternalProcessError`` and
``InvocationTimeoutError``. No live process outlives the call.
"""

from __future__ import annotations

import asyncio
import os
import signal
from pathlib import Path
from typing import Optional

from loguru import logger

from sessionbridge.core.constants import (
    ANSI_ESCAPE_RE,
    CREDENTIAL_ENV_NAME,
    DEFAULT_CLAUDE_BINARY,
    DEFAULT_INVOCATION_TIMEOUT_SEC,
    DEFAULT_STDERR_EXCERPT_CHARS,
    EXCESS_BLANK_LINES_RE,
    SHELL_DOUBLE_QUOTE_SPECIALS,
    SPINNER_LINE_RE,
)
from sessionbridge.core.errors import ExternalProcessError, InvocationTimeoutError, SpawnError
from sessionbridge.core.utils import compact_prompt_text


def sanitize_output(text: str) -> str:
    cleaned = ANSI_ESCAPE_RE.sub("", str(text or ""))
    cleaned = cleaned.replace("\r", "")
    cleaned = "\n".join(line for line in cleaned.split("\n") if not SPINNER_LINE_RE.match(line))
    cleaned = EXCESS_BLANK_LINES_RE.sub("\n\n", cleaned)
    return cleaned.strip()


def shell_quote_double(text: str) -> str:
    """Quote ``text`` as one double-quoted POSIX shell word."""
    escaped = str(text)
    for char in SHELL_DOUBLE_QUOTE_SPECIALS:
        escaped = escaped.replace(char, "\\" + char)
    return f'"{escaped}"'


def render_command(argv: list[str], max_len: int = 240) -> str:
    """Human readable, shell-safe rendering of ``argv`` for log lines."""
    parts: list[str] = []
    for arg in argv:
        if arg and all(ch.isalnum() or ch in "-_./=:@%+," for ch in arg):
            parts.append(arg)
        else:
            parts.append(shell_quote_double(arg))
    return compact_prompt_text(" ".join(parts), max_len=max_len)


class InvokerEnvPolicy:
    """Environment for the assistant process.

    The configured credential is injected explicitly; without one the
    parent environment is inherited unchanged.
    """

    def __init__(self, credential: str = "", credential_env: str = CREDENTIAL_ENV_NAME) -> None:
        self.credential = str(credential or "").strip()
        self.credential_env = credential_env

    def build_env(self, base_env: dict[str, str] | None = None) -> dict[str, str]:
        env = dict(os.environ if base_env is None else base_env)
        if self.credential:
            env[self.credential_env] = self.credential
        return env


class ProcessInvoker:
    def __init__(
        self,
        binary: str = DEFAULT_CLAUDE_BINARY,
        *,
        default_model: str = "",
        timeout_sec: float = DEFAULT_INVOCATION_TIMEOUT_SEC,
        skip_permissions: bool = True,
        append_system_prompt: str = "",
        env_policy: InvokerEnvPolicy | None = None,
    ) -> None:
        self.binary = binary
        self.default_model = str(default_model or "").strip()
        self.timeout_sec = float(timeout_sec)
        self.skip_permissions = bool(skip_permissions)
        self.append_system_prompt = str(append_system_prompt or "").strip()
        self.env_policy = env_policy or InvokerEnvPolicy()

    def resolve_model(self, model_override: Optional[str] = None) -> str:
        return str(model_override or "").strip() or self.default_model

    def build_args(
        self,
        session_handle: str,
        query_text: str,
        *,
        model_override: Optional[str] = None,
        resume: bool = True,
    ) -> list[str]:
        # --session-id names a brand new session, --resume continues one the tool already has.
        session_flag = "--resume" if resume else "--session-id"
        argv = [self.binary, session_flag, session_handle, "-p", query_text]
        model = self.resolve_model(model_override)
        if model:
            argv.extend(["--model", model])
        if self.append_system_prompt:
            argv.extend(["--append-system-prompt", self.append_system_prompt])
        if self.skip_permissions:
            argv.append("--dangerously-skip-permissions")
        return argv

    async def invoke(
        self,
        session_handle: str,
        query_text: str,
        working_directory: str | Path,
        model_override: Optional[str] = None,
        *,
        resume: bool = True,
    ) -> str:
        argv = self.build_args(session_handle, query_text, model_override=model_override, resume=resume)
        cwd = Path(working_directory)
        if not cwd.is_dir():
            raise SpawnError(f"working directory unavailable: {cwd}")

        logger.info(f"invocation_start cwd={cwd} cmd={render_command(argv)}")
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd),
                env=self.env_policy.build_env(),
                start_new_session=(os.name == "posix"),
            )
        except OSError as exc:
            logger.warning(f"invocation_spawn_failed binary={self.binary}: {exc}")
            raise SpawnError(f"{self.binary}: {exc.strerror or exc}") from exc

        try:
            stdout_raw, stderr_raw = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_sec)
        except asyncio.TimeoutError:
            await self._terminate(proc)
            logger.warning(f"invocation_timeout pid={proc.pid} timeout={self.timeout_sec:g}s")
            raise InvocationTimeoutError(self.timeout_sec) from None
        except asyncio.CancelledError:
            await self._terminate(proc)
            raise

        stdout = stdout_raw.decode("utf-8", errors="replace")
        stderr = stderr_raw.decode("utf-8", errors="replace")
        exit_code = proc.returncode if proc.returncode is not None else -1
        if exit_code != 0:
            excerpt = sanitize_output(stderr) or sanitize_output(stdout)
            excerpt = excerpt[:DEFAULT_STDERR_EXCERPT_CHARS]
            logger.warning(f"invocation_failed pid={proc.pid} exit={exit_code} stderr={compact_prompt_text(excerpt, 300)}")
            raise ExternalProcessError(exit_code, excerpt)

        logger.info(f"invocation_done pid={proc.pid} stdout_bytes={len(stdout_raw)}")
        return sanitize_output(stdout)

    @staticmethod
    async def _terminate(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            try:
                if os.name == "posix":
                    os.killpg(proc.pid, signal.SIGKILL)
                else:
                    proc.kill()
            except ProcessLookupError:
                pass
        await proc.wait()


__all__ = [
    "InvokerEnvPolicy",
    "ProcessInvoker",
    "render_command",
    "sanitize_output",
    "shell_quote_double",
]
