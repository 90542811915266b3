"""Loguru sink setup shared by the CLI and the bridge service."""

from __future__ import annotations

from pathlib import Path

from loguru import logger

_LOGURU_FILE_SINKS: set[str] = set()


def daily_log_path(logs_dir: Path, component: str) -> Path:
    return logs_dir / f"{component}-{{time:YYYY-MM-DD}}.log"


def configure_logging(logs_dir: Path, component: str = "bridge", level: str = "INFO") -> None:
    path_key = f"{str(logs_dir)}|{component}"
    if path_key in _LOGURU_FILE_SINKS:
        return
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(daily_log_path(logs_dir, component)),
            level=str(level).upper(),
            format=f"[{component}] [{{time:YYYY-MM-DD HH:mm:ss}}] {{level}} {{message}}",
            rotation="00:00",
            retention="7 days",
            enqueue=True,
            backtrace=False,
            diagnose=False,
        )
    except (OSError, ValueError) as exc:
        logger.warning(f"log_sink_unavailable path={logs_dir} component={component}: {exc}")
    # A sink that failed once is not retried.
    _LOGURU_FILE_SINKS.add(path_key)


__all__ = ["configure_logging", "daily_log_path"]
