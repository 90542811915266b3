"""Repository-relative paths for the CLI and the bridge service."""

from __future__ import annotations

from pathlib import Path


def project_root() -> Path:
    """Return repository root where this file is located."""
    return Path(__file__).resolve().parents[2]


def project_file(*parts: str) -> Path:
    return project_root().joinpath(*parts)
