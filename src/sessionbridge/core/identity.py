"""Derivation of logical session keys from (conversation, workspace)."""

from __future__ import annotations

import hashlib
import os

from sessionbridge.core.constants import WORKSPACE_FINGERPRINT_CHARS


def workspace_fingerprint(workspace_path: object) -> str:
    normalized = os.path.normpath(str(workspace_path))
    return hashlib.md5(normalized.encode("utf-8")).hexdigest()[:WORKSPACE_FINGERPRINT_CHARS]


def derive_session_key(
    conversation_id: int | str,
    is_group: bool,
    workspace_path: object,
    prefix: str,
) -> str:
    """Return ``{prefix}[-group]-{conversation}-{fingerprint}``.

    The key is a pure function of its inputs, so moving a conversation to
    another workspace yields another key and moving it back yields the old one.
    """
    fingerprint = workspace_fingerprint(workspace_path)
    if is_group:
        return f"{prefix}-group-{conversation_id}-{fingerprint}"
    return f"{prefix}-{conversation_id}-{fingerprint}"


__all__ = ["derive_session_key", "workspace_fingerprint"]
