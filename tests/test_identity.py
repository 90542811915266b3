"""Unit tests for session key derivation."""

from __future__ import annotations

import sys
import tempfile
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = PROJECT_ROOT / "src"
for path in (PROJECT_ROOT, SRC_ROOT):
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from sessionbridge.core.identity import derive_session_key, workspace_fingerprint


class TestWorkspaceFingerprint(unittest.TestCase):
    def test_fixed_width_hex(self) -> None:
        for path in ("/", "/repo", "/a/very/long/path/" + "x" * 300):
            fp = workspace_fingerprint(path)
            self.assertEqual(len(fp), 8)
            self.assertRegex(fp, r"^[0-9a-f]{8}$")

    def test_equivalent_spellings_share_fingerprint(self) -> None:
        self.assertEqual(workspace_fingerprint("/repo/"), workspace_fingerprint("/repo"))
        self.assertEqual(workspace_fingerprint(Path("/repo")), workspace_fingerprint("/repo"))

    def test_md5_prefix(self) -> None:
        import hashlib

        self.assertEqual(workspace_fingerprint("/repo"), hashlib.md5(b"/repo").hexdigest()[:8])


class TestDeriveSessionKey(unittest.TestCase):
    def test_pure_and_deterministic(self) -> None:
        first = derive_session_key(42, False, "/repo", "telegram")
        second = derive_session_key(42, False, "/repo", "telegram")
        self.assertEqual(first, second)
        self.assertEqual(first, f"telegram-42-{workspace_fingerprint('/repo')}")

    def test_workspace_switch_and_restore(self) -> None:
        original = derive_session_key(42, False, "/repo", "telegram")
        switched = derive_session_key(42, False, "/other", "telegram")
        restored = derive_session_key(42, False, "/repo", "telegram")
        self.assertNotEqual(original, switched)
        self.assertEqual(original, restored)

    def test_group_key_format(self) -> None:
        key = derive_session_key(-100123, True, "/repo", "bot")
        self.assertEqual(key, f"bot-group--100123-{workspace_fingerprint('/repo')}")
        self.assertNotEqual(key, derive_session_key(-100123, False, "/repo", "bot"))

    def test_distinct_conversations_distinct_keys(self) -> None:
        keys = {derive_session_key(cid, False, "/repo", "telegram") for cid in range(200)}
        self.assertEqual(len(keys), 200)


if __name__ == "__main__":
    unittest.main()
