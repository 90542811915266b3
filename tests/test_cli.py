"""End-to-end tests for the sessionbridge command line."""

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

import os
import shutil

from click.testing import CliRunner

from sessionbridge.cli import main


def _last_line(output: str) -> list[str]:
    return output.strip().splitlines()[-1].split()


class TestCli(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.root = Path(self._td.name).resolve()
        self.repo = self.root / "repo"
        self.repo.mkdir()
        self.env = {
            "DATA_DIR": str(self.root / "data"),
            "LOGS_DIR": str(self.root / "logs"),
            "WORKING_DIRECTORY": str(self.root),
            "OPENAI_API_KEY": "",
        }
        self.runner = CliRunner()

    def tearDown(self) -> None:
        self._td.cleanup()

    def _invoke(self, *args: str):
        return self.runner.invoke(main, list(args), env=self.env)

    def test_workspace_commands(self) -> None:
        result = self._invoke("workspace", "set", "42", str(self.repo))
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn(f"42 -> {self.repo}", result.output)

        result = self._invoke("workspace", "show", "42")
        self.assertIn(str(self.repo), result.output)
        self.assertIn("(set ", result.output)

        result = self._invoke("workspace", "set", "42", str(self.root / "missing"))
        self.assertNotEqual(result.exit_code, 0)
        self.assertIn("Invalid path", result.output)

        result = self._invoke("workspace", "clear", "42")
        self.assertIn("cleared", result.output)
        result = self._invoke("workspace", "show", "42")
        self.assertIn("(default)", result.output)

    @unittest.skipUnless(os.name == "posix" and shutil.which("sh"), "needs a POSIX shell")
    def test_ask_creates_then_resumes_session(self) -> None:
        script = self.root / "fake-claude"
        script.write_text("#!/bin/sh\nprintf '%s %s\\n' \"$1\" \"$2\"\n", encoding="utf-8")
        script.chmod(0o755)
        self.env["CLAUDE_BINARY"] = str(script)

        first = self._invoke("ask", "7", "hello")
        second = self._invoke("ask", "7", "again")
        self.assertEqual(first.exit_code, 0, first.output)
        flag_1, handle_1 = _last_line(first.output)
        flag_2, handle_2 = _last_line(second.output)
        self.assertEqual((flag_1, flag_2), ("--session-id", "--resume"))
        self.assertEqual(handle_1, handle_2)

        reset = self._invoke("session", "reset", "7")
        self.assertEqual(reset.exit_code, 0, reset.output)
        third = self._invoke("ask", "7", "fresh")
        flag_3, handle_3 = _last_line(third.output)
        self.assertEqual(flag_3, "--session-id")
        self.assertNotEqual(handle_3, handle_1)

        listed = self._invoke("session", "list")
        self.assertEqual(listed.exit_code, 0, listed.output)
        self.assertIn("telegram-7-", listed.output)
        self.assertIn(handle_3, listed.output)

    def test_ask_reports_spawn_failure(self) -> None:
        self.env["CLAUDE_BINARY"] = str(self.root / "no-such-binary")
        result = self._invoke("ask", "7", "hello")
        self.assertNotEqual(result.exit_code, 0)
        self.assertIn("Failed to start assistant", result.output)


if __name__ == "__main__":
    unittest.main()
