"""Tests for Telegram message handling in BridgeService."""

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
from unittest import mock

from sessionbridge.core.config import BridgeConfig
from sessionbridge.core.errors import ExternalProcessError, TelegramApiError, TranscriptionError
from sessionbridge.core.invoker import ProcessInvoker
from sessionbridge.core.relay import SessionRelay
from sessionbridge.core.service import (
    TEXT_AUDIO_HINT,
    TEXT_BUSY,
    TEXT_DENIED,
    TEXT_VOICE_DISABLED,
    BridgeService,
    conversation_from_message,
    list_directory,
    parse_command,
)
from sessionbridge.core.session_store import SessionStore
from sessionbridge.core.workspace_store import WorkspaceStore


class FakeTelegram:
    def __init__(self, reject_markdown: bool = False) -> None:
        self.reject_markdown = reject_markdown
        self.sent: list[tuple[object, str, object]] = []
        self.edited: list[tuple[object, int, str]] = []
        self.deleted: list[tuple[object, int]] = []

    def send_message(self, chat_id, text, parse_mode=None):
        if parse_mode and self.reject_markdown:
            raise TelegramApiError("sendMessage", "can't parse entities")
        self.sent.append((chat_id, text, parse_mode))
        return {"message_id": len(self.sent)}

    def edit_message_text(self, chat_id, message_id, text, parse_mode=None):
        self.edited.append((chat_id, message_id, text))
        return True

    def delete_message(self, chat_id, message_id):
        self.deleted.append((chat_id, message_id))
        return True

    def send_chat_action(self, chat_id, action="typing"):
        return True

    def get_file(self, file_id):
        return {"file_path": f"voice/{file_id}.ogg"}

    def download_file(self, file_path):
        return b"OggS"

    def texts(self) -> list[str]:
        return [text for _, text, _ in self.sent]


class FakeTranscriber:
    def __init__(self) -> None:
        self.blobs: list[bytes] = []
        self.failure: Exception | None = None

    def transcribe_bytes(self, audio, suffix=".ogg"):
        self.blobs.append(audio)
        if self.failure is not None:
            raise self.failure
        return "aehm zeig mir die dateien", "Zeig mir die Dateien."


class EchoInvoker(ProcessInvoker):
    def __init__(self) -> None:
        super().__init__("claude")
        self.queries: list[str] = []
        self.reply = ""
        self.failure: Exception | None = None

    async def invoke(self, session_handle, query_text, working_directory, model_override=None, *, resume=True):
        self.queries.append(query_text)
        if self.failure is not None:
            raise self.failure
        return self.reply or f"echo: {query_text}"


def _message(text=None, *, chat_id=42, user_id=1, chat_type="private", **extra):
    message = {"chat": {"id": chat_id, "type": chat_type}, "from": {"id": user_id}}
    if text is not None:
        message["text"] = text
    message.update(extra)
    return message


class TestMessageHelpers(unittest.TestCase):
    def test_parse_command(self) -> None:
        self.assertEqual(parse_command("/setrepo@MyBot /srv/app"), ("setrepo", "/srv/app"))
        self.assertEqual(parse_command("/STATUS"), ("status", ""))
        self.assertEqual(parse_command("  /ls   extra  "), ("ls", "extra"))

    def test_conversation_from_message(self) -> None:
        private = conversation_from_message(_message("x"))
        self.assertEqual(private.conversation_id, 42)
        self.assertFalse(private.is_group)
        self.assertTrue(conversation_from_message(_message("x", chat_type="supergroup")).is_group)
        self.assertTrue(conversation_from_message(_message("x", chat_type="group")).is_group)

    def test_list_directory_hides_dotfiles(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            (root / "src").mkdir()
            (root / ".git").mkdir()
            (root / "b.txt").write_text("b", encoding="utf-8")
            (root / "A.md").write_text("a", encoding="utf-8")
            (root / ".env").write_text("secret", encoding="utf-8")
            dirs, files = list_directory(root)
        self.assertEqual(dirs, ["src"])
        self.assertEqual(files, ["A.md", "b.txt"])


class TestBridgeService(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.root = Path(self._td.name).resolve()
        self.repo = self.root / "repo"
        self.repo.mkdir()
        env = {
            "TELEGRAM_BOT_TOKEN": "123:abc",
            "ALLOWED_USERS": "1",
            "WORKING_DIRECTORY": str(self.root),
        }
        with mock.patch.dict(os.environ, env, clear=True):
            self.config, _ = BridgeConfig.from_env(self.root)
        sessions = SessionStore(self.config.sessions_file)
        workspaces = WorkspaceStore(self.config.workspaces_file)
        self.invoker = EchoInvoker()
        self.relay = SessionRelay(
            sessions,
            workspaces,
            self.invoker,
            default_workspace=self.config.working_directory,
            session_prefix=self.config.session_prefix,
        )
        self.telegram = FakeTelegram()
        self.service = BridgeService(self.config, relay=self.relay, telegram=self.telegram)

    def tearDown(self) -> None:
        self._td.cleanup()

    async def test_text_is_relayed_and_answered(self) -> None:
        await self.service.handle_message(_message("hallo"))
        self.assertEqual(self.invoker.queries, ["hallo"])
        self.assertEqual(self.telegram.sent, [(42, "echo: hallo", "Markdown")])

    async def test_markdown_rejection_falls_back_to_plain_text(self) -> None:
        self.service.telegram = FakeTelegram(reject_markdown=True)
        await self.service.handle_message(_message("x_y*z"))
        self.assertEqual(self.service.telegram.sent, [(42, "echo: x_y*z", None)])

    async def test_long_reply_is_split(self) -> None:
        self.service.config.max_message_chars = 100
        self.invoker.reply = "z" * 250
        await self.service.handle_message(_message("long"))
        self.assertEqual([len(text) for text in self.telegram.texts()], [100, 100, 50])

    async def test_unknown_user_is_denied(self) -> None:
        await self.service.handle_message(_message("hallo", user_id=99))
        self.assertEqual(self.telegram.texts(), [TEXT_DENIED])
        self.assertEqual(self.invoker.queries, [])

    async def test_unknown_user_commands_are_ignored_except_start(self) -> None:
        await self.service.handle_message(_message("/status", user_id=99))
        self.assertEqual(self.telegram.sent, [])
        await self.service.handle_message(_message("/start", user_id=99))
        self.assertEqual(self.telegram.texts(), [TEXT_DENIED])

    async def test_busy_conversation_gets_wait_notice(self) -> None:
        self.relay.gate.try_acquire(42)
        await self.service.handle_message(_message("second"))
        self.assertEqual(self.telegram.texts(), [TEXT_BUSY])
        self.assertEqual(self.invoker.queries, [])

    async def test_setrepo_rejects_invalid_path(self) -> None:
        await self.service.handle_message(_message(f"/setrepo {self.root / 'nope'}"))
        self.assertEqual(len(self.telegram.sent), 1)
        self.assertIn("Invalid path", self.telegram.texts()[0])
        self.assertIsNone(self.relay.workspace_info(conversation_from_message(_message())))

    async def test_setrepo_then_text_runs_in_repo(self) -> None:
        await self.service.handle_message(_message(f"/setrepo {self.repo}"))
        self.assertIn(str(self.repo), self.telegram.texts()[0])
        await self.service.handle_message(_message("/repo"))
        self.assertIn(str(self.repo), self.telegram.texts()[1])

        status_before = self.relay.status(conversation_from_message(_message()))
        self.assertEqual(status_before.workspace, str(self.repo))

        await self.service.handle_message(_message("/clearrepo"))
        status_after = self.relay.status(conversation_from_message(_message()))
        self.assertEqual(status_after.workspace, str(self.root))

    async def test_ls_lists_workspace(self) -> None:
        (self.root / "notes.txt").write_text("n", encoding="utf-8")
        await self.service.handle_message(_message("/ls"))
        listing = self.telegram.texts()[0]
        self.assertIn("📁 `repo`", listing)
        self.assertIn("📄 `notes.txt`", listing)

    async def test_reset_and_status(self) -> None:
        await self.service.handle_message(_message("hallo"))
        await self.service.handle_message(_message("/reset"))
        await self.service.handle_message(_message("/status"))
        reset_text, status_text = self.telegram.texts()[1:]
        self.assertIn("Neue Session gestartet", reset_text)
        self.assertIn("telegram-42-", status_text)
        self.assertIn("private", status_text)

    async def test_audio_file_gets_hint(self) -> None:
        await self.service.handle_message(_message(audio={"file_id": "a1"}))
        self.assertEqual(self.telegram.texts(), [TEXT_AUDIO_HINT])

    async def test_voice_without_transcriber_is_disabled(self) -> None:
        await self.service.handle_message(_message(voice={"file_id": "v1"}))
        self.assertEqual(self.telegram.texts(), [TEXT_VOICE_DISABLED])

    async def test_voice_is_transcribed_and_relayed(self) -> None:
        transcriber = FakeTranscriber()
        self.service.transcriber = transcriber
        await self.service.handle_message(_message(voice={"file_id": "v1"}))
        self.assertEqual(transcriber.blobs, [b"OggS"])
        self.assertEqual(self.invoker.queries, ["Zeig mir die Dateien."])
        self.assertEqual(len(self.telegram.edited), 1)
        self.assertIn("Zeig mir die Dateien.", self.telegram.edited[0][2])
        self.assertEqual(self.telegram.deleted, [(42, 1)])
        self.assertEqual(self.telegram.texts()[-1], "echo: Zeig mir die Dateien.")

    async def test_failed_transcription_removes_status_message(self) -> None:
        transcriber = FakeTranscriber()
        transcriber.failure = TranscriptionError("HTTP 500")
        self.service.transcriber = transcriber
        await self.service.handle_message(_message(voice={"file_id": "v1"}))
        self.assertEqual(self.invoker.queries, [])
        self.assertEqual(self.telegram.deleted, [(42, 1)])
        self.assertIn("Transcription failed", self.telegram.texts()[-1])
        self.assertFalse(self.relay.gate.is_busy(42))

    async def test_failed_invocation_after_voice_removes_status_message(self) -> None:
        self.service.transcriber = FakeTranscriber()
        self.invoker.failure = ExternalProcessError(2, "quota exceeded")
        await self.service.handle_message(_message(voice={"file_id": "v1"}))
        self.assertEqual(self.invoker.queries, ["Zeig mir die Dateien."])
        self.assertEqual(self.telegram.deleted, [(42, 1)])
        self.assertIn("quota exceeded", self.telegram.texts()[-1])

    async def test_update_failures_are_contained(self) -> None:
        with mock.patch.object(self.service, "handle_message", side_effect=RuntimeError("boom")):
            await self.service.handle_update({"update_id": 5, "message": _message("x")})
        await self.service.handle_update({"update_id": 6})


if __name__ == "__main__":
    unittest.main()
