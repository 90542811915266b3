"""Telegram bridge service: polling, command dispatch and replies."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional

from loguru import logger

from sessionbridge.core.admission import AdmissionGate
from sessionbridge.core.config import BridgeConfig
from sessionbridge.core.errors import InvalidPathError, TelegramApiError
from sessionbridge.core.invoker import InvokerEnvPolicy, ProcessInvoker
from sessionbridge.core.relay import ConversationContext, RelayOutcome, SessionRelay
from sessionbridge.core.session_store import SessionStore
from sessionbridge.core.telegram import TelegramClient
from sessionbridge.core.transcription import Transcriber
from sessionbridge.core.utils import split_message
from sessionbridge.core.workspace_store import WorkspaceStore

HELP_TEXT = (
    "🤖 *Claude Code Telegram Bot*\n\n"
    "Ich bin deine Brücke zu Claude Code!\n\n"
    "*Nachrichten:*\n"
    "• Textnachricht → Claude Code antwortet\n"
    "• Sprachnachricht → Transkription + Claude\n\n"
    "*Befehle:*\n"
    "• `/help` - Diese Hilfe anzeigen\n"
    "• `/setrepo /pfad` - Repo für diesen Chat setzen\n"
    "• `/repo` - Aktuelles Repo anzeigen\n"
    "• `/ls` - Dateien im Repo auflisten\n"
    "• `/status` - Session-Info anzeigen\n"
    "• `/reset` - Neue Session starten\n"
    "• `/clearrepo` - Repo-Zuordnung entfernen"
)
TEXT_DENIED = "⛔ Du bist nicht berechtigt, diesen Bot zu verwenden."
TEXT_BUSY = "⏳ Bitte warte, bis die vorherige Anfrage abgeschlossen ist..."
TEXT_AUDIO_HINT = (
    "ℹ️ Bitte sende Sprachnachrichten direkt (halte den Mikrofon-Button gedrückt), nicht als Audio-Datei."
)
TEXT_VOICE_DISABLED = "ℹ️ Sprachnachrichten sind nicht aktiviert."
TEXT_DURABILITY_WARNING = "⚠️ Session-Daten konnten nicht gespeichert werden; sie gelten nur bis zum Neustart."
LS_MAX_ENTRIES = 50


def list_directory(path: str | Path, limit: int = LS_MAX_ENTRIES) -> tuple[list[str], list[str]]:
    """Return visible sub-directories and files of ``path``, each sorted and capped."""
    dirs: list[str] = []
    files: list[str] = []
    for entry in sorted(Path(path).iterdir(), key=lambda p: p.name.lower()):
        if entry.name.startswith("."):
            continue
        if entry.is_dir():
            dirs.append(entry.name)
        else:
            files.append(entry.name)
    return dirs[:limit], files[:limit]


def conversation_from_message(message: dict[str, Any]) -> ConversationContext:
    chat = message.get("chat") or {}
    return ConversationContext(
        conversation_id=chat.get("id"),
        is_group=str(chat.get("type") or "private") != "private",
    )


def parse_command(text: str) -> tuple[str, str]:
    head, _, rest = str(text or "").strip().partition(" ")
    command = head[1:].split("@", 1)[0].lower() if head.startswith("/") else ""
    return command, rest.strip()


class BridgeService:
    def __init__(
        self,
        config: BridgeConfig,
        *,
        relay: SessionRelay | None = None,
        telegram: TelegramClient | None = None,
        transcriber: Transcriber | None = None,
    ) -> None:
        self.config = config
        self.relay = relay or build_relay(config)
        self.telegram = telegram or TelegramClient(config.telegram_token, timeout_sec=config.telegram_api_timeout_sec)
        if transcriber is None and config.voice_enabled:
            transcriber = Transcriber(
                config.openai_api_key,
                language=config.transcription_language,
                refine=config.refine_transcripts,
            )
        self.transcriber = transcriber
        self.stop_requested = False
        self._tasks: set[asyncio.Task[None]] = set()
        self._offset = 0

    def is_user_allowed(self, user_id: object) -> bool:
        if not self.config.allowed_users:
            return True
        try:
            return int(user_id) in self.config.allowed_users
        except (TypeError, ValueError):
            return False

    def request_stop(self) -> None:
        self.stop_requested = True

    async def run(self) -> int:
        logger.info(
            f"bridge_start default_workspace={self.config.working_directory} "
            f"model={self.config.claude_model or 'auto'} "
            f"allowed_users={','.join(str(u) for u in self.config.allowed_users) or 'ALL'}"
        )
        backoff = 1.0
        try:
            while not self.stop_requested:
                try:
                    updates = await asyncio.to_thread(
                        self.telegram.get_updates, self._offset, self.config.poll_timeout_sec
                    )
                except TelegramApiError as exc:
                    logger.warning(f"poll_failed: {exc}")
                    await asyncio.sleep(backoff)
                    backoff = min(backoff * 2.0, 30.0)
                    continue
                backoff = 1.0
                for update in updates:
                    self._offset = max(self._offset, int(update.get("update_id", 0)) + 1)
                    task = asyncio.create_task(self.handle_update(update))
                    self._tasks.add(task)
                    task.add_done_callback(self._tasks.discard)
        finally:
            await self.shutdown()
        return 0

    async def shutdown(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        for store in (self.relay.sessions, self.relay.workspaces):
            store.close()
        logger.info("bridge_stopped")

    async def handle_update(self, update: dict[str, Any]) -> None:
        message = update.get("message")
        if not isinstance(message, dict):
            return
        try:
            await self.handle_message(message)
        except Exception:
            logger.exception(f"update_failed update_id={update.get('update_id')}")

    async def handle_message(self, message: dict[str, Any]) -> None:
        user_id = (message.get("from") or {}).get("id")
        conversation = conversation_from_message(message)
        allowed = self.is_user_allowed(user_id)
        text = message.get("text")

        if isinstance(text, str) and text.startswith("/"):
            command, args = parse_command(text)
            if not allowed:
                if command == "start":
                    await self._reply(conversation, TEXT_DENIED, markdown=False)
                return
            await self.handle_command(conversation, command, args)
            return

        if not allowed:
            if isinstance(text, str) or "voice" in message:
                await self._reply(conversation, TEXT_DENIED, markdown=False)
            return

        if isinstance(text, str):
            await self.handle_text(conversation, text)
        elif isinstance(message.get("voice"), dict):
            await self.handle_voice(conversation, message["voice"])
        elif "audio" in message:
            await self._reply(conversation, TEXT_AUDIO_HINT, markdown=False)

    async def handle_command(self, conversation: ConversationContext, command: str, args: str) -> None:
        handler = {
            "start": self._cmd_start,
            "help": self._cmd_help,
            "setrepo": self._cmd_setrepo,
            "repo": self._cmd_repo,
            "clearrepo": self._cmd_clearrepo,
            "ls": self._cmd_ls,
            "status": self._cmd_status,
            "reset": self._cmd_reset,
        }.get(command)
        if handler is None:
            return
        await handler(conversation, args)

    async def handle_text(self, conversation: ConversationContext, text: str) -> None:
        if self.relay.gate.is_busy(conversation.conversation_id):
            await self._reply(conversation, TEXT_BUSY, markdown=False)
            return
        async with self._typing(conversation):
            outcome = await self.relay.handle_text(conversation, text)
        await self._deliver(conversation, outcome)

    async def handle_voice(self, conversation: ConversationContext, voice: dict[str, Any]) -> None:
        if self.transcriber is None:
            await self._reply(conversation, TEXT_VOICE_DISABLED, markdown=False)
            return
        if self.relay.gate.is_busy(conversation.conversation_id):
            await self._reply(conversation, TEXT_BUSY, markdown=False)
            return
        status_message: dict[str, Any] = {}

        async def _transcribe() -> str:
            sent = await asyncio.to_thread(
                self.telegram.send_message,
                conversation.conversation_id,
                "🎤 Transkribiere Sprachnachricht...",
            )
            status_message.update(sent or {})
            file_info = await asyncio.to_thread(self.telegram.get_file, str(voice.get("file_id") or ""))
            audio = await asyncio.to_thread(self.telegram.download_file, str(file_info.get("file_path") or ""))
            _, refined = await asyncio.to_thread(self.transcriber.transcribe_bytes, audio)
            await self._edit_status(
                conversation,
                status_message,
                f"📝 *Verstanden:*\n{refined}\n\n⏳ Sende an Claude Code...",
            )
            return refined

        async with self._typing(conversation):
            outcome = await self.relay.handle_voice(conversation, _transcribe)
        # The reply or error message below replaces the status message.
        if status_message.get("message_id"):
            try:
                await asyncio.to_thread(
                    self.telegram.delete_message, conversation.conversation_id, status_message["message_id"]
                )
            except TelegramApiError as exc:
                logger.warning(f"status_delete_failed chat={conversation.conversation_id}: {exc}")
        await self._deliver(conversation, outcome)

    async def _deliver(self, conversation: ConversationContext, outcome: RelayOutcome) -> None:
        if outcome.busy:
            await self._reply(conversation, TEXT_BUSY, markdown=False)
            return
        if outcome.ok:
            await self._reply(conversation, outcome.text or "(keine Ausgabe)")
        else:
            await self._reply(conversation, f"❌ Fehler: {outcome.error}", markdown=False)
        if outcome.warnings:
            await self._reply(conversation, TEXT_DURABILITY_WARNING, markdown=False)

    async def _reply(self, conversation: ConversationContext, text: str, markdown: bool = True) -> None:
        chat_id = conversation.conversation_id
        for part in split_message(text, self.config.max_message_chars):
            if markdown:
                try:
                    await asyncio.to_thread(self.telegram.send_message, chat_id, part, "Markdown")
                    continue
                except TelegramApiError as exc:
                    logger.info(f"markdown_send_failed chat={chat_id}: {exc}")
            try:
                await asyncio.to_thread(self.telegram.send_message, chat_id, part)
            except TelegramApiError as exc:
                logger.warning(f"send_failed chat={chat_id}: {exc}")

    async def _edit_status(self, conversation: ConversationContext, status: dict[str, Any], text: str) -> None:
        message_id = status.get("message_id")
        if not message_id:
            return
        try:
            await asyncio.to_thread(
                self.telegram.edit_message_text, conversation.conversation_id, message_id, text, "Markdown"
            )
        except TelegramApiError as exc:
            logger.info(f"status_edit_failed chat={conversation.conversation_id}: {exc}")

    @asynccontextmanager
    async def _typing(self, conversation: ConversationContext) -> AsyncIterator[None]:
        async def _loop() -> None:
            while True:
                try:
                    await asyncio.to_thread(self.telegram.send_chat_action, conversation.conversation_id, "typing")
                except TelegramApiError:
                    pass
                await asyncio.sleep(self.config.typing_interval_sec)

        task = asyncio.create_task(_loop())
        try:
            yield
        finally:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _cmd_help(self, conversation: ConversationContext, _args: str) -> None:
        await self._reply(conversation, HELP_TEXT)

    async def _cmd_start(self, conversation: ConversationContext, _args: str) -> None:
        await self._reply(
            conversation,
            HELP_TEXT
            + f"\n\n*Aktuelles Repo:* `{self.relay.workspace_for(conversation)}`"
            + f"\n*Session:* `{self.relay.session_key_for(conversation)}`",
        )

    async def _cmd_setrepo(self, conversation: ConversationContext, args: str) -> None:
        if not args:
            await self._reply(
                conversation,
                "📂 *Repo setzen*\n\n"
                "Verwendung: `/setrepo /absoluter/pfad/zum/repo`\n\n"
                "Beispiel:\n`/setrepo /home/user/projects/my-app`",
            )
            return
        try:
            record = self.relay.set_workspace(conversation, args)
        except InvalidPathError as exc:
            await self._reply(
                conversation,
                f"❌ Fehler beim Setzen des Repos\n\n{exc}\n\n"
                "Stelle sicher, dass der Pfad existiert und ein Verzeichnis ist.",
                markdown=False,
            )
            return
        await self._reply(
            conversation,
            "✅ *Repo gesetzt!*\n\n"
            f"Dieser Chat arbeitet jetzt in:\n`{record.path}`\n\n"
            "Alle Claude Code Befehle werden in diesem Verzeichnis ausgeführt.",
        )
        await self._warn_if_not_durable(conversation)

    async def _cmd_repo(self, conversation: ConversationContext, _args: str) -> None:
        record = self.relay.workspace_info(conversation)
        if record is not None:
            await self._reply(
                conversation,
                "📂 *Aktuelles Repo*\n\n"
                f"Pfad: `{record.path}`\n"
                f"Gesetzt am: {record.set_at}\n\n"
                "Ändern mit: `/setrepo /neuer/pfad`",
            )
            return
        await self._reply(
            conversation,
            "📂 *Kein Repo gesetzt*\n\n"
            f"Dieser Chat verwendet das Standard-Verzeichnis:\n`{self.relay.default_workspace}`\n\n"
            "Setze ein Repo mit: `/setrepo /pfad/zum/repo`",
        )

    async def _cmd_clearrepo(self, conversation: ConversationContext, _args: str) -> None:
        self.relay.clear_workspace(conversation)
        await self._reply(
            conversation,
            "🗑️ *Repo-Zuordnung entfernt*\n\n"
            f"Dieser Chat verwendet jetzt wieder das Standard-Verzeichnis:\n`{self.relay.default_workspace}`",
        )
        await self._warn_if_not_durable(conversation)

    async def _cmd_ls(self, conversation: ConversationContext, _args: str) -> None:
        workspace = self.relay.workspace_for(conversation)
        try:
            dirs, files = list_directory(workspace)
        except OSError as exc:
            await self._reply(conversation, f"❌ Fehler: {exc}", markdown=False)
            return
        lines = [f"📂 *{workspace}*", ""]
        if dirs:
            lines.append("*Ordner:*")
            lines.extend(f"📁 `{name}`" for name in dirs)
            lines.append("")
        if files:
            lines.append("*Dateien:*")
            lines.extend(f"📄 `{name}`" for name in files)
        if not dirs and not files:
            lines.append("_(Verzeichnis ist leer)_")
        await self._reply(conversation, "\n".join(lines).rstrip())

    async def _cmd_status(self, conversation: ConversationContext, _args: str) -> None:
        report = self.relay.status(conversation)
        handle = report.session.handle[:8] + "..." if report.session else "-"
        await self._reply(
            conversation,
            "📊 *Status*\n\n"
            f"• Chat-Typ: `{'group' if report.is_group else 'private'}`\n"
            f"• Chat-ID: `{report.conversation_id}`\n"
            f"• Session: `{report.session_key}`\n"
            f"• UUID: `{handle}`\n"
            f"• Repo: `{report.workspace}`\n"
            f"• Model: `{report.model or 'auto'}`\n"
            f"• Voice Refinement: {'✅' if self.config.refine_transcripts else '❌'}",
        )

    async def _cmd_reset(self, conversation: ConversationContext, _args: str) -> None:
        result = self.relay.reset_session(conversation)
        await self._reply(
            conversation,
            "🔄 *Neue Session gestartet*\n\n"
            f"Session: `{result.session_key}`\n"
            f"Neue UUID: `{result.handle[:8]}...`\n\n"
            "Claude Code hat jetzt keine Erinnerung mehr an vorherige Nachrichten.",
        )
        await self._warn_if_not_durable(conversation)

    async def _warn_if_not_durable(self, conversation: ConversationContext) -> None:
        if self.relay.drain_warnings():
            await self._reply(conversation, TEXT_DURABILITY_WARNING, markdown=False)


def build_relay(config: BridgeConfig, gate: Optional[AdmissionGate] = None) -> SessionRelay:
    sessions = SessionStore(config.sessions_file)
    workspaces = WorkspaceStore(config.workspaces_file)
    sessions.load()
    workspaces.load()
    invoker = ProcessInvoker(
        config.claude_binary,
        default_model=config.claude_model,
        timeout_sec=config.invocation_timeout_sec,
        skip_permissions=config.skip_permissions,
        append_system_prompt=config.append_system_prompt,
        env_policy=InvokerEnvPolicy(config.anthropic_api_key),
    )
    return SessionRelay(
        sessions,
        workspaces,
        invoker,
        gate,
        default_workspace=config.working_directory,
        session_prefix=config.session_prefix,
    )


__all__ = ["BridgeService", "build_relay", "conversation_from_message", "list_directory", "parse_command"]
