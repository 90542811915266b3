"""Request orchestration: admission, key derivation, session lookup, invocation."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Optional

from loguru import logger

from sessionbridge.core.admission import AdmissionGate
from sessionbridge.core.errors import BridgeError, ExternalProcessError, InvocationTimeoutError, PersistenceError
from sessionbridge.core.identity import derive_session_key
from sessionbridge.core.invoker import ProcessInvoker
from sessionbridge.core.session_store import SessionRecord, SessionStore
from sessionbridge.core.utils import compact_prompt_text
from sessionbridge.core.workspace_store import WorkspaceRecord, WorkspaceStore

STATUS_OK = "ok"
STATUS_BUSY = "busy"
STATUS_ERROR = "error"


@dataclass(frozen=True)
class ConversationContext:
    conversation_id: int | str
    is_group: bool = False


@dataclass
class RelayOutcome:
    status: str
    session_key: str = ""
    text: str = ""
    error: Optional[BridgeError] = None
    transcript: str = ""
    warnings: list[PersistenceError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK

    @property
    def busy(self) -> bool:
        return self.status == STATUS_BUSY


@dataclass(frozen=True)
class SessionResetResult:
    session_key: str
    handle: str
    previous_handle: Optional[str]


@dataclass(frozen=True)
class StatusReport:
    conversation_id: int | str
    is_group: bool
    session_key: str
    session: Optional[SessionRecord]
    workspace: str
    workspace_record: Optional[WorkspaceRecord]
    model: str


class SessionRelay:
    def __init__(
        self,
        sessions: SessionStore,
        workspaces: WorkspaceStore,
        invoker: ProcessInvoker,
        gate: AdmissionGate | None = None,
        *,
        default_workspace: str | Path,
        session_prefix: str,
    ) -> None:
        self.sessions = sessions
        self.workspaces = workspaces
        self.invoker = invoker
        self.gate = gate or AdmissionGate()
        self.default_workspace = str(default_workspace)
        self.session_prefix = session_prefix

    def workspace_for(self, conversation: ConversationContext) -> str:
        return self.workspaces.get(conversation.conversation_id, self.default_workspace)

    def session_key_for(self, conversation: ConversationContext) -> str:
        return derive_session_key(
            conversation.conversation_id,
            conversation.is_group,
            self.workspace_for(conversation),
            self.session_prefix,
        )

    def drain_warnings(self) -> list[PersistenceError]:
        warnings: list[PersistenceError] = []
        for store in (self.sessions, self.workspaces):
            warning = store.take_durability_warning()
            if warning is not None:
                warnings.append(warning)
        return warnings

    async def handle_text(
        self,
        conversation: ConversationContext,
        text: str,
        model_override: Optional[str] = None,
    ) -> RelayOutcome:
        with self.gate.slot(conversation.conversation_id) as acquired:
            if not acquired:
                return RelayOutcome(status=STATUS_BUSY)
            return await self._relay(conversation, text, model_override)

    async def handle_voice(
        self,
        conversation: ConversationContext,
        transcribe: Callable[[], Awaitable[str]],
        model_override: Optional[str] = None,
    ) -> RelayOutcome:
        """Like ``handle_text`` but the slot also covers the transcription step."""
        cid = conversation.conversation_id
        with self.gate.slot(cid) as acquired:
            if not acquired:
                return RelayOutcome(status=STATUS_BUSY)
            try:
                transcript = await transcribe()
            except BridgeError as exc:
                logger.warning(f"transcription_failed conversation={cid}: {exc}")
                return RelayOutcome(status=STATUS_ERROR, error=exc)
            outcome = await self._relay(conversation, transcript, model_override)
            outcome.transcript = transcript
            return outcome

    async def _relay(
        self,
        conversation: ConversationContext,
        text: str,
        model_override: Optional[str],
    ) -> RelayOutcome:
        session_key = self.session_key_for(conversation)
        workspace = self.workspace_for(conversation)
        handle = self.sessions.get_or_create(session_key)
        record = self.sessions.info(session_key)
        resume = record.started if record is not None else True
        logger.info(
            f"relay_request conversation={conversation.conversation_id} key={session_key} "
            f"cwd={workspace} text={compact_prompt_text(text)}"
        )
        try:
            reply = await self.invoker.invoke(
                handle,
                text,
                workspace,
                model_override,
                resume=resume,
            )
        except (ExternalProcessError, InvocationTimeoutError) as exc:
            # Any process that ran has registered the handle with the tool.
            self.sessions.mark_used(session_key, handle)
            return self._failed(session_key, exc)
        except BridgeError as exc:
            return self._failed(session_key, exc)
        self.sessions.mark_used(session_key, handle)
        return RelayOutcome(
            status=STATUS_OK,
            session_key=session_key,
            text=reply,
            warnings=self.drain_warnings(),
        )

    def _failed(self, session_key: str, error: BridgeError) -> RelayOutcome:
        return RelayOutcome(
            status=STATUS_ERROR,
            session_key=session_key,
            error=error,
            warnings=self.drain_warnings(),
        )

    def set_workspace(self, conversation: ConversationContext, path: str | Path) -> WorkspaceRecord:
        return self.workspaces.set(conversation.conversation_id, path)

    def clear_workspace(self, conversation: ConversationContext) -> bool:
        return self.workspaces.remove(conversation.conversation_id)

    def workspace_info(self, conversation: ConversationContext) -> WorkspaceRecord | None:
        return self.workspaces.info(conversation.conversation_id)

    def reset_session(self, conversation: ConversationContext) -> SessionResetResult:
        session_key = self.session_key_for(conversation)
        previous = self.sessions.info(session_key)
        handle = self.sessions.reset(session_key)
        return SessionResetResult(
            session_key=session_key,
            handle=handle,
            previous_handle=previous.handle if previous else None,
        )

    def status(self, conversation: ConversationContext) -> StatusReport:
        session_key = self.session_key_for(conversation)
        return StatusReport(
            conversation_id=conversation.conversation_id,
            is_group=conversation.is_group,
            session_key=session_key,
            session=self.sessions.info(session_key),
            workspace=self.workspace_for(conversation),
            workspace_record=self.workspace_info(conversation),
            model=self.invoker.resolve_model(),
        )


__all__ = [
    "ConversationContext",
    "RelayOutcome",
    "STATUS_BUSY",
    "STATUS_ERROR",
    "STATUS_OK",
    "SessionRelay",
    "SessionResetResult",
    "StatusReport",
]
