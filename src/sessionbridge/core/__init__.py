"""Session/process orchestration core."""

from sessionbridge.core.admission import AdmissionGate
from sessionbridge.core.identity import derive_session_key, workspace_fingerprint
from sessionbridge.core.invoker import ProcessInvoker
from sessionbridge.core.relay import ConversationContext, RelayOutcome, SessionRelay
from sessionbridge.core.session_store import SessionStore
from sessionbridge.core.workspace_store import WorkspaceStore

__all__ = [
    "AdmissionGate",
    "ConversationContext",
    "ProcessInvoker",
    "RelayOutcome",
    "SessionRelay",
    "SessionStore",
    "WorkspaceStore",
    "derive_session_key",
    "workspace_fingerprint",
]
