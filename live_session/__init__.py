"""
Live Session

Client-side orchestration core for live audience sessions: joining a session
by code, keeping a presenter's module board consistent, and the per-module
live views (questions, timer, participants).

Provides:
- Join negotiation across anonymous, registered, email-code and SSO sessions
- Silent resume from stored participant/guest tokens
- Module queue orchestration with drag-and-drop resolution
- Polling views with initial-load / background-refresh semantics
- Throttling-aware submission cooldowns
- Visibility-aware heartbeats

Usage:

    >>> from live_session import JoinNegotiator, JoinedSession, LiveSessionApi
    >>> from live_session import FileCredentialStore, LiveSessionConfig
    >>> config = LiveSessionConfig.load()
    >>> store = FileCredentialStore(config.credentials_path)
    >>> async with LiveSessionApi.from_config(config) as api:
    ...     negotiator = JoinNegotiator(api, store, "ABC123", config=config)
    ...     state = await negotiator.load_session()
    ...     if isinstance(state, SessionInfo):
    ...         state = await negotiator.join_anonymous("Ada")
    ...
    ...     async with JoinedSession(api, "ABC123", state, store, config=config) as session:
    ...         view = session.view_for(session.active_module)

Presenter side:

    from live_session.modules import ModuleQueue, DragSource, DropTarget, DropZone

    board = ModuleQueue(LiveSessionApi(url, user_token=token), session_id=42)
    await board.load_library(workspace_id=7)
    await board.refresh()
    await board.handle_drop(DragSource.library(5), DropTarget(zone=DropZone.ACTIVE))
"""

# Backend collaborator
from .api import (
    EntryMode,
    LiveSessionApi,
    ModuleType,
    ParticipantModules,
    QuestionMessage,
    QuestionsSettings,
    SessionModule,
    SessionSnapshot,
    TimerState,
    WorkspaceModule,
    parse_backend_error,
)

# Configuration
from .config import LiveSessionConfig

# Cooldowns
from .cooldown import CooldownWindow, extract_cooldown_seconds

# Credentials
from .credentials import (
    CredentialStore,
    FileCredentialStore,
    MemoryCredentialStore,
    TokenKind,
    resolve_credential,
)

# Exceptions
from .exceptions import (
    ApiError,
    AuthenticationRequiredError,
    ConfigurationError,
    EntryModeUnavailableError,
    LiveSessionError,
    ModuleNotFoundInSessionError,
    QueueFullError,
    RequestFailedError,
    UnsupportedModuleError,
    ValidationError,
    error_message,
)

# Heartbeat
from .heartbeat import HeartbeatScheduler, heartbeat_for

# Join negotiation
from .join import (
    EmailRequest,
    Failed,
    Joined,
    JoinNegotiator,
    JoinState,
    Loading,
    SessionInfo,
    transition,
)

# Live views
from .live import (
    JoinedSession,
    ParticipantRoster,
    QuestionBoard,
    QuestionsView,
    TimerControls,
    TimerStatus,
    TimerView,
)

# Logging
from .logging_utils import configure_structured_logging, get_session_logger

# Module board
from .modules import DragSource, DropTarget, DropZone, ModuleQueue, resolve_drop

# Polling
from .polling import Poller

__all__ = [
    # Backend collaborator
    "LiveSessionApi",
    "parse_backend_error",
    "EntryMode",
    "ModuleType",
    "SessionSnapshot",
    "SessionModule",
    "WorkspaceModule",
    "ParticipantModules",
    "QuestionMessage",
    "QuestionsSettings",
    "TimerState",
    # Configuration
    "LiveSessionConfig",
    # Cooldowns
    "CooldownWindow",
    "extract_cooldown_seconds",
    # Credentials
    "CredentialStore",
    "FileCredentialStore",
    "MemoryCredentialStore",
    "TokenKind",
    "resolve_credential",
    # Exceptions
    "LiveSessionError",
    "ApiError",
    "RequestFailedError",
    "AuthenticationRequiredError",
    "EntryModeUnavailableError",
    "UnsupportedModuleError",
    "QueueFullError",
    "ModuleNotFoundInSessionError",
    "ConfigurationError",
    "ValidationError",
    "error_message",
    # Heartbeat
    "HeartbeatScheduler",
    "heartbeat_for",
    # Join negotiation
    "JoinNegotiator",
    "JoinState",
    "Loading",
    "SessionInfo",
    "EmailRequest",
    "Joined",
    "Failed",
    "transition",
    # Live views
    "JoinedSession",
    "QuestionsView",
    "QuestionBoard",
    "TimerView",
    "TimerControls",
    "TimerStatus",
    "ParticipantRoster",
    # Logging
    "configure_structured_logging",
    "get_session_logger",
    # Module board
    "ModuleQueue",
    "DragSource",
    "DropTarget",
    "DropZone",
    "resolve_drop",
    # Polling
    "Poller",
]

__version__ = "0.1.0"
