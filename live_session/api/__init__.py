"""
Backend collaborator.

REST client, wire types and the shared error-shape parser.
"""

from ..exceptions import parse_backend_error
from .client import LiveSessionApi
from .types import (
    EmailCodeRequestResult,
    EntryMode,
    GuestToken,
    JoinResult,
    LikeResult,
    ModuleType,
    Participant,
    ParticipantModules,
    ParticipantRosterSnapshot,
    QuestionMessage,
    QuestionsSettings,
    QuestionThread,
    SessionModule,
    SessionSnapshot,
    TimerState,
    WorkspaceModule,
)

__all__ = [
    "LiveSessionApi",
    "parse_backend_error",
    # Types
    "EntryMode",
    "ModuleType",
    "SessionSnapshot",
    "JoinResult",
    "EmailCodeRequestResult",
    "GuestToken",
    "SessionModule",
    "WorkspaceModule",
    "ParticipantModules",
    "QuestionMessage",
    "QuestionsSettings",
    "QuestionThread",
    "LikeResult",
    "TimerState",
    "Participant",
    "ParticipantRosterSnapshot",
]
