"""
Per-module live views and the joined participant session.
"""

from .participants import ParticipantRoster
from .questions import (
    QuestionBoard,
    QuestionsView,
    flatten_questions,
    reorder_moves,
    sort_questions,
)
from .session import JoinedSession
from .timer import (
    TimerControls,
    TimerStatus,
    TimerView,
    clamp_duration,
    configured_seconds,
    format_duration,
)

__all__ = [
    "JoinedSession",
    "QuestionsView",
    "QuestionBoard",
    "sort_questions",
    "flatten_questions",
    "reorder_moves",
    "TimerView",
    "TimerControls",
    "TimerStatus",
    "format_duration",
    "clamp_duration",
    "configured_seconds",
    "ParticipantRoster",
]
