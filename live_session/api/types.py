"""
Wire types for the live session backend.

Each dataclass mirrors one JSON shape returned by the backend and provides
``from_dict``/``to_dict``. Snapshots are replaced wholesale on every fetch;
nothing here is merged field by field.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class EntryMode(Enum):
    """How participants authenticate when joining a session."""

    ANONYMOUS = "anonymous"
    REGISTERED = "registered"
    SSO = "sso"
    EMAIL_CODE = "email_code"


class ModuleType(Enum):
    """Activity module types known to the backend."""

    QUESTIONS = "questions"
    POLL = "poll"
    QUIZ = "quiz"
    TIMER = "timer"

    @classmethod
    def coerce(cls, value: Any) -> ModuleType:
        """Map unknown values to QUESTIONS, as the backend default does."""
        try:
            return cls(value)
        except ValueError:
            return cls.QUESTIONS


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO 8601 timestamp; naive values are treated as UTC."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def epoch_ms(value: datetime | None) -> int:
    """Milliseconds since the epoch, 0 for missing timestamps."""
    if value is None:
        return 0
    return int(value.timestamp() * 1000)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class SessionSnapshot:
    """Session metadata returned by the passcode lookup."""

    id: int
    name: str
    entry_mode: EntryMode
    is_started: bool = False
    guest_authenticated: bool = False
    participant_authenticated: bool = False
    participant_id: int | None = None
    email_code_domains_whitelist: list[str] = field(default_factory=list)
    email: str | None = None
    display_name: str | None = None

    @property
    def available(self) -> bool:
        """False for entry modes this client cannot negotiate."""
        return self.entry_mode != EntryMode.SSO

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionSnapshot:
        return cls(
            id=int(data["id"]),
            name=data.get("name") or "",
            entry_mode=EntryMode(data.get("participant_entry_mode", "anonymous")),
            is_started=bool(data.get("is_started", False)),
            guest_authenticated=bool(data.get("guest_authenticated")),
            participant_authenticated=bool(data.get("participant_authenticated")),
            participant_id=data.get("participant_id"),
            email_code_domains_whitelist=list(data.get("email_code_domains_whitelist") or []),
            email=data.get("email"),
            display_name=data.get("display_name"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "participant_entry_mode": self.entry_mode.value,
            "is_started": self.is_started,
            "guest_authenticated": self.guest_authenticated,
            "participant_authenticated": self.participant_authenticated,
            "participant_id": self.participant_id,
            "email_code_domains_whitelist": list(self.email_code_domains_whitelist),
            "email": self.email,
            "display_name": self.display_name,
        }


@dataclass
class JoinResult:
    """Outcome of any join call.

    ``participant_token`` is only present for anonymous joins.
    """

    session_id: int
    participant_id: int
    display_name: str | None = None
    participant_token: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JoinResult:
        return cls(
            session_id=int(data["session_id"]),
            participant_id=int(data["participant_id"]),
            display_name=data.get("display_name"),
            participant_token=data.get("participant_token"),
        )


@dataclass
class EmailCodeRequestResult:
    """Response to an email code request.

    The backend echoes ``code`` only when outbound mail is disabled.
    """

    verification_code_sent: bool
    code: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EmailCodeRequestResult:
        return cls(
            verification_code_sent=bool(data.get("verification_code_sent", True)),
            code=data.get("code"),
        )


@dataclass
class GuestToken:
    """Guest credential issued by email code verification."""

    access_token: str
    email: str | None = None
    display_name: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GuestToken:
        return cls(
            access_token=data["access_token"],
            email=data.get("email"),
            display_name=data.get("display_name"),
        )


@dataclass
class WorkspaceModule:
    """Reusable library module that session modules are created from."""

    id: int
    type: str
    name: str
    config: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkspaceModule:
        return cls(
            id=int(data["id"]),
            type=str(data.get("module_type") or data.get("type") or ModuleType.QUESTIONS.value),
            name=data.get("name") or "Untitled module",
            config=dict(data.get("settings") or data.get("config") or {}),
        )


@dataclass
class SessionModule:
    """A module attached to a session.

    ``order`` is dense and zero-based among non-active modules only.
    """

    id: str
    module_id: int
    order: int
    is_active: bool
    type: str
    name: str
    config: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any], order: int = 0) -> SessionModule:
        settings = dict(data.get("settings") or {})
        return cls(
            id=str(data["id"]),
            module_id=int(settings.get("workspace_module_id") or 0),
            order=order,
            is_active=bool(data.get("is_active", False)),
            type=ModuleType.coerce(data.get("module_type")).value,
            name=data.get("name") or "Untitled module",
            config=settings,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "module_id": self.module_id,
            "order": self.order,
            "is_active": self.is_active,
            "type": self.type,
            "name": self.name,
            "config": dict(self.config),
        }


@dataclass
class ParticipantModules:
    """Module list as seen by a joined participant."""

    modules: list[SessionModule] = field(default_factory=list)
    active_module: SessionModule | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ParticipantModules:
        modules = [SessionModule.from_dict(m, i) for i, m in enumerate(data.get("modules") or [])]
        active = data.get("active_module")
        return cls(
            modules=modules,
            active_module=SessionModule.from_dict(active) if active else None,
        )


@dataclass
class QuestionsSettings:
    """Per-module settings for question boards."""

    likes_enabled: bool = True
    allow_participant_answers: bool = True
    allow_anonymous: bool = False
    max_length: int | None = None
    cooldown_enabled: bool = False
    cooldown_seconds: int | None = None
    max_questions_total: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuestionsSettings:
        return cls(
            likes_enabled=bool(data.get("likes_enabled", True)),
            allow_participant_answers=bool(data.get("allow_participant_answers", True)),
            allow_anonymous=bool(data.get("allow_anonymous", False)),
            max_length=data.get("max_length"),
            cooldown_enabled=bool(data.get("cooldown_enabled", False)),
            cooldown_seconds=data.get("cooldown_seconds"),
            max_questions_total=data.get("max_questions_total"),
        )


@dataclass
class QuestionMessage:
    """A question or reply on a question board."""

    id: int
    content: str
    parent_id: int | None = None
    likes_count: int = 0
    liked_by_me: bool = False
    is_answered: bool = False
    pinned_at: datetime | None = None
    created_at: datetime | None = None
    author_display_name: str | None = None
    children: list[QuestionMessage] = field(default_factory=list)

    @property
    def is_pinned(self) -> bool:
        return self.pinned_at is not None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuestionMessage:
        return cls(
            id=int(data["id"]),
            content=data.get("content") or "",
            parent_id=data.get("parent_id"),
            likes_count=int(data.get("likes_count") or 0),
            liked_by_me=bool(data.get("liked_by_me", False)),
            is_answered=bool(data.get("is_answered", False)),
            pinned_at=parse_timestamp(data.get("pinned_at")),
            created_at=parse_timestamp(data.get("created_at")),
            author_display_name=data.get("author_display_name"),
            children=[cls.from_dict(child) for child in data.get("children") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "parent_id": self.parent_id,
            "likes_count": self.likes_count,
            "liked_by_me": self.liked_by_me,
            "is_answered": self.is_answered,
            "pinned_at": _iso(self.pinned_at),
            "created_at": _iso(self.created_at),
            "author_display_name": self.author_display_name,
            "children": [child.to_dict() for child in self.children],
        }


@dataclass
class QuestionThread:
    """Messages plus the board settings, as returned by the list endpoint."""

    messages: list[QuestionMessage] = field(default_factory=list)
    settings: QuestionsSettings | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuestionThread:
        settings = data.get("settings")
        return cls(
            messages=[QuestionMessage.from_dict(m) for m in data.get("messages") or []],
            settings=QuestionsSettings.from_dict(settings) if settings else None,
        )


@dataclass
class LikeResult:
    likes_count: int
    liked_by_me: bool

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LikeResult:
        return cls(
            likes_count=int(data.get("likes_count") or 0),
            liked_by_me=bool(data.get("liked_by_me", False)),
        )


@dataclass
class TimerState:
    """Timer module state.

    While running, ``end_at`` is authoritative; while paused,
    ``remaining_seconds`` is.
    """

    is_paused: bool = False
    end_at: datetime | None = None
    remaining_seconds: int | None = None
    sound_notification_enabled: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TimerState:
        remaining = data.get("remaining_seconds")
        return cls(
            is_paused=bool(data.get("is_paused", False)),
            end_at=parse_timestamp(data.get("end_at")),
            remaining_seconds=int(remaining) if remaining is not None else None,
            sound_notification_enabled=bool(data.get("sound_notification_enabled", False)),
        )


@dataclass
class Participant:
    id: int
    display_name: str | None = None
    participant_type: str = "anonymous"
    is_active: bool = False
    guest_email: str | None = None
    is_banned: bool = False

    @property
    def label(self) -> str:
        """Short description of how the participant joined."""
        if self.participant_type == "guest_email":
            return f"Email guest · {self.guest_email}" if self.guest_email else "Email guest"
        if self.participant_type == "user":
            return "Registered user"
        if self.participant_type == "anonymous":
            return "Anonymous"
        return self.participant_type

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Participant:
        return cls(
            id=int(data["id"]),
            display_name=data.get("display_name"),
            participant_type=data.get("participant_type") or "anonymous",
            is_active=bool(data.get("is_active", False)),
            guest_email=data.get("guest_email"),
            is_banned=bool(data.get("is_banned", False)),
        )


@dataclass
class ParticipantRosterSnapshot:
    participants: list[Participant] = field(default_factory=list)
    total: int = 0
    active_count: int = 0
    max_participants: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ParticipantRosterSnapshot:
        participants = [Participant.from_dict(p) for p in data.get("participants") or []]
        active_count = data.get("active_count")
        if active_count is None:
            active_count = sum(1 for p in participants if p.is_active)
        total = data.get("total")
        return cls(
            participants=participants,
            total=int(total) if total is not None else len(participants),
            active_count=int(active_count),
            max_participants=data.get("max_participants"),
        )
