"""
Join negotiation states and events.

States form a tagged union; ``Joined`` is terminal. Each actionable state
(``SessionInfo``, ``EmailRequest``) carries the inline error of the last
rejected attempt and whether an attempt is in flight.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..api.types import EntryMode, SessionSnapshot

SSO_UNAVAILABLE_MESSAGE = "SSO authentication is not yet implemented"


@dataclass(frozen=True)
class Loading:
    kind: str = "loading"


@dataclass(frozen=True)
class SessionInfo:
    """Session looked up; waiting for the participant (or not started yet)."""

    snapshot: SessionSnapshot
    error: str | None = None
    is_busy: bool = False
    login_required: bool = False
    kind: str = "session_info"

    @property
    def available(self) -> bool:
        return self.snapshot.available

    @property
    def notice(self) -> str | None:
        """Static notice for sessions that cannot be joined from here."""
        if not self.snapshot.available:
            return SSO_UNAVAILABLE_MESSAGE
        return None


@dataclass(frozen=True)
class EmailRequest:
    """Verification code sent; waiting for the participant to enter it.

    ``dev_code`` is set only when the backend echoes the code because
    outbound mail is disabled.
    """

    snapshot: SessionSnapshot
    email: str
    dev_code: str | None = None
    error: str | None = None
    is_busy: bool = False
    kind: str = "email_request"


@dataclass(frozen=True)
class Joined:
    session_id: int
    participant_id: int
    entry_mode: EntryMode
    display_name: str | None = None
    kind: str = "joined"


@dataclass(frozen=True)
class Failed:
    """The session cannot be used at all (unknown code, load failure)."""

    message: str
    kind: str = "error"


JoinState = Loading | SessionInfo | EmailRequest | Joined | Failed

ACTIONABLE_STATES = (SessionInfo, EmailRequest)


# Events


@dataclass(frozen=True)
class SessionLoaded:
    snapshot: SessionSnapshot


@dataclass(frozen=True)
class LoadFailed:
    message: str


@dataclass(frozen=True)
class JoinStarted:
    pass


@dataclass(frozen=True)
class JoinSucceeded:
    session_id: int
    participant_id: int
    entry_mode: EntryMode
    display_name: str | None = None


@dataclass(frozen=True)
class JoinRejected:
    message: str


@dataclass(frozen=True)
class EmailCodeSent:
    email: str
    dev_code: str | None = None


@dataclass(frozen=True)
class LoginRequired:
    return_path: str


JoinEvent = (
    SessionLoaded
    | LoadFailed
    | JoinStarted
    | JoinSucceeded
    | JoinRejected
    | EmailCodeSent
    | LoginRequired
)
