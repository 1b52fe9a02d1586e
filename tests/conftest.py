"""
Shared test configuration and fixtures.

Provides an in-memory backend that stands in for LiveSessionApi. It records
every call (name, args, kwargs) and keeps just enough presenter state (the
session module list) for queue tests to observe server-side effects.

Per-method behaviour is configured through two dicts:
- ``responses[name]``: value returned, or a callable invoked with the call args
- ``errors[name]``: exception raised instead (a list raises them in turn)
"""

import itertools
import logging
from dataclasses import replace
from typing import Any

import pytest

from live_session.api.types import (
    EmailCodeRequestResult,
    EntryMode,
    JoinResult,
    LikeResult,
    Participant,
    ParticipantModules,
    ParticipantRosterSnapshot,
    QuestionThread,
    SessionModule,
    SessionSnapshot,
    TimerState,
    WorkspaceModule,
)
from live_session.config import LiveSessionConfig
from live_session.credentials import MemoryCredentialStore
from live_session.exceptions import ApiError

logger = logging.getLogger(__name__)


class FakeLiveSessionApi:
    """
    Recording fake for the backend client.

    Presenter module endpoints operate on ``session_modules`` so that a
    refetch after a mutation sees the mutation, like the real backend.
    """

    def __init__(self, user_token: str | None = "user-token"):
        self.user_token = user_token
        self.calls: list[tuple[str, tuple, dict]] = []
        self.responses: dict[str, Any] = {}
        self.errors: dict[str, Any] = {}
        self.session_modules: list[SessionModule] = []
        self._ids = itertools.count(100)

    def _call(self, name: str, *args: Any, **kwargs: Any) -> Any:
        self.calls.append((name, args, kwargs))
        error = self.errors.get(name)
        if isinstance(error, list):
            error = error.pop(0) if error else None
        if error is not None:
            raise error
        response = self.responses.get(name)
        if callable(response):
            return response(*args, **kwargs)
        return response

    def called(self, name: str) -> list[tuple[tuple, dict]]:
        """Args/kwargs of every call to ``name``, in order."""
        return [(args, kwargs) for call, args, kwargs in self.calls if call == name]

    # Join negotiation

    async def get_session_by_passcode(self, code, token=None) -> SessionSnapshot:
        return self._call("get_session_by_passcode", code, token=token)

    async def join_anonymous(self, code, display_name=None, fingerprint=None) -> JoinResult:
        return self._call(
            "join_anonymous", code, display_name=display_name, fingerprint=fingerprint
        )

    async def join_registered(self, code) -> JoinResult:
        return self._call("join_registered", code)

    async def join_guest(self, code, guest_token, fingerprint=None) -> JoinResult:
        return self._call("join_guest", code, guest_token, fingerprint=fingerprint)

    async def request_email_code(self, code, email) -> EmailCodeRequestResult:
        result = self._call("request_email_code", code, email)
        return result or EmailCodeRequestResult(verification_code_sent=True)

    async def verify_email_code(self, code, email, verification_code, display_name=None):
        return self._call("verify_email_code", code, email, verification_code, display_name)

    async def send_heartbeat(self, code, token) -> None:
        self._call("send_heartbeat", code, token)

    # Participant view

    async def get_participant_modules(self, code, token) -> ParticipantModules:
        return self._call("get_participant_modules", code, token) or ParticipantModules()

    async def get_participants_by_passcode(self, code, token) -> ParticipantRosterSnapshot:
        result = self._call("get_participants_by_passcode", code, token)
        return result or ParticipantRosterSnapshot()

    async def rename_self(self, code, token, display_name) -> Participant:
        return self._call("rename_self", code, token, display_name)

    async def get_question_messages(self, code, module_id, token, limit=200, offset=0):
        result = self._call("get_question_messages", code, module_id, token, limit=limit)
        return result or QuestionThread()

    async def create_question_message(
        self, code, module_id, token, content, parent_id=None, is_anonymous=False
    ):
        return self._call(
            "create_question_message",
            code,
            module_id,
            token,
            content,
            parent_id=parent_id,
            is_anonymous=is_anonymous,
        )

    async def like_question_message(self, code, module_id, message_id, token) -> LikeResult:
        return self._call("like_question_message", code, module_id, message_id, token)

    async def get_timer_state(self, code, module_id) -> TimerState:
        return self._call("get_timer_state", code, module_id) or TimerState()

    # Presenter control surface

    async def list_session_modules(self, session_id) -> list[SessionModule]:
        self._call("list_session_modules", session_id)
        return [replace(m) for m in self.session_modules]

    async def create_session_module(self, session_id, workspace_module_id):
        self._call("create_session_module", session_id, workspace_module_id)
        module = SessionModule(
            id=str(next(self._ids)),
            module_id=workspace_module_id,
            order=len(self.session_modules),
            is_active=False,
            type="questions",
            name=f"Module {workspace_module_id}",
        )
        self.session_modules.append(module)
        return replace(module)

    async def activate_session_module(self, session_id, module_id) -> None:
        self._call("activate_session_module", session_id, module_id)
        self.session_modules = [
            replace(m, is_active=m.id == module_id) for m in self.session_modules
        ]

    async def deactivate_active_module(self, session_id) -> None:
        self._call("deactivate_active_module", session_id)
        self.session_modules = [replace(m, is_active=False) for m in self.session_modules]

    async def delete_session_module(self, session_id, module_id) -> None:
        self._call("delete_session_module", session_id, module_id)
        self.session_modules = [m for m in self.session_modules if m.id != module_id]

    async def list_workspace_modules(self, workspace_id) -> list[WorkspaceModule]:
        return self._call("list_workspace_modules", workspace_id) or []

    async def get_session_participants(self, session_id) -> ParticipantRosterSnapshot:
        result = self._call("get_session_participants", session_id)
        return result or ParticipantRosterSnapshot()

    async def get_question_messages_lecturer(self, session_id, module_id, limit=200, offset=0):
        result = self._call("get_question_messages_lecturer", session_id, module_id)
        return result or QuestionThread()

    async def patch_question_message(self, session_id, module_id, message_id, **changes):
        return self._call("patch_question_message", session_id, module_id, message_id, **changes)

    async def timer_action(self, session_id, module_id, action, remaining_seconds=None):
        result = self._call(
            "timer_action", session_id, module_id, action, remaining_seconds=remaining_seconds
        )
        return result or TimerState()


def make_snapshot(
    entry_mode: EntryMode = EntryMode.ANONYMOUS,
    is_started: bool = True,
    **overrides: Any,
) -> SessionSnapshot:
    """Session snapshot with sensible defaults."""
    values: dict[str, Any] = {
        "id": 42,
        "name": "Weekly lecture",
        "entry_mode": entry_mode,
        "is_started": is_started,
    }
    values.update(overrides)
    return SessionSnapshot(**values)


def make_module(
    module_id: str, is_active: bool = False, order: int = 0, module_type: str = "questions"
) -> SessionModule:
    return SessionModule(
        id=module_id,
        module_id=int(module_id) if module_id.isdigit() else 0,
        order=order,
        is_active=is_active,
        type=module_type,
        name=f"Module {module_id}",
    )


def throttled(headers: dict | None = None, body: Any = None) -> ApiError:
    """A 429 response as raised by the client."""
    return ApiError(429, body=body, headers=headers or {}, method="POST", url="/messages")


@pytest.fixture
def api() -> FakeLiveSessionApi:
    return FakeLiveSessionApi()


@pytest.fixture
def store() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
def config() -> LiveSessionConfig:
    """Config with long intervals: only the immediate first fetch runs in a test."""
    return LiveSessionConfig(
        module_poll_interval=60,
        participant_poll_interval=60,
        roster_poll_interval=60,
        questions_poll_interval=60,
        presenter_questions_poll_interval=60,
        timer_poll_interval=60,
        heartbeat_visible_interval=60,
        heartbeat_hidden_interval=120,
    )
