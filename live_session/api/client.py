"""
REST client for the live session backend.

Wraps an aiohttp client session with:
- Bearer token handling (explicit per call; never read from ambient storage)
- Uniform error mapping (ApiError for HTTP failures, RequestFailedError
  for transport failures and timeouts)
- One method per backend operation used by the orchestration layer
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from ..config import LiveSessionConfig
from ..exceptions import ApiError, AuthenticationRequiredError, RequestFailedError
from .types import (
    EmailCodeRequestResult,
    GuestToken,
    JoinResult,
    LikeResult,
    Participant,
    ParticipantModules,
    ParticipantRosterSnapshot,
    QuestionMessage,
    QuestionThread,
    SessionModule,
    SessionSnapshot,
    TimerState,
    WorkspaceModule,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class LiveSessionApi:
    """Async client for the live session REST backend.

    Participant-facing calls are addressed by session passcode and take the
    token authoritative for the caller's entry mode. Presenter calls are
    addressed by session id and use the user session token.

    Example:
        >>> async with LiveSessionApi("https://quiz.example.com/api/v1") as api:
        ...     snapshot = await api.get_session_by_passcode("ABC123")
    """

    def __init__(
        self,
        base_url: str,
        user_token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Backend base URL (including any /api/v1 prefix)
            user_token: Global user session token (registered users, presenters)
            timeout: Total per-request timeout in seconds
            session: Optional externally managed aiohttp session
        """
        self.base_url = base_url.rstrip("/")
        self.user_token = user_token
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_config(
        cls, config: LiveSessionConfig, user_token: str | None = None
    ) -> LiveSessionApi:
        """Client for the configured backend URL and request timeout."""
        return cls(config.base_url, user_token=user_token, timeout=config.request_timeout)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the underlying HTTP session if this client created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> LiveSessionApi:
        await self._get_session()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _require_user_token(self) -> str:
        if not self.user_token:
            raise AuthenticationRequiredError("registered", "user")
        return self.user_token

    async def _request(
        self,
        method: str,
        path: str,
        token: str | None = None,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Perform a request and decode the JSON body.

        Raises:
            ApiError: On any non-2xx response
            RequestFailedError: On transport failure or timeout
        """
        url = f"{self.base_url}{path}"
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        session = await self._get_session()
        try:
            async with session.request(
                method, url, headers=headers, json=json, params=params
            ) as response:
                body = await self._read_body(response)
                if response.status >= 400:
                    logger.debug(f"{method} {path} -> {response.status}")
                    raise ApiError(
                        response.status,
                        body=body,
                        headers=response.headers,
                        method=method,
                        url=path,
                    )
                return body
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"{method} {path} failed: {e!r}")
            raise RequestFailedError(f"{method} {path}", e) from e

    @staticmethod
    async def _read_body(response: aiohttp.ClientResponse) -> Any:
        if response.status == 204:
            return None
        text = await response.text()
        if not text:
            return None
        if response.content_type == "application/json":
            try:
                return await response.json(content_type=None)
            except ValueError:
                return text
        return text

    # =========================================================================
    # Join negotiation
    # =========================================================================

    async def get_session_by_passcode(
        self, code: str, token: str | None = None
    ) -> SessionSnapshot:
        """Look up a session by passcode.

        With a participant or guest token the response also reports whether
        that credential is already authenticated for the session.
        """
        data = await self._request("GET", f"/sessions/by-passcode/{code}", token=token)
        return SessionSnapshot.from_dict(data)

    async def join_anonymous(
        self, code: str, display_name: str | None = None, fingerprint: str | None = None
    ) -> JoinResult:
        payload: dict[str, Any] = {}
        if display_name:
            payload["display_name"] = display_name
        if fingerprint:
            payload["fingerprint"] = fingerprint
        data = await self._request(
            "POST", f"/sessions/by-passcode/{code}/join/anonymous", json=payload
        )
        return JoinResult.from_dict(data)

    async def join_registered(self, code: str) -> JoinResult:
        data = await self._request(
            "POST",
            f"/sessions/by-passcode/{code}/join/registered",
            token=self._require_user_token(),
        )
        return JoinResult.from_dict(data)

    async def join_guest(
        self, code: str, guest_token: str, fingerprint: str | None = None
    ) -> JoinResult:
        payload = {"fingerprint": fingerprint} if fingerprint else {}
        data = await self._request(
            "POST",
            f"/sessions/by-passcode/{code}/join/guest",
            token=guest_token,
            json=payload,
        )
        return JoinResult.from_dict(data)

    async def request_email_code(self, code: str, email: str) -> EmailCodeRequestResult:
        data = await self._request(
            "POST", f"/sessions/by-passcode/{code}/email-code/request", json={"email": email}
        )
        return EmailCodeRequestResult.from_dict(data or {})

    async def verify_email_code(
        self, code: str, email: str, verification_code: str, display_name: str | None = None
    ) -> GuestToken:
        payload: dict[str, Any] = {"email": email, "code": verification_code}
        if display_name:
            payload["display_name"] = display_name
        data = await self._request(
            "POST", f"/sessions/by-passcode/{code}/email-code/verify", json=payload
        )
        return GuestToken.from_dict(data)

    async def send_heartbeat(self, code: str, token: str) -> None:
        await self._request("POST", f"/sessions/by-passcode/{code}/heartbeat", token=token, json={})

    # =========================================================================
    # Participant view
    # =========================================================================

    async def get_participant_modules(self, code: str, token: str) -> ParticipantModules:
        data = await self._request("GET", f"/sessions/by-passcode/{code}/modules", token=token)
        return ParticipantModules.from_dict(data or {})

    async def get_participants_by_passcode(
        self, code: str, token: str
    ) -> ParticipantRosterSnapshot:
        data = await self._request(
            "GET", f"/sessions/by-passcode/{code}/participants", token=token
        )
        return ParticipantRosterSnapshot.from_dict(data or {})

    async def rename_self(self, code: str, token: str, display_name: str) -> Participant:
        data = await self._request(
            "PATCH",
            f"/sessions/by-passcode/{code}/participants/me",
            token=token,
            json={"display_name": display_name},
        )
        return Participant.from_dict(data)

    async def get_question_messages(
        self, code: str, module_id: str | int, token: str, limit: int = 200, offset: int = 0
    ) -> QuestionThread:
        data = await self._request(
            "GET",
            f"/sessions/by-passcode/{code}/modules/questions/{module_id}/messages",
            token=token,
            params={"limit": limit, "offset": offset},
        )
        return QuestionThread.from_dict(data or {})

    async def create_question_message(
        self,
        code: str,
        module_id: str | int,
        token: str,
        content: str,
        parent_id: int | None = None,
        is_anonymous: bool = False,
    ) -> QuestionMessage:
        payload: dict[str, Any] = {"content": content, "is_anonymous": is_anonymous}
        if parent_id is not None:
            payload["parent_id"] = parent_id
        data = await self._request(
            "POST",
            f"/sessions/by-passcode/{code}/modules/questions/{module_id}/messages",
            token=token,
            json=payload,
        )
        return QuestionMessage.from_dict(data)

    async def like_question_message(
        self, code: str, module_id: str | int, message_id: int, token: str
    ) -> LikeResult:
        base = f"/sessions/by-passcode/{code}/modules/questions/{module_id}"
        data = await self._request(
            "POST",
            f"{base}/messages/{message_id}/like",
            token=token,
            json={},
        )
        return LikeResult.from_dict(data or {})

    async def get_timer_state(self, code: str, module_id: str | int) -> TimerState:
        # Timer state is public within a session
        data = await self._request(
            "GET", f"/sessions/by-passcode/{code}/modules/timer/{module_id}/state"
        )
        return TimerState.from_dict(data or {})

    # =========================================================================
    # Presenter control surface
    # =========================================================================

    async def list_session_modules(self, session_id: int) -> list[SessionModule]:
        data = await self._request(
            "GET", f"/sessions/{session_id}/modules", token=self._require_user_token()
        )
        return [SessionModule.from_dict(m, i) for i, m in enumerate(data or [])]

    async def create_session_module(
        self, session_id: int, workspace_module_id: int
    ) -> SessionModule | None:
        data = await self._request(
            "POST",
            f"/sessions/{session_id}/modules",
            token=self._require_user_token(),
            json={"workspace_module_id": workspace_module_id},
        )
        if not data or not isinstance(data, dict) or not data.get("id"):
            return None
        return SessionModule.from_dict(data)

    async def activate_session_module(self, session_id: int, module_id: str) -> None:
        await self._request(
            "PATCH",
            f"/sessions/{session_id}/modules/{module_id}/activate",
            token=self._require_user_token(),
        )

    async def deactivate_active_module(self, session_id: int) -> None:
        await self._request(
            "POST",
            f"/sessions/{session_id}/modules/deactivate-active",
            token=self._require_user_token(),
        )

    async def delete_session_module(self, session_id: int, module_id: str) -> None:
        await self._request(
            "DELETE",
            f"/sessions/{session_id}/modules/{module_id}",
            token=self._require_user_token(),
            params={"hard": "true"},
        )

    async def list_workspace_modules(self, workspace_id: int) -> list[WorkspaceModule]:
        data = await self._request(
            "GET", f"/workspaces/{workspace_id}/modules", token=self._require_user_token()
        )
        return [WorkspaceModule.from_dict(m) for m in data or []]

    async def get_session_participants(self, session_id: int) -> ParticipantRosterSnapshot:
        data = await self._request(
            "GET", f"/sessions/{session_id}/participants", token=self._require_user_token()
        )
        return ParticipantRosterSnapshot.from_dict(data or {})

    async def get_question_messages_lecturer(
        self, session_id: int, module_id: str | int, limit: int = 200, offset: int = 0
    ) -> QuestionThread:
        data = await self._request(
            "GET",
            f"/sessions/{session_id}/modules/{module_id}/questions/messages",
            token=self._require_user_token(),
            params={"limit": limit, "offset": offset},
        )
        return QuestionThread.from_dict(data or {})

    async def patch_question_message(
        self, session_id: int, module_id: str | int, message_id: int, **changes: bool
    ) -> dict[str, Any]:
        """Presenter moderation: pin, unpin, is_answered or delete."""
        data = await self._request(
            "PATCH",
            f"/sessions/{session_id}/modules/{module_id}/questions/{message_id}",
            token=self._require_user_token(),
            json=changes,
        )
        return data or {}

    async def timer_action(
        self,
        session_id: int,
        module_id: str | int,
        action: str,
        remaining_seconds: int | None = None,
    ) -> TimerState:
        """Run a presenter timer action: start, pause, resume, reset or set."""
        if action not in ("start", "pause", "resume", "reset", "set"):
            raise ValueError(f"Unknown timer action: {action}")
        payload = None
        if remaining_seconds is not None:
            payload = {"remaining_seconds": remaining_seconds}
        data = await self._request(
            "POST",
            f"/sessions/{session_id}/modules/{module_id}/timer/{action}",
            token=self._require_user_token(),
            json=payload,
        )
        return TimerState.from_dict(data or {})
