"""Tests for join negotiation against a fake backend."""

from __future__ import annotations

import asyncio

import pytest
from conftest import FakeLiveSessionApi, make_snapshot

from live_session.api.types import (
    EmailCodeRequestResult,
    EntryMode,
    GuestToken,
    JoinResult,
)
from live_session.credentials import MemoryCredentialStore, TokenKind
from live_session.exceptions import ApiError, RequestFailedError
from live_session.heartbeat import HeartbeatScheduler, heartbeat_for
from live_session.join import (
    EmailRequest,
    Failed,
    Joined,
    JoinNegotiator,
    SessionInfo,
    email_domain_allowed,
)

CODE = "ABC123"


def make_negotiator(api, store, **kwargs) -> JoinNegotiator:
    return JoinNegotiator(api, store, CODE, fingerprint="fp-1", **kwargs)


def lookup(snapshot_for_token):
    """Passcode lookup whose answer depends on the token presented."""

    def respond(code, token=None):
        return snapshot_for_token(token)

    return respond


class TestLoadSession:
    """Tests for looking up a session by code."""

    @pytest.mark.asyncio
    async def test_unauthenticated_anonymous_session(
        self, api: FakeLiveSessionApi, store: MemoryCredentialStore
    ) -> None:
        snapshot = make_snapshot()
        api.responses["get_session_by_passcode"] = snapshot

        state = await make_negotiator(api, store).load_session()

        assert state == SessionInfo(snapshot=snapshot)
        assert api.called("get_session_by_passcode") == [((CODE,), {"token": None})]
        assert api.called("join_anonymous") == []

    @pytest.mark.asyncio
    async def test_empty_code(self, api: FakeLiveSessionApi, store: MemoryCredentialStore) -> None:
        state = await JoinNegotiator(api, store, "", fingerprint="fp").load_session()

        assert state == Failed("Invalid session code")
        assert api.calls == []

    @pytest.mark.asyncio
    async def test_lookup_failure_uses_backend_message(
        self, api: FakeLiveSessionApi, store: MemoryCredentialStore
    ) -> None:
        api.errors["get_session_by_passcode"] = ApiError(404, body={"detail": "Session not found"})

        state = await make_negotiator(api, store).load_session()

        assert state == Failed("Session not found")

    @pytest.mark.asyncio
    async def test_lookup_transport_failure_uses_fallback(
        self, api: FakeLiveSessionApi, store: MemoryCredentialStore
    ) -> None:
        api.errors["get_session_by_passcode"] = RequestFailedError("GET /sessions")

        state = await make_negotiator(api, store).load_session()

        assert state == Failed("Failed to load session")

    @pytest.mark.asyncio
    async def test_not_started_session_waits(self, api: FakeLiveSessionApi) -> None:
        """A session that has not started is shown but never auto-joined."""
        store = MemoryCredentialStore({TokenKind.GUEST: "g"})
        api.responses["get_session_by_passcode"] = make_snapshot(
            EntryMode.EMAIL_CODE, is_started=False, guest_authenticated=True
        )

        state = await make_negotiator(api, store).load_session()

        assert isinstance(state, SessionInfo)
        assert state.snapshot.is_started is False
        assert api.called("join_guest") == []

    @pytest.mark.asyncio
    async def test_sso_is_shown_as_unavailable(
        self, api: FakeLiveSessionApi, store: MemoryCredentialStore
    ) -> None:
        api.responses["get_session_by_passcode"] = make_snapshot(EntryMode.SSO)

        state = await make_negotiator(api, store).load_session()

        assert isinstance(state, SessionInfo)
        assert state.available is False
        assert state.notice == "SSO authentication is not yet implemented"

    @pytest.mark.asyncio
    async def test_authenticated_lookup_failure_falls_back(
        self, api: FakeLiveSessionApi
    ) -> None:
        store = MemoryCredentialStore({TokenKind.PARTICIPANT: "stale"})
        snapshot = make_snapshot()
        api.responses["get_session_by_passcode"] = snapshot
        api.errors["get_session_by_passcode"] = [None, ApiError(401)]

        state = await make_negotiator(api, store).load_session()

        assert state == SessionInfo(snapshot=snapshot)
        assert [kw["token"] for _, kw in api.called("get_session_by_passcode")] == [
            None,
            "stale",
        ]


class TestAnonymous:
    """Tests for anonymous joins and silent resume."""

    @pytest.mark.asyncio
    async def test_join_persists_participant_token(
        self, api: FakeLiveSessionApi, store: MemoryCredentialStore
    ) -> None:
        api.responses["get_session_by_passcode"] = make_snapshot()
        api.responses["join_anonymous"] = JoinResult(
            session_id=42, participant_id=7, display_name="Ada", participant_token="p-7"
        )
        negotiator = make_negotiator(api, store)
        await negotiator.load_session()

        state = await negotiator.join_anonymous("Ada")

        assert state == Joined(
            session_id=42, participant_id=7, entry_mode=EntryMode.ANONYMOUS, display_name="Ada"
        )
        assert await store.get(TokenKind.PARTICIPANT) == "p-7"
        assert api.called("join_anonymous") == [
            ((CODE,), {"display_name": "Ada", "fingerprint": "fp-1"})
        ]

    @pytest.mark.asyncio
    async def test_blank_name_is_sent_as_none(
        self, api: FakeLiveSessionApi, store: MemoryCredentialStore
    ) -> None:
        api.responses["get_session_by_passcode"] = make_snapshot()
        api.responses["join_anonymous"] = JoinResult(
            session_id=42, participant_id=7, participant_token="p-7"
        )
        negotiator = make_negotiator(api, store)
        await negotiator.load_session()

        await negotiator.join_anonymous("")

        [(_, kwargs)] = api.called("join_anonymous")
        assert kwargs["display_name"] is None

    @pytest.mark.asyncio
    async def test_rejected_join_shows_inline_error(
        self, api: FakeLiveSessionApi, store: MemoryCredentialStore
    ) -> None:
        api.responses["get_session_by_passcode"] = make_snapshot()
        api.errors["join_anonymous"] = ApiError(409, body={"detail": "Session is full"})
        negotiator = make_negotiator(api, store)
        await negotiator.load_session()

        state = await negotiator.join_anonymous("Ada")

        assert isinstance(state, SessionInfo)
        assert state.error == "Session is full"
        assert state.is_busy is False
        assert await store.get(TokenKind.PARTICIPANT) is None

    @pytest.mark.asyncio
    async def test_join_without_participant_token_is_not_joined(
        self, api: FakeLiveSessionApi, store: MemoryCredentialStore
    ) -> None:
        """A join response lacking the token leaves the participant unauthenticated."""
        api.responses["get_session_by_passcode"] = make_snapshot()
        api.responses["join_anonymous"] = JoinResult(session_id=42, participant_id=7)
        negotiator = make_negotiator(api, store)
        await negotiator.load_session()

        state = await negotiator.join_anonymous("Ada")

        assert isinstance(state, SessionInfo)
        assert state.error == "Authentication required"
        assert state.is_busy is False
        assert await store.get(TokenKind.PARTICIPANT) is None

    @pytest.mark.asyncio
    async def test_resume_is_idempotent(self, api: FakeLiveSessionApi) -> None:
        """A participant with a valid token resumes without rejoining, every time."""
        store = MemoryCredentialStore({TokenKind.PARTICIPANT: "p-7"})
        api.responses["get_session_by_passcode"] = lookup(
            lambda token: make_snapshot(
                participant_authenticated=token == "p-7",
                participant_id=7 if token == "p-7" else None,
                display_name="Ada" if token == "p-7" else None,
            )
        )

        first = await make_negotiator(api, store).load_session()
        second = await make_negotiator(api, store).load_session()

        expected = Joined(
            session_id=42, participant_id=7, entry_mode=EntryMode.ANONYMOUS, display_name="Ada"
        )
        assert first == expected
        assert second == expected
        assert api.called("join_anonymous") == []
        assert await store.get(TokenKind.PARTICIPANT) == "p-7"

    @pytest.mark.asyncio
    async def test_load_after_join_is_noop(
        self, api: FakeLiveSessionApi, store: MemoryCredentialStore
    ) -> None:
        api.responses["get_session_by_passcode"] = make_snapshot()
        api.responses["join_anonymous"] = JoinResult(
            session_id=42, participant_id=7, participant_token="p-7"
        )
        negotiator = make_negotiator(api, store)
        await negotiator.load_session()
        joined = await negotiator.join_anonymous()

        assert await negotiator.load_session() is joined
        assert len(api.called("get_session_by_passcode")) == 1


class TestRegistered:
    """Tests for registered-user sessions."""

    @pytest.mark.asyncio
    async def test_without_user_token_requires_login(
        self, api: FakeLiveSessionApi, store: MemoryCredentialStore
    ) -> None:
        api.responses["get_session_by_passcode"] = make_snapshot(EntryMode.REGISTERED)
        redirects: list[str] = []

        state = await make_negotiator(api, store, on_login_required=redirects.append).load_session()

        assert isinstance(state, SessionInfo)
        assert state.login_required is True
        assert redirects == ["/s/ABC123"]
        assert api.called("join_registered") == []

    @pytest.mark.asyncio
    async def test_with_user_token_joins_automatically(
        self, api: FakeLiveSessionApi, store: MemoryCredentialStore
    ) -> None:
        api.responses["get_session_by_passcode"] = make_snapshot(EntryMode.REGISTERED)
        api.responses["join_registered"] = JoinResult(session_id=42, participant_id=9)

        state = await make_negotiator(api, store, user_token="user-token").load_session()

        assert state == Joined(session_id=42, participant_id=9, entry_mode=EntryMode.REGISTERED)
        assert api.called("join_registered") == [((CODE,), {})]


class TestEmailCode:
    """Tests for the email verification flow and guest resume."""

    @pytest.fixture
    def email_api(self, api: FakeLiveSessionApi) -> FakeLiveSessionApi:
        api.responses["get_session_by_passcode"] = make_snapshot(
            EntryMode.EMAIL_CODE, email_code_domains_whitelist=["example.com"]
        )
        api.responses["request_email_code"] = EmailCodeRequestResult(
            verification_code_sent=True, code="123456"
        )
        api.responses["verify_email_code"] = GuestToken(access_token="g-1")
        api.responses["join_guest"] = JoinResult(session_id=42, participant_id=11)
        return api

    @pytest.mark.asyncio
    async def test_full_flow(
        self, email_api: FakeLiveSessionApi, store: MemoryCredentialStore
    ) -> None:
        negotiator = make_negotiator(email_api, store)
        await negotiator.load_session()

        requested = await negotiator.request_email_code(" ada@example.com ")

        assert isinstance(requested, EmailRequest)
        assert requested.email == "ada@example.com"
        assert requested.dev_code == "123456"

        state = await negotiator.verify_email_code(" 123456 ", display_name="Ada")

        assert state == Joined(session_id=42, participant_id=11, entry_mode=EntryMode.EMAIL_CODE)
        assert await store.get(TokenKind.GUEST) == "g-1"
        assert email_api.called("verify_email_code") == [
            ((CODE, "ada@example.com", "123456", "Ada"), {})
        ]
        assert email_api.called("join_guest") == [((CODE, "g-1"), {"fingerprint": "fp-1"})]

    @pytest.mark.asyncio
    async def test_domain_outside_whitelist_is_rejected_locally(
        self, email_api: FakeLiveSessionApi, store: MemoryCredentialStore
    ) -> None:
        negotiator = make_negotiator(email_api, store)
        await negotiator.load_session()

        state = await negotiator.request_email_code("ada@other.org")

        assert isinstance(state, SessionInfo)
        assert state.error == "Email domain is not allowed"
        assert email_api.called("request_email_code") == []

    @pytest.mark.asyncio
    async def test_wrong_code_stays_on_email_request(
        self, email_api: FakeLiveSessionApi, store: MemoryCredentialStore
    ) -> None:
        email_api.errors["verify_email_code"] = ApiError(400)
        negotiator = make_negotiator(email_api, store)
        await negotiator.load_session()
        await negotiator.request_email_code("ada@example.com")

        state = await negotiator.verify_email_code("000000")

        assert isinstance(state, EmailRequest)
        assert state.error == "Invalid verification code"
        assert email_api.called("join_guest") == []

    @pytest.mark.asyncio
    async def test_guest_resume(self, email_api: FakeLiveSessionApi) -> None:
        """A stored guest token the backend still accepts joins without a code."""
        store = MemoryCredentialStore({TokenKind.GUEST: "g-1"})
        email_api.responses["get_session_by_passcode"] = lookup(
            lambda token: make_snapshot(EntryMode.EMAIL_CODE, guest_authenticated=token == "g-1")
        )

        state = await make_negotiator(email_api, store).load_session()

        assert isinstance(state, Joined)
        assert state.entry_mode is EntryMode.EMAIL_CODE
        assert email_api.called("request_email_code") == []

    @pytest.mark.asyncio
    async def test_guest_resume_failure_shows_error(self, email_api: FakeLiveSessionApi) -> None:
        store = MemoryCredentialStore({TokenKind.GUEST: "g-1"})
        email_api.responses["get_session_by_passcode"] = make_snapshot(
            EntryMode.EMAIL_CODE, guest_authenticated=True
        )
        email_api.errors["join_guest"] = ApiError(401, body={"detail": "Token expired"})

        state = await make_negotiator(email_api, store).load_session()

        assert isinstance(state, SessionInfo)
        assert state.error == "Token expired"
        assert state.is_busy is False

    @pytest.mark.asyncio
    async def test_join_guest_without_token_never_calls_backend(
        self, email_api: FakeLiveSessionApi, store: MemoryCredentialStore
    ) -> None:
        negotiator = make_negotiator(email_api, store)
        await negotiator.load_session()

        state = await negotiator.join_guest()

        assert isinstance(state, SessionInfo)
        assert state.error == "Authentication required"
        assert email_api.called("join_guest") == []


class TestEntryModeGuards:
    """Join actions only proceed on a started session of their own entry mode."""

    @pytest.mark.parametrize(
        ("entry_mode", "action", "args", "refused_mode"),
        [
            (EntryMode.SSO, "join_anonymous", ("Ada",), "sso"),
            (EntryMode.SSO, "join_registered", (), "sso"),
            (EntryMode.SSO, "request_email_code", ("ada@example.com",), "sso"),
            (EntryMode.SSO, "join_guest", (), "sso"),
            (EntryMode.EMAIL_CODE, "join_anonymous", ("Ada",), "anonymous"),
            (EntryMode.REGISTERED, "join_anonymous", ("Ada",), "anonymous"),
            (EntryMode.ANONYMOUS, "join_registered", (), "registered"),
            (EntryMode.ANONYMOUS, "request_email_code", ("ada@example.com",), "email_code"),
            (EntryMode.REGISTERED, "join_guest", (), "email_code"),
        ],
    )
    @pytest.mark.asyncio
    async def test_mismatched_action_is_rejected(
        self,
        api: FakeLiveSessionApi,
        entry_mode: EntryMode,
        action: str,
        args: tuple,
        refused_mode: str,
    ) -> None:
        store = MemoryCredentialStore({TokenKind.GUEST: "g-1"})
        api.responses["get_session_by_passcode"] = make_snapshot(entry_mode)
        api.responses[action] = JoinResult(session_id=42, participant_id=7, participant_token="p")
        negotiator = make_negotiator(api, store)
        await negotiator.load_session()

        state = await getattr(negotiator, action)(*args)

        assert isinstance(state, SessionInfo)
        assert state.error == f"Entry mode '{refused_mode}' is not available"
        assert state.is_busy is False
        assert api.called(action) == []

    @pytest.mark.parametrize(
        ("action", "args"),
        [("join_anonymous", ("Ada",)), ("join_guest", ()), ("request_email_code", ("a@b.c",))],
    )
    @pytest.mark.asyncio
    async def test_not_started_session_ignores_actions(
        self, api: FakeLiveSessionApi, action: str, args: tuple
    ) -> None:
        store = MemoryCredentialStore({TokenKind.GUEST: "g-1"})
        api.responses["get_session_by_passcode"] = make_snapshot(
            EntryMode.EMAIL_CODE if action != "join_anonymous" else EntryMode.ANONYMOUS,
            is_started=False,
        )
        negotiator = make_negotiator(api, store)
        waiting = await negotiator.load_session()

        state = await getattr(negotiator, action)(*args)

        assert state is waiting
        assert state.error is None
        assert api.called(action) == []


class TestHeartbeatOnJoin:
    """Tests for the heartbeat started after a successful join."""

    @pytest.mark.asyncio
    async def test_heartbeat_uses_participant_token(
        self, api: FakeLiveSessionApi, store: MemoryCredentialStore
    ) -> None:
        api.responses["get_session_by_passcode"] = make_snapshot()
        api.responses["join_anonymous"] = JoinResult(
            session_id=42, participant_id=7, participant_token="p-7"
        )

        def factory(credential) -> HeartbeatScheduler:
            return HeartbeatScheduler(heartbeat_for(api, CODE, credential))

        negotiator = make_negotiator(api, store, heartbeat_factory=factory)
        await negotiator.load_session()
        await negotiator.join_anonymous("Ada")
        for _ in range(5):
            await asyncio.sleep(0)

        assert api.called("send_heartbeat") == [((CODE, "p-7"), {})]

        await negotiator.set_visible(False)
        for _ in range(5):
            await asyncio.sleep(0)
        assert len(api.called("send_heartbeat")) == 2

        await negotiator.close()
        assert negotiator.heartbeat is None


class TestEmailDomainAllowed:
    """Tests for email_domain_allowed."""

    @pytest.mark.parametrize(
        ("email", "whitelist", "allowed"),
        [
            ("ada@example.com", [], True),
            ("ada@example.com", ["example.com"], True),
            ("ada@EXAMPLE.com", ["@example.com"], True),
            ("ada@other.org", ["example.com"], False),
            ("not-an-email", ["example.com"], False),
        ],
    )
    def test_whitelist(self, email: str, whitelist: list[str], allowed: bool) -> None:
        assert email_domain_allowed(email, whitelist) is allowed
