"""
Join negotiator.

Drives a visitor from "I have a session code" to "I am a joined participant"
across the four entry modes, resuming silently when a stored credential is
still valid. All state changes go through the pure ``transition`` function;
this module only performs the calls and persists tokens.
"""

from __future__ import annotations

from collections.abc import Callable

from ..api.client import LiveSessionApi
from ..api.types import EntryMode, JoinResult, SessionSnapshot
from ..config import LiveSessionConfig
from ..credentials.fingerprint import device_fingerprint
from ..credentials.store import CredentialStore, TokenKind
from ..credentials.tokens import ParticipantCredential, resolve_credential, stored_token_for
from ..exceptions import (
    AuthenticationRequiredError,
    EntryModeUnavailableError,
    LiveSessionError,
    error_message,
)
from ..heartbeat import HeartbeatScheduler, heartbeat_for
from ..logging_utils import SessionLoggerAdapter, get_session_logger
from .machine import transition
from .states import (
    EmailCodeSent,
    EmailRequest,
    Failed,
    JoinEvent,
    Joined,
    JoinRejected,
    JoinStarted,
    JoinState,
    JoinSucceeded,
    Loading,
    LoadFailed,
    LoginRequired,
    SessionInfo,
    SessionLoaded,
)

LOAD_FAILED = "Failed to load session"
JOIN_FAILED = "Failed to join session"
SEND_CODE_FAILED = "Failed to send verification code"
VERIFY_FAILED = "Invalid verification code"
INVALID_CODE = "Invalid session code"
DOMAIN_NOT_ALLOWED = "Email domain is not allowed"

HeartbeatFactory = Callable[[ParticipantCredential], HeartbeatScheduler]


def email_domain_allowed(email: str, whitelist: list[str]) -> bool:
    """True when ``whitelist`` is empty or contains the email's domain."""
    if not whitelist:
        return True
    _, _, domain = email.strip().rpartition("@")
    allowed = {d.strip().lstrip("@").lower() for d in whitelist if d.strip()}
    return domain.lower() in allowed


class JoinNegotiator:
    """Effect shell around the join state machine.

    Example:
        >>> negotiator = JoinNegotiator(api, MemoryCredentialStore(), "ABC123")
        >>> state = await negotiator.load_session()
        >>> if isinstance(state, SessionInfo):
        ...     state = await negotiator.join_anonymous("Ada")
    """

    def __init__(
        self,
        api: LiveSessionApi,
        credentials: CredentialStore,
        code: str,
        user_token: str | None = None,
        fingerprint: str | None = None,
        heartbeat_factory: HeartbeatFactory | None = None,
        on_login_required: Callable[[str], None] | None = None,
        config: LiveSessionConfig | None = None,
    ) -> None:
        """Initialize the negotiator.

        Args:
            api: Backend client
            credentials: Store for participant and guest tokens
            code: Session passcode
            user_token: User session token, if the visitor is logged in
            fingerprint: Device fingerprint (computed when omitted)
            heartbeat_factory: Builds the heartbeat started once joined
            on_login_required: Called with the return path when a registered
                session needs a login first
            config: Settings (defaults when omitted)
        """
        self.api = api
        self.credentials = credentials
        self.code = code
        self.user_token = user_token
        self.fingerprint = fingerprint or device_fingerprint()
        self.heartbeat_factory = heartbeat_factory
        self.on_login_required = on_login_required
        self.config = config or LiveSessionConfig()
        self.heartbeat: HeartbeatScheduler | None = None
        self._state: JoinState = Loading()
        self._log = SessionLoggerAdapter(get_session_logger("join"), {"session_code": code})

    @property
    def state(self) -> JoinState:
        return self._state

    def _apply(self, event: JoinEvent) -> JoinState:
        previous = self._state
        self._state = transition(previous, event)
        if self._state.kind != previous.kind:
            self._log.debug(f"Join state {previous.kind} -> {self._state.kind}")
        return self._state

    # =========================================================================
    # Loading and silent resume
    # =========================================================================

    async def _fetch_snapshot(self) -> SessionSnapshot:
        """Passcode lookup, authenticated with the stored token when one applies.

        An authenticated lookup that fails falls back to the anonymous one.
        """
        base = await self.api.get_session_by_passcode(self.code)
        token = await stored_token_for(base.entry_mode, self.credentials)
        if not token:
            return base
        try:
            return await self.api.get_session_by_passcode(self.code, token=token)
        except LiveSessionError as e:
            self._log.info(f"Authenticated lookup failed, using anonymous snapshot: {e}")
            return base

    async def load_session(self, code: str | None = None) -> JoinState:
        """Look up the session and resume or auto-join where possible."""
        if isinstance(self._state, Joined):
            return self._state
        if code is not None:
            self.code = code
            self._log.extra["session_code"] = code
        if not self.code:
            self._state = Failed(INVALID_CODE)
            return self._state

        self._state = Loading()
        try:
            snapshot = await self._fetch_snapshot()
        except Exception as e:
            self._log.info(f"Session lookup failed: {e}")
            return self._apply(LoadFailed(error_message(e, LOAD_FAILED)))

        self._apply(SessionLoaded(snapshot))
        if not snapshot.is_started or not snapshot.available:
            return self._state

        if snapshot.guest_authenticated and snapshot.entry_mode is EntryMode.EMAIL_CODE:
            return await self._join_guest(snapshot.entry_mode)

        if (
            snapshot.entry_mode is EntryMode.ANONYMOUS
            and snapshot.participant_authenticated
            and snapshot.participant_id is not None
        ):
            self._log.debug("Resuming anonymous participant without rejoining")
            return await self._joined(
                JoinSucceeded(
                    session_id=snapshot.id,
                    participant_id=snapshot.participant_id,
                    entry_mode=EntryMode.ANONYMOUS,
                    display_name=snapshot.display_name,
                )
            )

        if snapshot.entry_mode is EntryMode.REGISTERED:
            if self.user_token:
                return await self.join_registered()
            return self._require_login()

        return self._state

    def _require_login(self) -> JoinState:
        return_path = self.config.join_path(self.code)
        self._apply(LoginRequired(return_path))
        if self.on_login_required:
            self.on_login_required(return_path)
        return self._state

    # =========================================================================
    # Join actions
    # =========================================================================

    async def _joined(self, event: JoinSucceeded) -> JoinState:
        self._apply(event)
        self._log.info(f"Joined as participant {event.participant_id} ({event.entry_mode.value})")
        await self._start_heartbeat(event.entry_mode)
        return self._state

    async def _start_heartbeat(self, entry_mode: EntryMode) -> None:
        if self.heartbeat_factory is None or self.heartbeat is not None:
            return
        try:
            credential = await resolve_credential(entry_mode, self.credentials, self.user_token)
        except LiveSessionError as e:
            self._log.warning(f"Heartbeat not started: {e}")
            return
        self.heartbeat = self.heartbeat_factory(credential)
        await self.heartbeat.start()

    async def _reject(self, exc: Exception, fallback: str) -> JoinState:
        message = error_message(exc, fallback)
        self._log.info(f"Join attempt rejected: {message}")
        return self._apply(JoinRejected(message))

    async def _refuse(self, entry_mode: EntryMode) -> JoinState | None:
        """Outcome of an action the loaded session does not accept, else None.

        A session that has not started is left as is. An unavailable session,
        or one using a different entry mode, rejects the attempt.
        """
        snapshot = self._state.snapshot
        if not snapshot.is_started:
            return self._state
        if not snapshot.available:
            return await self._reject(
                EntryModeUnavailableError(snapshot.entry_mode.value), JOIN_FAILED
            )
        if snapshot.entry_mode is not entry_mode:
            return await self._reject(EntryModeUnavailableError(entry_mode.value), JOIN_FAILED)
        return None

    async def join_anonymous(self, display_name: str | None = None) -> JoinState:
        """Join an anonymous session and persist the participant token."""
        if not isinstance(self._state, SessionInfo):
            return self._state
        refused = await self._refuse(EntryMode.ANONYMOUS)
        if refused is not None:
            return refused

        self._apply(JoinStarted())
        try:
            result = await self.api.join_anonymous(
                self.code, display_name=display_name or None, fingerprint=self.fingerprint
            )
        except Exception as e:
            return await self._reject(e, JOIN_FAILED)
        if not result.participant_token:
            return await self._reject(
                AuthenticationRequiredError(
                    EntryMode.ANONYMOUS.value, TokenKind.PARTICIPANT.value
                ),
                JOIN_FAILED,
            )
        await self.credentials.set(TokenKind.PARTICIPANT, result.participant_token)
        return await self._joined(self._succeeded(result, EntryMode.ANONYMOUS))

    async def join_registered(self) -> JoinState:
        """Join with the user session token, or ask for a login without one."""
        if not isinstance(self._state, SessionInfo):
            return self._state
        refused = await self._refuse(EntryMode.REGISTERED)
        if refused is not None:
            return refused
        if not self.user_token:
            return self._require_login()

        self._apply(JoinStarted())
        try:
            result = await self.api.join_registered(self.code)
        except Exception as e:
            return await self._reject(e, JOIN_FAILED)
        return await self._joined(self._succeeded(result, EntryMode.REGISTERED))

    async def request_email_code(self, email: str) -> JoinState:
        """Ask the backend to mail a verification code.

        Also valid from ``EmailRequest`` to resend a code.
        """
        state = self._state
        if not isinstance(state, (SessionInfo, EmailRequest)):
            return state
        refused = await self._refuse(EntryMode.EMAIL_CODE)
        if refused is not None:
            return refused

        email = email.strip()
        if not email_domain_allowed(email, state.snapshot.email_code_domains_whitelist):
            return self._apply(JoinRejected(DOMAIN_NOT_ALLOWED))

        self._apply(JoinStarted())
        try:
            response = await self.api.request_email_code(self.code, email)
        except Exception as e:
            return await self._reject(e, SEND_CODE_FAILED)
        return self._apply(EmailCodeSent(email=email, dev_code=response.code))

    async def verify_email_code(
        self, verification_code: str, display_name: str | None = None
    ) -> JoinState:
        """Exchange the code for a guest token, then join as a guest."""
        state = self._state
        if not isinstance(state, EmailRequest):
            return state
        refused = await self._refuse(EntryMode.EMAIL_CODE)
        if refused is not None:
            return refused

        self._apply(JoinStarted())
        try:
            guest = await self.api.verify_email_code(
                self.code, state.email, verification_code.strip(), display_name or None
            )
            await self.credentials.set(TokenKind.GUEST, guest.access_token)
        except Exception as e:
            return await self._reject(e, VERIFY_FAILED)
        return await self._join_guest(EntryMode.EMAIL_CODE)

    async def join_guest(self) -> JoinState:
        """Join with the stored guest token."""
        if not isinstance(self._state, (SessionInfo, EmailRequest)):
            return self._state
        refused = await self._refuse(EntryMode.EMAIL_CODE)
        if refused is not None:
            return refused
        return await self._join_guest(EntryMode.EMAIL_CODE)

    async def _join_guest(self, entry_mode: EntryMode) -> JoinState:
        self._apply(JoinStarted())
        guest_token = await self.credentials.get(TokenKind.GUEST)
        if not guest_token:
            return await self._reject(
                AuthenticationRequiredError(entry_mode.value, TokenKind.GUEST.value), JOIN_FAILED
            )
        try:
            result = await self.api.join_guest(self.code, guest_token, fingerprint=self.fingerprint)
        except Exception as e:
            return await self._reject(e, JOIN_FAILED)
        return await self._joined(self._succeeded(result, entry_mode))

    @staticmethod
    def _succeeded(result: JoinResult, entry_mode: EntryMode) -> JoinSucceeded:
        return JoinSucceeded(
            session_id=result.session_id,
            participant_id=result.participant_id,
            entry_mode=entry_mode,
            display_name=result.display_name,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def set_visible(self, visible: bool) -> None:
        if self.heartbeat is not None:
            await self.heartbeat.set_visible(visible)

    def handoff_heartbeat(self) -> HeartbeatScheduler | None:
        """Give up ownership of the running heartbeat.

        The caller becomes responsible for stopping it; ``close`` no longer
        touches it. Pass the result to ``JoinedSession`` so a single loop pings.
        """
        heartbeat, self.heartbeat = self.heartbeat, None
        return heartbeat

    async def close(self) -> None:
        """Stop the heartbeat, if one was started."""
        if self.heartbeat is not None:
            await self.heartbeat.stop()
            self.heartbeat = None


def default_heartbeat_factory(
    api: LiveSessionApi, code: str, config: LiveSessionConfig | None = None
) -> HeartbeatFactory:
    """Heartbeat factory using the configured visible/hidden intervals."""
    config = config or LiveSessionConfig()

    def factory(credential: ParticipantCredential) -> HeartbeatScheduler:
        return HeartbeatScheduler(
            heartbeat_for(api, code, credential),
            visible_interval=config.heartbeat_visible_interval,
            hidden_interval=config.heartbeat_hidden_interval,
        )

    return factory


