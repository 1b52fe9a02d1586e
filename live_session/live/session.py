"""
Joined participant session.

Once the join negotiation ends in ``Joined``, this object owns everything a
participant's view keeps running: the module list poll and the heartbeat.
It also builds the per-module live views with the authoritative token.
"""

from __future__ import annotations

import logging

from ..api.client import LiveSessionApi
from ..api.types import ModuleType, ParticipantModules, SessionModule
from ..config import LiveSessionConfig
from ..credentials.store import CredentialStore
from ..credentials.tokens import ParticipantCredential, resolve_credential
from ..exceptions import AuthenticationRequiredError, EntryModeUnavailableError, error_message
from ..heartbeat import HeartbeatScheduler, heartbeat_for
from ..join.states import Joined
from ..polling import Poller
from .participants import ParticipantRoster
from .questions import QuestionsView
from .timer import TimerView

logger = logging.getLogger(__name__)

LOAD_FAILED = "Failed to load modules"
AUTH_REQUIRED = "Authentication required"

LiveView = QuestionsView | TimerView


class JoinedSession:
    """Live participant session after a successful join.

    Example:
        >>> session = JoinedSession(api, "ABC123", joined, store)
        >>> await session.start()
        >>> if session.active_module:
        ...     view = session.view_for(session.active_module)
    """

    def __init__(
        self,
        api: LiveSessionApi,
        code: str,
        joined: Joined,
        credentials: CredentialStore,
        user_token: str | None = None,
        config: LiveSessionConfig | None = None,
        heartbeat: bool | HeartbeatScheduler = True,
    ) -> None:
        """Initialize the session.

        ``heartbeat`` may be a scheduler already running for this participant
        (see ``JoinNegotiator.handoff_heartbeat``); it is adopted instead of
        starting a second one. False disables the heartbeat.
        """
        self.api = api
        self.code = code
        self.joined = joined
        self.credentials = credentials
        self.user_token = user_token
        self.config = config or LiveSessionConfig()
        self.auth_error: str | None = None
        self.credential: ParticipantCredential | None = None
        self.heartbeat: HeartbeatScheduler | None = None
        self._use_heartbeat = heartbeat is not False
        if isinstance(heartbeat, HeartbeatScheduler):
            self.heartbeat = heartbeat
        self._modules = ParticipantModules()
        self._poller: Poller[ParticipantModules] | None = None

    @property
    def token(self) -> str | None:
        return self.credential.token if self.credential else None

    @property
    def modules(self) -> list[SessionModule]:
        return list(self._modules.modules)

    @property
    def active_module(self) -> SessionModule | None:
        return self._modules.active_module

    @property
    def is_loading(self) -> bool:
        return self._poller.is_loading if self._poller else False

    @property
    def error(self) -> str | None:
        if self.auth_error:
            return self.auth_error
        if self._poller is None or self._poller.error is None:
            return None
        return error_message(self._poller.error, LOAD_FAILED)

    def _on_modules(self, modules: ParticipantModules) -> None:
        self._modules = modules

    async def start(self) -> None:
        """Resolve the credential, then start polling and the heartbeat.

        Without the token authoritative for the entry mode nothing is
        started and ``auth_error`` is set.
        """
        if self._poller is not None or self.auth_error:
            return
        try:
            self.credential = await resolve_credential(
                self.joined.entry_mode, self.credentials, self.user_token
            )
        except (AuthenticationRequiredError, EntryModeUnavailableError) as e:
            logger.warning(f"Cannot start session {self.code}: {e}")
            self.auth_error = AUTH_REQUIRED
            return

        token = self.credential.token

        async def fetch() -> ParticipantModules:
            return await self.api.get_participant_modules(self.code, token)

        self._poller = Poller(
            fetch,
            interval=self.config.module_poll_interval,
            on_data=self._on_modules,
            name=f"participant-modules:{self.code}",
        )
        await self._poller.start()

        if self.heartbeat is not None:
            await self.heartbeat.start()
        elif self._use_heartbeat:
            self.heartbeat = HeartbeatScheduler(
                heartbeat_for(self.api, self.code, self.credential),
                visible_interval=self.config.heartbeat_visible_interval,
                hidden_interval=self.config.heartbeat_hidden_interval,
            )
            await self.heartbeat.start()

    async def refresh(self) -> None:
        if self._poller is not None:
            await self._poller.refresh()

    async def set_visible(self, visible: bool) -> None:
        if self.heartbeat is not None:
            await self.heartbeat.set_visible(visible)

    def view_for(self, module: SessionModule) -> LiveView | None:
        """Unstarted live view for a module; None for types without one."""
        if self.credential is None:
            return None
        if module.type not in self.config.supported_module_types:
            return None
        if module.type == ModuleType.QUESTIONS.value:
            return QuestionsView(self.api, self.code, module.id, self.credential.token, self.config)
        if module.type == ModuleType.TIMER.value:
            return TimerView(self.api, self.code, module.id, self.config)
        return None

    def roster(self) -> ParticipantRoster | None:
        if self.credential is None:
            return None
        return ParticipantRoster.for_participant(
            self.api,
            self.code,
            self.credential.token,
            self.joined.participant_id,
            self.joined.entry_mode,
            self.config,
        )

    async def stop(self) -> None:
        if self._poller is not None:
            await self._poller.stop()
        if self.heartbeat is not None:
            await self.heartbeat.stop()

    async def __aenter__(self) -> JoinedSession:
        await self.start()
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.stop()
