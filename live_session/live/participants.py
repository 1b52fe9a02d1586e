"""
Participant roster.

The same roster is read from two places: joined participants fetch it by
passcode with their own token, presenters fetch it by session id with the
user token (and at a slower rate).
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace

from ..api.client import LiveSessionApi
from ..api.types import EntryMode, Participant, ParticipantRosterSnapshot
from ..config import LiveSessionConfig
from ..exceptions import LiveSessionError, ValidationError, error_message
from ..polling import Poller

logger = logging.getLogger(__name__)

LOAD_FAILED = "Failed to load participants"
RENAME_FAILED = "Failed to update display name"

# Entry modes whose participants may rename themselves
RENAMEABLE_MODES = (EntryMode.ANONYMOUS, EntryMode.EMAIL_CODE)


def _name_key(participant: Participant) -> str:
    return (participant.display_name or "").casefold()


class ParticipantRoster:
    """Polled participant list.

    Use ``for_participant`` or ``for_presenter`` rather than the constructor.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[ParticipantRosterSnapshot]],
        interval: float,
        api: LiveSessionApi,
        code: str | None = None,
        auth_token: str | None = None,
        participant_id: int | None = None,
        entry_mode: EntryMode | None = None,
    ) -> None:
        self.api = api
        self.code = code
        self.auth_token = auth_token
        self.participant_id = participant_id
        self.entry_mode = entry_mode
        self.rename_error: str | None = None
        self._snapshot = ParticipantRosterSnapshot()
        self._poller: Poller[ParticipantRosterSnapshot] = Poller(
            fetch, interval=interval, on_data=self._on_snapshot, name="participants"
        )

    @classmethod
    def for_participant(
        cls,
        api: LiveSessionApi,
        code: str,
        auth_token: str,
        participant_id: int,
        entry_mode: EntryMode,
        config: LiveSessionConfig | None = None,
    ) -> ParticipantRoster:
        config = config or LiveSessionConfig()

        async def fetch() -> ParticipantRosterSnapshot:
            return await api.get_participants_by_passcode(code, auth_token)

        return cls(
            fetch,
            config.participant_poll_interval,
            api,
            code=code,
            auth_token=auth_token,
            participant_id=participant_id,
            entry_mode=entry_mode,
        )

    @classmethod
    def for_presenter(
        cls, api: LiveSessionApi, session_id: int, config: LiveSessionConfig | None = None
    ) -> ParticipantRoster:
        config = config or LiveSessionConfig()

        async def fetch() -> ParticipantRosterSnapshot:
            return await api.get_session_participants(session_id)

        return cls(fetch, config.roster_poll_interval, api)

    def _on_snapshot(self, snapshot: ParticipantRosterSnapshot) -> None:
        self._snapshot = snapshot

    @property
    def participants(self) -> list[Participant]:
        """Participants sorted by display name, ignoring case."""
        return sorted(self._snapshot.participants, key=_name_key)

    @property
    def active_count(self) -> int:
        return self._snapshot.active_count

    @property
    def total(self) -> int:
        return self._snapshot.total

    @property
    def max_participants(self) -> int | None:
        return self._snapshot.max_participants

    @property
    def error(self) -> str | None:
        if self._poller.error is None:
            return None
        return error_message(self._poller.error, LOAD_FAILED)

    @property
    def self_participant(self) -> Participant | None:
        if self.participant_id is None:
            return None
        return next((p for p in self._snapshot.participants if p.id == self.participant_id), None)

    @property
    def can_rename(self) -> bool:
        return (
            self.entry_mode in RENAMEABLE_MODES
            and self.auth_token is not None
            and self.self_participant is not None
        )

    def search(self, text: str) -> list[Participant]:
        """Sorted participants whose name contains ``text`` (case-insensitive)."""
        needle = text.strip().casefold()
        if not needle:
            return self.participants
        return [
            p for p in self.participants
            if needle in (p.display_name or "Anonymous").casefold()
        ]

    async def rename_self(self, display_name: str) -> Participant | None:
        """Change the participant's own display name.

        Returns the updated participant, or None if the backend refused
        (the reason is kept in ``rename_error``).

        Raises:
            ValidationError: Empty name, or renaming not allowed for this entry mode
        """
        value = display_name.strip()
        if not value:
            raise ValidationError("display_name", "Display name cannot be empty")
        if not self.can_rename:
            raise ValidationError("display_name", "Display name cannot be changed")

        self.rename_error = None
        try:
            updated = await self.api.rename_self(self.code, self.auth_token, value)
        except LiveSessionError as e:
            self.rename_error = error_message(e, RENAME_FAILED)
            logger.info(f"Rename rejected: {self.rename_error}")
            return None

        participants = [
            replace(p, display_name=updated.display_name) if p.id == updated.id else p
            for p in self._snapshot.participants
        ]
        self._snapshot = replace(self._snapshot, participants=participants)
        return updated

    async def refresh(self) -> None:
        await self._poller.refresh()

    async def start(self) -> None:
        await self._poller.start()

    async def stop(self) -> None:
        await self._poller.stop()
