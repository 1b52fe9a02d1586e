"""Tests for the participant roster."""

from __future__ import annotations

import pytest
from conftest import FakeLiveSessionApi

from live_session.api.types import EntryMode, Participant, ParticipantRosterSnapshot
from live_session.config import LiveSessionConfig
from live_session.exceptions import ApiError, ValidationError
from live_session.live import ParticipantRoster

CODE = "ABC123"

ROSTER = ParticipantRosterSnapshot(
    participants=[
        Participant(id=1, display_name="bob", is_active=True),
        Participant(id=2, display_name="Ada", is_active=True),
        Participant(id=3, display_name=None),
        Participant(id=4, display_name="ADAM", participant_type="user"),
    ],
    total=4,
    active_count=2,
    max_participants=50,
)


def participant_roster(
    api: FakeLiveSessionApi,
    config: LiveSessionConfig,
    entry_mode: EntryMode = EntryMode.ANONYMOUS,
    participant_id: int = 2,
) -> ParticipantRoster:
    return ParticipantRoster.for_participant(
        api, CODE, "p-token", participant_id, entry_mode, config
    )


class TestParticipantRoster:
    """Tests for ParticipantRoster."""

    @pytest.mark.asyncio
    async def test_sorted_by_name_ignoring_case(
        self, api: FakeLiveSessionApi, config: LiveSessionConfig
    ) -> None:
        api.responses["get_participants_by_passcode"] = ROSTER
        roster = participant_roster(api, config)

        await roster.refresh()

        assert [p.id for p in roster.participants] == [3, 2, 4, 1]
        assert roster.active_count == 2
        assert roster.total == 4
        assert roster.max_participants == 50
        assert api.called("get_participants_by_passcode") == [((CODE, "p-token"), {})]

    @pytest.mark.parametrize(
        ("text", "expected"),
        [("ad", [2, 4]), ("  BOB ", [1]), ("anon", [3]), ("", [3, 2, 4, 1]), ("zed", [])],
    )
    @pytest.mark.asyncio
    async def test_search(
        self, api: FakeLiveSessionApi, config: LiveSessionConfig, text: str, expected: list[int]
    ) -> None:
        api.responses["get_participants_by_passcode"] = ROSTER
        roster = participant_roster(api, config)
        await roster.refresh()

        assert [p.id for p in roster.search(text)] == expected

    @pytest.mark.asyncio
    async def test_load_error(self, api: FakeLiveSessionApi, config: LiveSessionConfig) -> None:
        api.errors["get_participants_by_passcode"] = ApiError(403, body={"detail": "Forbidden"})
        roster = participant_roster(api, config)

        await roster.refresh()

        assert roster.error == "Forbidden"

    @pytest.mark.asyncio
    async def test_rename_updates_local_roster(
        self, api: FakeLiveSessionApi, config: LiveSessionConfig
    ) -> None:
        api.responses["get_participants_by_passcode"] = ROSTER
        api.responses["rename_self"] = Participant(id=2, display_name="Ada L.")
        roster = participant_roster(api, config)
        await roster.refresh()

        updated = await roster.rename_self("  Ada L. ")

        assert updated.display_name == "Ada L."
        assert roster.self_participant.display_name == "Ada L."
        assert api.called("rename_self") == [((CODE, "p-token", "Ada L."), {})]
        assert ROSTER.participants[1].display_name == "Ada"

    @pytest.mark.asyncio
    async def test_rename_rejected_by_backend(
        self, api: FakeLiveSessionApi, config: LiveSessionConfig
    ) -> None:
        api.responses["get_participants_by_passcode"] = ROSTER
        api.errors["rename_self"] = ApiError(409, body={"detail": "Name already taken"})
        roster = participant_roster(api, config)
        await roster.refresh()

        assert await roster.rename_self("bob") is None

        assert roster.rename_error == "Name already taken"
        assert roster.self_participant.display_name == "Ada"

    @pytest.mark.asyncio
    async def test_rename_validation(
        self, api: FakeLiveSessionApi, config: LiveSessionConfig
    ) -> None:
        api.responses["get_participants_by_passcode"] = ROSTER
        roster = participant_roster(api, config, entry_mode=EntryMode.REGISTERED, participant_id=4)
        await roster.refresh()

        with pytest.raises(ValidationError):
            await roster.rename_self("   ")
        with pytest.raises(ValidationError):
            await roster.rename_self("Adam")
        assert roster.can_rename is False
        assert api.called("rename_self") == []

    @pytest.mark.asyncio
    async def test_presenter_roster(
        self, api: FakeLiveSessionApi, config: LiveSessionConfig
    ) -> None:
        api.responses["get_session_participants"] = ROSTER
        roster = ParticipantRoster.for_presenter(api, 42, config)

        await roster.refresh()

        assert len(roster.participants) == 4
        assert roster.self_participant is None
        assert roster.can_rename is False
        assert api.called("get_session_participants") == [((42,), {})]
