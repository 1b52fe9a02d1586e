"""
Pure join state machine.

``transition`` maps (state, event) to the next state without side effects.
Events that do not apply to the current state leave it unchanged, so stale
completions (e.g. a late response after the participant already joined)
cannot move the negotiation backwards.
"""

from __future__ import annotations

from dataclasses import replace

from .states import (
    ACTIONABLE_STATES,
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


def transition(state: JoinState, event: JoinEvent) -> JoinState:
    """Return the state that follows ``event``."""
    if isinstance(state, Joined):
        return state

    if isinstance(state, Loading):
        if isinstance(event, SessionLoaded):
            return SessionInfo(snapshot=event.snapshot)
        if isinstance(event, LoadFailed):
            return Failed(message=event.message)
        return state

    if isinstance(state, Failed):
        return state

    # SessionInfo or EmailRequest from here on
    if isinstance(event, JoinStarted):
        return replace(state, is_busy=True, error=None)

    if isinstance(event, JoinRejected):
        return replace(state, is_busy=False, error=event.message)

    if isinstance(event, JoinSucceeded):
        return Joined(
            session_id=event.session_id,
            participant_id=event.participant_id,
            entry_mode=event.entry_mode,
            display_name=event.display_name,
        )

    if isinstance(event, EmailCodeSent):
        return EmailRequest(
            snapshot=state.snapshot,
            email=event.email,
            dev_code=event.dev_code,
        )

    if isinstance(event, LoginRequired) and isinstance(state, SessionInfo):
        return replace(state, is_busy=False, login_required=True)

    return state


def is_actionable(state: JoinState) -> bool:
    return isinstance(state, ACTIONABLE_STATES)
