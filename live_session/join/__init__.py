"""
Join negotiation.

Pure state machine plus the negotiator that performs the backend calls.
"""

from .machine import is_actionable, transition
from .negotiator import JoinNegotiator, default_heartbeat_factory, email_domain_allowed
from .states import (
    SSO_UNAVAILABLE_MESSAGE,
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

__all__ = [
    "JoinNegotiator",
    "default_heartbeat_factory",
    "email_domain_allowed",
    "transition",
    "is_actionable",
    # States
    "JoinState",
    "Loading",
    "SessionInfo",
    "EmailRequest",
    "Joined",
    "Failed",
    "SSO_UNAVAILABLE_MESSAGE",
    # Events
    "JoinEvent",
    "SessionLoaded",
    "LoadFailed",
    "JoinStarted",
    "JoinSucceeded",
    "JoinRejected",
    "EmailCodeSent",
    "LoginRequired",
]
