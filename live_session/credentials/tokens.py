"""
Entry-mode to credential mapping.

Exactly one token is authoritative per entry mode:

| Entry mode  | Token             |
|-------------|-------------------|
| anonymous   | participant token |
| email_code  | guest token       |
| registered  | user token        |
| sso         | none (unavailable)|

Any code that needs to act as the participant resolves its credential here,
so a missing token always surfaces as ``AuthenticationRequiredError`` instead
of a silently unauthenticated request.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..api.types import EntryMode
from ..exceptions import AuthenticationRequiredError, EntryModeUnavailableError
from .store import CredentialStore, TokenKind


@dataclass(frozen=True)
class AnonymousCredential:
    token: str
    entry_mode: EntryMode = EntryMode.ANONYMOUS
    kind: TokenKind = TokenKind.PARTICIPANT


@dataclass(frozen=True)
class RegisteredCredential:
    token: str
    entry_mode: EntryMode = EntryMode.REGISTERED
    kind: TokenKind = TokenKind.USER


@dataclass(frozen=True)
class GuestCredential:
    token: str
    entry_mode: EntryMode = EntryMode.EMAIL_CODE
    kind: TokenKind = TokenKind.GUEST


ParticipantCredential = AnonymousCredential | RegisteredCredential | GuestCredential

_TOKEN_KINDS = {
    EntryMode.ANONYMOUS: TokenKind.PARTICIPANT,
    EntryMode.EMAIL_CODE: TokenKind.GUEST,
    EntryMode.REGISTERED: TokenKind.USER,
}

_CREDENTIAL_TYPES: dict[EntryMode, type] = {
    EntryMode.ANONYMOUS: AnonymousCredential,
    EntryMode.EMAIL_CODE: GuestCredential,
    EntryMode.REGISTERED: RegisteredCredential,
}


def token_kind_for(entry_mode: EntryMode) -> TokenKind | None:
    """Token kind authoritative for an entry mode; None for SSO."""
    return _TOKEN_KINDS.get(entry_mode)


async def stored_token_for(entry_mode: EntryMode, store: CredentialStore) -> str | None:
    """Persisted token for a participant-side entry mode, if any.

    Registered and SSO modes have no persisted participant token.
    """
    kind = token_kind_for(entry_mode)
    if kind is None or kind is TokenKind.USER:
        return None
    return await store.get(kind)


async def resolve_credential(
    entry_mode: EntryMode,
    store: CredentialStore,
    user_token: str | None = None,
) -> ParticipantCredential:
    """Resolve the credential authoritative for ``entry_mode``.

    Raises:
        EntryModeUnavailableError: For SSO
        AuthenticationRequiredError: When the authoritative token is absent
    """
    kind = token_kind_for(entry_mode)
    if kind is None:
        raise EntryModeUnavailableError(entry_mode.value)

    token = user_token if kind is TokenKind.USER else await store.get(kind)
    if not token:
        raise AuthenticationRequiredError(entry_mode.value, kind.value)
    return _CREDENTIAL_TYPES[entry_mode](token)
