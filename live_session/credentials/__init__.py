"""
Participant credentials.

Token storage, entry-mode to token mapping and the device fingerprint.
"""

from .fingerprint import device_fingerprint
from .store import (
    PERSISTED_KINDS,
    CredentialStore,
    FileCredentialStore,
    MemoryCredentialStore,
    TokenKind,
)
from .tokens import (
    AnonymousCredential,
    GuestCredential,
    ParticipantCredential,
    RegisteredCredential,
    resolve_credential,
    stored_token_for,
    token_kind_for,
)

__all__ = [
    "CredentialStore",
    "MemoryCredentialStore",
    "FileCredentialStore",
    "TokenKind",
    "PERSISTED_KINDS",
    "AnonymousCredential",
    "RegisteredCredential",
    "GuestCredential",
    "ParticipantCredential",
    "resolve_credential",
    "stored_token_for",
    "token_kind_for",
    "device_fingerprint",
]
