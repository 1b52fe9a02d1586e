"""Device fingerprint sent with anonymous and guest joins."""

from __future__ import annotations

import hashlib
import platform
import uuid


def device_fingerprint(extra: str = "") -> str:
    """Stable, non-reversible identifier for this machine.

    Lets the backend recognise a returning device on anonymous/guest join.
    """
    parts = [
        platform.system(),
        platform.release(),
        platform.machine(),
        platform.node(),
        format(uuid.getnode(), "x"),
        extra,
    ]
    return hashlib.sha256("|".join(parts).encode()).hexdigest()
