"""
Credential persistence.

Participant and guest tokens outlive a single page view: a participant who
reloads must resume without rejoining. Stores are injected so orchestration
code never touches ambient storage directly.

File layout (``credentials.json``, mode 0600):

```json
{
  "participant_token": "...",
  "guest_token": "..."
}
```

The user session token belongs to the host application and is never written
by this package.
"""

from __future__ import annotations

import json
import logging
import os
import stat
import tempfile
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path

import aiofiles
import aiofiles.os

logger = logging.getLogger(__name__)


class TokenKind(Enum):
    """Kinds of bearer token a participant can hold."""

    PARTICIPANT = "participant_token"
    GUEST = "guest_token"
    USER = "user_token"


PERSISTED_KINDS = (TokenKind.PARTICIPANT, TokenKind.GUEST)


class CredentialStore(ABC):
    """Abstract token store."""

    @abstractmethod
    async def get(self, kind: TokenKind) -> str | None:
        """Return the stored token, or None."""

    @abstractmethod
    async def set(self, kind: TokenKind, token: str) -> None:
        """Store a token, replacing any previous value."""

    @abstractmethod
    async def clear(self, kind: TokenKind) -> None:
        """Forget a single token."""

    async def clear_all(self) -> None:
        """Forget every persisted token."""
        for kind in PERSISTED_KINDS:
            await self.clear(kind)


class MemoryCredentialStore(CredentialStore):
    """In-process store for tests and ephemeral clients."""

    def __init__(self, initial: dict[TokenKind, str] | None = None) -> None:
        self._tokens: dict[TokenKind, str] = dict(initial or {})

    async def get(self, kind: TokenKind) -> str | None:
        return self._tokens.get(kind)

    async def set(self, kind: TokenKind, token: str) -> None:
        self._tokens[kind] = token

    async def clear(self, kind: TokenKind) -> None:
        self._tokens.pop(kind, None)


class FileCredentialStore(CredentialStore):
    """JSON file store readable only by the owning user.

    Only participant and guest tokens are accepted. A corrupt or unreadable
    file is treated as empty.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path).expanduser()

    async def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            async with aiofiles.open(self.path) as f:
                content = await f.read()
            data = json.loads(content) if content.strip() else {}
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable credentials file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    async def _save(self, data: dict[str, str]) -> None:
        """Replace the file atomically; the temp file is owner-only before any token lands."""
        await aiofiles.os.makedirs(self.path.parent, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".tmp_", suffix=".json")
        try:
            os.close(fd)
            os.chmod(temp_path, stat.S_IRUSR | stat.S_IWUSR)
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data, indent=2))
                await f.flush()
                os.fsync(f.fileno())

            await aiofiles.os.rename(temp_path, self.path)
        except Exception:
            try:
                await aiofiles.os.remove(temp_path)
            except OSError:
                pass
            raise

    @staticmethod
    def _check_kind(kind: TokenKind) -> None:
        if kind not in PERSISTED_KINDS:
            raise ValueError(f"{kind.value} is not persisted by this store")

    async def get(self, kind: TokenKind) -> str | None:
        if kind not in PERSISTED_KINDS:
            return None
        return (await self._load()).get(kind.value)

    async def set(self, kind: TokenKind, token: str) -> None:
        self._check_kind(kind)
        data = await self._load()
        data[kind.value] = token
        await self._save(data)
        logger.debug(f"Stored {kind.value} in {self.path}")

    async def clear(self, kind: TokenKind) -> None:
        self._check_kind(kind)
        data = await self._load()
        if data.pop(kind.value, None) is not None:
            await self._save(data)
