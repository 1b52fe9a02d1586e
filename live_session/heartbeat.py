"""
Heartbeat scheduler.

Keeps a joined participant marked active on the backend. Pings are more
frequent while the view is visible and back off while it is hidden; any
visibility change sends an immediate ping and restarts the schedule.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from .exceptions import AuthenticationRequiredError
from .polling import cancel_task

if TYPE_CHECKING:
    from .api.client import LiveSessionApi
    from .credentials.tokens import ParticipantCredential

logger = logging.getLogger(__name__)

DEFAULT_VISIBLE_INTERVAL = 15.0
DEFAULT_HIDDEN_INTERVAL = 60.0

HeartbeatSender = Callable[[], Awaitable[None]]


class HeartbeatScheduler:
    """Periodic heartbeat with a visibility-dependent period.

    Only one loop task exists at a time. Send failures are logged and
    otherwise ignored; the next tick simply tries again.
    """

    def __init__(
        self,
        send: HeartbeatSender,
        visible_interval: float = DEFAULT_VISIBLE_INTERVAL,
        hidden_interval: float = DEFAULT_HIDDEN_INTERVAL,
    ) -> None:
        if visible_interval <= 0 or hidden_interval <= 0:
            raise ValueError("heartbeat intervals must be positive")
        self._send = send
        self.visible_interval = visible_interval
        self.hidden_interval = hidden_interval
        self.visible = True
        self.sent_count = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def interval(self) -> float:
        return self.visible_interval if self.visible else self.hidden_interval

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Ping now, then keep pinging at the current interval."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.debug(f"Heartbeat started, interval={self.interval}s")

    async def set_visible(self, visible: bool) -> None:
        """Record a visibility change and restart the schedule."""
        if visible == self.visible and self.is_running:
            return
        self.visible = visible
        if self._task is None:
            return
        await cancel_task(self._task)
        self._task = asyncio.create_task(self._loop())
        logger.debug(f"Heartbeat rescheduled, visible={visible}, interval={self.interval}s")

    async def stop(self) -> None:
        task, self._task = self._task, None
        await cancel_task(task)

    async def _loop(self) -> None:
        while True:
            await self._beat()
            await asyncio.sleep(self.interval)

    async def _beat(self) -> None:
        try:
            await self._send()
            self.sent_count += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Heartbeat failed: {e}")

    async def __aenter__(self) -> HeartbeatScheduler:
        await self.start()
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.stop()


def heartbeat_for(
    api: LiveSessionApi,
    code: str,
    credential: ParticipantCredential | None,
) -> HeartbeatSender:
    """Build a heartbeat sender carrying the authoritative token.

    Raises:
        AuthenticationRequiredError: If no credential (or an empty token) is given
    """
    if credential is None or not credential.token:
        mode = "unknown" if credential is None else credential.entry_mode.value
        raise AuthenticationRequiredError(mode)
    token = credential.token

    async def send() -> None:
        await api.send_heartbeat(code, token)

    return send
