"""
Timer module views.

While a timer runs, the backend reports its absolute ``end_at`` and the
remaining time is derived from the local clock; while paused it reports
``remaining_seconds`` directly. Polling only picks up presenter actions,
the countdown itself needs no extra fetches.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

from ..api.client import LiveSessionApi
from ..api.types import TimerState
from ..config import LiveSessionConfig
from ..exceptions import error_message
from ..polling import Poller

logger = logging.getLogger(__name__)

LOAD_FAILED = "Failed to load timer"
DEFAULT_DURATION_SECONDS = 300
MAX_DURATION_SECONDS = 86400


class TimerStatus(Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"
    FINISHED = "finished"


def format_duration(seconds: float | None) -> str:
    """MM:SS, with minutes allowed past 59; None shows as 00:00."""
    if seconds is None:
        return "00:00"
    total = max(0, math.floor(seconds))
    minutes, remaining = divmod(total, 60)
    return f"{minutes:02d}:{remaining:02d}"


def clamp_duration(seconds: float) -> int:
    return max(0, min(MAX_DURATION_SECONDS, math.floor(seconds)))


def configured_seconds(module_config: dict[str, Any] | None) -> int:
    """Duration configured on a timer module, clamped to one day."""
    config = module_config or {}
    value = config.get("duration_seconds", config.get("duration_sec"))
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return DEFAULT_DURATION_SECONDS
    if not math.isfinite(parsed):
        return DEFAULT_DURATION_SECONDS
    return clamp_duration(parsed)


class TimerView:
    """Participant countdown for one timer module.

    ``on_finished`` is the sound cue: it fires once when a poll sees the
    running timer at zero with sound notifications enabled, and re-arms as
    soon as the timer has time left again.
    """

    def __init__(
        self,
        api: LiveSessionApi,
        code: str,
        module_id: str | int,
        config: LiveSessionConfig | None = None,
        clock: Callable[[], float] = time.time,
        on_finished: Callable[[], None] | None = None,
        sound_enabled: bool = True,
    ) -> None:
        self.api = api
        self.code = code
        self.module_id = module_id
        self.config = config or LiveSessionConfig()
        self.clock = clock
        self.on_finished = on_finished
        self.sound_enabled = sound_enabled
        self._state: TimerState | None = None
        self._finished_notified = False
        self._poller: Poller[TimerState] = Poller(
            self._fetch,
            interval=self.config.timer_poll_interval,
            on_data=self._on_state,
            name=f"timer:{module_id}",
        )

    async def _fetch(self) -> TimerState:
        return await self.api.get_timer_state(self.code, self.module_id)

    @property
    def state(self) -> TimerState | None:
        return self._state

    @property
    def error(self) -> str | None:
        if self._poller.error is None:
            return None
        return error_message(self._poller.error, LOAD_FAILED)

    @property
    def is_loading(self) -> bool:
        return self._poller.is_loading

    @property
    def remaining_seconds(self) -> int | None:
        state = self._state
        if state is None:
            return None
        if not state.is_paused and state.end_at is not None:
            left = state.end_at.timestamp() - self.clock()
            return max(0, math.floor(left))
        if state.is_paused and state.remaining_seconds is not None:
            return state.remaining_seconds
        return None

    @property
    def status(self) -> TimerStatus:
        state = self._state
        if state is None:
            return TimerStatus.STOPPED
        if state.is_paused:
            return TimerStatus.PAUSED
        remaining = self.remaining_seconds
        if remaining is None:
            return TimerStatus.STOPPED
        if remaining == 0:
            return TimerStatus.FINISHED
        return TimerStatus.RUNNING

    @property
    def display(self) -> str:
        return format_duration(self.remaining_seconds)

    def _on_state(self, state: TimerState) -> None:
        self._state = state
        if state.is_paused or state.end_at is None:
            return
        remaining = self.remaining_seconds
        if remaining == 0:
            if (
                state.sound_notification_enabled
                and self.sound_enabled
                and not self._finished_notified
            ):
                self._finished_notified = True
                logger.debug(f"Timer {self.module_id} finished")
                if self.on_finished:
                    self.on_finished()
        else:
            self._finished_notified = False

    async def refresh(self) -> None:
        await self._poller.refresh()

    async def start(self) -> None:
        await self._poller.start()

    async def stop(self) -> None:
        await self._poller.stop()


class TimerControls:
    """Presenter timer actions.

    Each action refetches through the attached ``TimerView`` so the
    presenter sees the server's state right away.
    """

    def __init__(
        self,
        api: LiveSessionApi,
        session_id: int,
        module_id: str | int,
        view: TimerView | None = None,
        module_config: dict[str, Any] | None = None,
    ) -> None:
        self.api = api
        self.session_id = session_id
        self.module_id = module_id
        self.view = view
        self.configured_seconds = configured_seconds(module_config)
        self.is_busy = False

    @property
    def remaining_seconds(self) -> int:
        """Seconds shown to the presenter; the configured duration when idle."""
        state = self.view.state if self.view else None
        if state is None:
            return self.configured_seconds
        if state.is_paused:
            if state.remaining_seconds is None:
                return self.configured_seconds
            return state.remaining_seconds
        if state.end_at is None:
            return self.configured_seconds
        return self.view.remaining_seconds or 0

    async def _run(self, action: str, remaining_seconds: int | None = None) -> TimerState:
        self.is_busy = True
        try:
            state = await self.api.timer_action(
                self.session_id, self.module_id, action, remaining_seconds=remaining_seconds
            )
        finally:
            self.is_busy = False
        logger.debug(f"Timer {self.module_id}: {action}")
        if self.view is not None:
            await self.view.refresh()
        return state

    async def start(self) -> TimerState:
        """Start the timer, or resume it when it is paused."""
        state = self.view.state if self.view else None
        if state is not None and state.is_paused and state.remaining_seconds is not None:
            return await self._run("resume")
        return await self._run("start")

    async def pause(self, remaining_seconds: int | None = None) -> TimerState:
        if remaining_seconds is None:
            remaining_seconds = self.remaining_seconds
        return await self._run("pause", clamp_duration(remaining_seconds))

    async def resume(self) -> TimerState:
        return await self._run("resume")

    async def reset(self) -> TimerState:
        return await self._run("reset")

    async def set(self, seconds: float) -> TimerState:
        """Set the remaining time, clamped to 0..86400 seconds."""
        return await self._run("set", clamp_duration(seconds))
