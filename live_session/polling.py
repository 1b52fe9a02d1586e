"""
Polling synchronizer.

Keeps a view eventually consistent with the backend without a push channel:
fetch immediately, then every ``interval`` seconds until stopped.

The first fetch is the "initial load": it drives the loading indicator and
is the only fetch whose failure is surfaced. Every later fetch is a
background refresh; a failure there is logged and the previous data is kept.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def cancel_task(task: asyncio.Task | None) -> None:
    """Cancel a task and wait for it to finish.

    A task never waits on itself, so owners may stop from inside their own
    callbacks.
    """
    if task is None or task.done() or task is asyncio.current_task():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


class Poller(Generic[T]):
    """Periodic refetch with initial-load/background-refresh semantics.

    Concurrent refreshes are coalesced: a refresh requested while a fetch is
    in flight queues at most one follow-up fetch, which every caller that
    arrived during the in-flight fetch shares. The periodic tick never queues
    a follow-up; it simply joins the in-flight fetch.

    Example:
        >>> poller = Poller(lambda: api.get_participant_modules(code, token), interval=3.0)
        >>> await poller.start()
        >>> ...
        >>> await poller.stop()
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[T]],
        interval: float,
        on_data: Callable[[T], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        name: str = "",
    ) -> None:
        """Initialize the poller.

        Args:
            fetch: Async callable returning a fresh snapshot
            interval: Seconds between fetches
            on_data: Called with every successful snapshot
            on_error: Called only when the initial load fails
            name: Label used in log messages
        """
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._fetch = fetch
        self.interval = interval
        self.on_data = on_data
        self.on_error = on_error
        self.name = name or getattr(fetch, "__name__", "poller")

        self.data: T | None = None
        self.error: Exception | None = None
        self.is_loading = False
        self.is_initial_load = True
        self.last_success_at: float | None = None

        self._running = False
        self._stopped = False
        self._loop_task: asyncio.Task[None] | None = None
        self._inflight: asyncio.Task[None] | None = None
        self._followup: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start polling. The first fetch runs immediately."""
        if self._running:
            return
        self._running = True
        self._stopped = False
        self._loop_task = asyncio.create_task(self._poll_loop())
        logger.debug(f"Poller started: {self.name} every {self.interval}s")

    async def stop(self) -> None:
        """Stop polling and cancel any in-flight fetch.

        After this returns no callback fires and no state changes.
        """
        self._running = False
        self._stopped = True
        loop_task, self._loop_task = self._loop_task, None
        followup, self._followup = self._followup, None
        inflight, self._inflight = self._inflight, None
        await cancel_task(loop_task)
        await cancel_task(followup)
        await cancel_task(inflight)
        logger.debug(f"Poller stopped: {self.name}")

    async def refresh(self) -> None:
        """Fetch now, e.g. right after a mutation.

        If a fetch is already in flight, wait for it and then run exactly one
        more so the result reflects the mutation.
        """
        if self._stopped:
            return
        inflight = self._inflight
        if inflight is not None and not inflight.done():
            if self._followup is None or self._followup.done():
                self._followup = asyncio.create_task(self._run_after(inflight))
            await asyncio.shield(self._followup)
            return
        await self._tick()

    async def _tick(self) -> None:
        inflight = self._inflight
        if inflight is None or inflight.done():
            inflight = asyncio.create_task(self._run_once())
            self._inflight = inflight
        await asyncio.shield(inflight)

    async def _run_after(self, previous: asyncio.Task[None]) -> None:
        try:
            await previous
        except asyncio.CancelledError:
            if self._stopped:
                raise
        self._followup = None
        self._inflight = asyncio.current_task()
        await self._run_once()

    async def _poll_loop(self) -> None:
        while self._running:
            await self._tick()
            await asyncio.sleep(self.interval)

    async def _run_once(self) -> None:
        is_initial = self.is_initial_load
        if is_initial:
            self.is_loading = True
            self.error = None
        try:
            result = await self._fetch()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self._stopped:
                return
            if is_initial:
                logger.info(f"Initial load failed for {self.name}: {e}")
                self.error = e
                if self.on_error:
                    self.on_error(e)
            else:
                logger.warning(f"Background refresh failed for {self.name}: {e}")
        else:
            if self._stopped:
                return
            self.data = result
            self.error = None
            self.last_success_at = time.time()
            if self.on_data:
                self.on_data(result)
        finally:
            if is_initial:
                self.is_initial_load = False
                self.is_loading = False

    async def __aenter__(self) -> Poller[T]:
        await self.start()
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.stop()
