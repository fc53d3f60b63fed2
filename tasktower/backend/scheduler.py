"""Fixed-period asyncio jobs: the phase ticker and the loop behind sync."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

from .engine import GameSession


logger = logging.getLogger(__name__)


class PeriodicTask:
    """Run ``callback`` every ``interval`` seconds on the running event loop.

    ``stop`` prevents the next run from starting; a run already in flight
    finishes. ``trigger`` wakes the loop so the next run happens immediately.
    """

    def __init__(self, name: str, interval: float, callback: Callable[[], Any]) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self.callback = callback
        self._task: asyncio.Task[None] | None = None
        self._wake: asyncio.Event | None = None
        self._stopped = True

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._stopped

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        self._stopped = False
        self._wake = asyncio.Event()
        self._task = loop.create_task(self._run(self._wake), name=self.name)

    def stop(self) -> None:
        self._stopped = True
        if self._wake is not None:
            self._wake.set()

    def trigger(self) -> None:
        if self._wake is not None and not self._stopped:
            self._wake.set()

    async def wait_closed(self) -> None:
        if self._task is not None:
            await self._task

    async def _run(self, wake: asyncio.Event) -> None:
        while not self._stopped:
            try:
                await asyncio.wait_for(wake.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
            if self._stopped:
                break
            wake.clear()
            try:
                result = self.callback()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Periodic task %s failed", self.name)


class PhaseTicker:
    """Advances a session's phase timer once per interval."""

    def __init__(self, session: GameSession, interval: float = 1.0) -> None:
        self.session = session
        self._job = PeriodicTask(name="phase-ticker", interval=interval, callback=self.tick)

    @property
    def is_running(self) -> bool:
        return self._job.is_running

    def tick(self) -> list[dict[str, Any]]:
        events = self.session.advance_tick()
        for event in events:
            logger.debug("Tick event for %s: %s", self.session.lobby_code, event)
        return events

    def start(self) -> None:
        if not self._job.is_running:
            self._job.start()

    def stop(self) -> None:
        self._job.stop()

    async def wait_closed(self) -> None:
        await self._job.wait_closed()
