"""Background workers for the SLA sweep and resume-signal delivery.

Both workers are plain asyncio tasks owned by the application: the plugin
starts them on startup and stops them on shutdown. A failing round is
logged and the loop carries on.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from litestar_hil.engine.signals import ResumeSignalDispatcher
    from litestar_hil.engine.sla import SLATracker

__all__ = ["PeriodicWorker", "ResumeSignalWorker", "SLASweeper"]

logger = logging.getLogger(__name__)


class PeriodicWorker(ABC):
    """Runs :meth:`run_once` every ``interval`` seconds until stopped.

    :meth:`wake` starts the next round immediately instead of waiting for
    the interval to elapse.
    """

    name = "worker"

    def __init__(self, interval: float) -> None:
        self.interval = interval
        self._wakeup = asyncio.Event()
        self._stopping = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @abstractmethod
    async def run_once(self) -> None:
        """Run one round of work."""

    def start(self) -> None:
        """Start the loop as a background task of the running event loop."""
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._run(), name=f"litestar-hil-{self.name}")
        logger.info("Started %s (interval %.1fs)", self.name, self.interval)

    async def stop(self) -> None:
        """Stop the loop, letting a round in progress finish."""
        if self._task is None:
            return
        self._stopping.set()
        self._wakeup.set()
        try:
            await asyncio.wait_for(self._task, timeout=max(self.interval, 5.0))
        except asyncio.TimeoutError:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        logger.info("Stopped %s", self.name)

    def wake(self) -> None:
        self._wakeup.set()

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("%s round failed", self.name)
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.interval)
            self._wakeup.clear()


class SLASweeper(PeriodicWorker):
    """Periodically runs the SLA sweep."""

    name = "sla-sweeper"

    def __init__(self, tracker: SLATracker, interval: float) -> None:
        super().__init__(interval)
        self.tracker = tracker

    async def run_once(self) -> None:
        await self.tracker.sweep()


class ResumeSignalWorker(PeriodicWorker):
    """Delivers due resume signals, woken early when a new one is enqueued."""

    name = "resume-signal-worker"

    def __init__(self, dispatcher: ResumeSignalDispatcher, interval: float) -> None:
        super().__init__(interval)
        self.dispatcher = dispatcher

    async def run_once(self) -> None:
        await self.dispatcher.deliver_pending()
