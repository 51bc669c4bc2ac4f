"""Tests for the background workers."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import pytest

from litestar_hil.config import ResumeSignalConfig
from litestar_hil.engine.signals import ResumeSignalDispatcher
from litestar_hil.engine.workers import PeriodicWorker, ResumeSignalWorker, SLASweeper

if TYPE_CHECKING:
    from litestar_hil.engine.state_machine import TaskStateEngine


class CountingWorker(PeriodicWorker):
    name = "counting"

    def __init__(self, interval: float, *, fail_first: bool = False) -> None:
        super().__init__(interval)
        self.rounds = 0
        self.fail_first = fail_first
        self.ran = asyncio.Event()

    async def run_once(self) -> None:
        self.rounds += 1
        self.ran.set()
        if self.fail_first and self.rounds == 1:
            raise RuntimeError("database unavailable")


async def _wait_for_round(worker: CountingWorker) -> None:
    await asyncio.wait_for(worker.ran.wait(), timeout=1)
    worker.ran.clear()


@pytest.mark.unit
class TestPeriodicWorker:
    """Tests for the periodic worker loop."""

    async def test_runs_immediately_and_stops(self) -> None:
        worker = CountingWorker(interval=60)

        worker.start()
        await _wait_for_round(worker)
        assert worker.running

        await worker.stop()

        assert not worker.running
        assert worker.rounds == 1

    async def test_wake_starts_next_round(self) -> None:
        worker = CountingWorker(interval=60)
        worker.start()
        await _wait_for_round(worker)

        worker.wake()
        await _wait_for_round(worker)

        assert worker.rounds == 2
        await worker.stop()

    async def test_failing_round_is_logged_and_loop_continues(self, caplog: pytest.LogCaptureFixture) -> None:
        worker = CountingWorker(interval=60, fail_first=True)

        with caplog.at_level(logging.ERROR, logger="litestar_hil.engine.workers"):
            worker.start()
            await _wait_for_round(worker)
            await asyncio.sleep(0)
            worker.wake()
            await _wait_for_round(worker)

        assert worker.running
        assert worker.rounds == 2
        assert "counting round failed" in caplog.text
        await worker.stop()

    async def test_start_twice_keeps_one_loop(self) -> None:
        worker = CountingWorker(interval=60)
        worker.start()
        worker.start()
        await _wait_for_round(worker)

        await worker.stop()

        assert worker.rounds == 1

    async def test_stop_without_start(self) -> None:
        worker = CountingWorker(interval=60)

        await worker.stop()

        assert not worker.running

    def test_base_worker_is_abstract(self) -> None:
        with pytest.raises(TypeError, match="abstract"):
            PeriodicWorker(interval=1)  # type: ignore[abstract]


@pytest.mark.integration
class TestWorkers:
    """Tests for the concrete workers."""

    async def test_sweeper_runs_sweep(self, engine: TaskStateEngine) -> None:
        calls: list[int] = []

        async def sweep() -> None:
            calls.append(1)

        sweeper = SLASweeper(engine.sla, interval=60)
        engine.sla.sweep = sweep  # type: ignore[method-assign]

        await sweeper.run_once()

        assert calls == [1]
        assert sweeper.tracker is engine.sla

    async def test_signal_worker_delivers_pending(self, engine: TaskStateEngine) -> None:
        dispatcher = ResumeSignalDispatcher(engine, ResumeSignalConfig(url=None))
        worker = ResumeSignalWorker(dispatcher, interval=60)

        await worker.run_once()

        assert worker.dispatcher is dispatcher
