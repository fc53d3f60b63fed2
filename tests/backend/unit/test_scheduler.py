import asyncio

import pytest

from tasktower.backend.config import GameConfig
from tasktower.backend.engine import GameSession
from tasktower.backend.models import Phase
from tasktower.backend.scheduler import PeriodicTask, PhaseTicker


def test_periodic_task_rejects_non_positive_interval() -> None:
    with pytest.raises(ValueError):
        PeriodicTask(name="bad", interval=0, callback=lambda: None)


def test_periodic_task_runs_until_stopped() -> None:
    calls: list[int] = []

    async def scenario() -> int:
        job = PeriodicTask(name="counter", interval=0.01, callback=lambda: calls.append(1))
        job.start()
        assert job.is_running is True
        await asyncio.sleep(0.1)
        job.stop()
        await job.wait_closed()
        assert job.is_running is False
        return len(calls)

    count = asyncio.run(scenario())

    assert count >= 2
    assert len(calls) == count


def test_periodic_task_awaits_coroutine_callbacks_and_survives_errors() -> None:
    calls: list[str] = []

    async def flaky() -> None:
        calls.append("run")
        if len(calls) == 1:
            raise RuntimeError("boom")

    async def scenario() -> None:
        job = PeriodicTask(name="flaky", interval=0.01, callback=flaky)
        job.start()
        await asyncio.sleep(0.1)
        job.stop()
        await job.wait_closed()

    asyncio.run(scenario())

    assert len(calls) >= 2


def test_trigger_runs_callback_before_interval_elapses() -> None:
    calls: list[int] = []

    async def scenario() -> None:
        job = PeriodicTask(name="nudged", interval=60, callback=lambda: calls.append(1))
        job.start()
        await asyncio.sleep(0)
        job.trigger()
        await asyncio.sleep(0.05)
        job.stop()
        await job.wait_closed()

    asyncio.run(scenario())

    assert calls == [1]


def test_phase_ticker_tick_advances_session() -> None:
    session = GameSession(GameConfig(round_time=1, break_time=1, max_rounds=1))
    session.start_round()
    ticker = PhaseTicker(session)

    for _ in range(59):
        assert ticker.tick() == []
    events = ticker.tick()

    assert session.phase is Phase.BREAK
    assert events[0]["to"] == "break"


def test_phase_ticker_counts_down_in_background() -> None:
    session = GameSession(GameConfig(round_time=1, break_time=1, max_rounds=1))
    session.start_round()

    async def scenario() -> None:
        ticker = PhaseTicker(session, interval=0.01)
        ticker.start()
        await asyncio.sleep(0.1)
        ticker.stop()
        await ticker.wait_closed()
        assert ticker.is_running is False

    asyncio.run(scenario())

    assert session.phase is Phase.WORK
    assert session.timer < 60
