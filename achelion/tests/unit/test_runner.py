"""
Simulation runner: stepping, control, and the asyncio tick loop lifecycle.
"""

import asyncio

import pytest

from achelion.core.config import EngineConfig
from achelion.core.exceptions import UnknownControlAction, UnknownScenario
from achelion.core.models import Phase
from achelion.engine.runner import SimulationRunner


class FakeClock:
    def __init__(self, *readings):
        self.readings = list(readings)

    def __call__(self):
        return self.readings.pop(0)


def test_step_with_explicit_dt():
    runner = SimulationRunner(EngineConfig(seed=1), epoch=1000.0)
    snapshot = runner.step(0.4)

    assert runner.state.tick_count == 1
    assert snapshot.ts == pytest.approx(1000.4)
    assert runner.snapshot() is snapshot


def test_step_measures_dt_from_clock():
    runner = SimulationRunner(EngineConfig(seed=1), clock=FakeClock(5.0, 5.7), epoch=0.0)

    runner.step()  # first tick falls back to tick_interval
    runner.step()

    assert runner.state.clock == pytest.approx(0.4 + 0.7)


def test_control_switches_scenario():
    runner = SimulationRunner(EngineConfig(seed=1), epoch=0.0)
    runner.control("setScenario", scenario_id="S3")

    assert runner.state.scenario_id == "S3"
    assert runner.step(0.4).phase == Phase.STABILIZE


def test_rejected_control_leaves_state_untouched():
    runner = SimulationRunner(EngineConfig(seed=1), epoch=0.0)
    before = runner.state

    with pytest.raises(UnknownControlAction):
        runner.control("launchRockets")
    with pytest.raises(UnknownScenario):
        runner.control("setScenario", scenario_id="S9")

    assert runner.state is before


def test_start_stop_lifecycle():
    async def scenario():
        runner = SimulationRunner(EngineConfig(seed=1, tick_interval=0.01), epoch=0.0)

        assert runner.start() is True
        assert runner.start() is False  # already running
        await asyncio.sleep(0.1)

        await runner.stop()
        assert not runner.running
        ticks = runner.state.tick_count
        assert ticks >= 1

        await asyncio.sleep(0.05)
        assert runner.state.tick_count == ticks

        await runner.stop()  # idempotent
        assert runner.start() is True
        await runner.stop()

    asyncio.run(scenario())


def test_tick_failure_does_not_stop_loop():
    async def scenario():
        runner = SimulationRunner(EngineConfig(seed=1, tick_interval=0.01), epoch=0.0)
        real_advance = runner.engine.advance
        calls = {"n": 0}

        def flaky_advance(state, dt, rng):
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("boom")
            return real_advance(state, dt, rng)

        runner.engine.advance = flaky_advance
        runner.start()
        await asyncio.sleep(0.1)

        assert runner.running
        assert calls["n"] >= 2
        assert runner.state.tick_count >= 1
        await runner.stop()

    asyncio.run(scenario())
