"""
Simulation Runner - Fixed-rate driver for the scenario engine

Owns the single EngineState of a running process and swaps it on every
tick. Readers get whichever snapshot was published last; control
operations and ticks are serialized so neither sees the other half-done.
"""

import asyncio
import logging
import random
import threading
import time
from typing import Callable, Optional

from achelion.core.config import EngineConfig
from achelion.core.models import SystemSnapshot
from achelion.engine.loop import EngineState, ScenarioEngine


logger = logging.getLogger(__name__)


class SimulationRunner:
    """
    Drives `ScenarioEngine.advance` from an asyncio task.

    Elapsed time between ticks comes from `clock` (monotonic by default),
    so tests can step the engine with an exact dt instead.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        engine: Optional[ScenarioEngine] = None,
        clock: Callable[[], float] = time.monotonic,
        epoch: Optional[float] = None,
    ):
        self.config = config or EngineConfig()
        self.engine = engine or ScenarioEngine(self.config)
        self.clock = clock
        self.rng = random.Random(self.config.seed)

        self._lock = threading.Lock()
        self._state: EngineState = self.engine.initial_state(
            self.rng, epoch=time.time() if epoch is None else epoch
        )
        self._last_tick: Optional[float] = None
        self._task: Optional[asyncio.Task] = None
        self._running = False

    # ---------------------------------------------------------
    # READ
    # ---------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def running(self) -> bool:
        return self._running

    def snapshot(self) -> SystemSnapshot:
        return self._state.snapshot

    # ---------------------------------------------------------
    # TICK
    # ---------------------------------------------------------

    def step(self, dt: Optional[float] = None) -> SystemSnapshot:
        """
        Run exactly one tick.

        Args:
            dt: Logical seconds to advance; measured from `clock` when omitted
        """
        with self._lock:
            now = self.clock()
            if dt is None:
                dt = self.config.tick_interval if self._last_tick is None else now - self._last_tick
            self._last_tick = now

            self._state = self.engine.advance(self._state, dt, self.rng)
            logger.debug(
                f"[SimulationRunner] tick {self._state.tick_count} "
                f"phase={self._state.snapshot.phase.value} ceiling={self._state.snapshot.exposure_ceiling:.2f}"
            )
            return self._state.snapshot

    def control(
        self,
        action: Optional[str],
        phase: Optional[str] = None,
        scenario_id: Optional[str] = None,
    ) -> SystemSnapshot:
        """Apply a control action; raises ControlError without changing state."""
        with self._lock:
            self._state = self.engine.apply_control(
                self._state, action, self.rng, phase=phase, scenario_id=scenario_id
            )
            return self._state.snapshot

    # ---------------------------------------------------------
    # LIFECYCLE
    # ---------------------------------------------------------

    async def _run(self) -> None:
        logger.info(f"[SimulationRunner] started (tick every {self.config.tick_interval}s)")

        while self._running:
            try:
                self.step()
            except Exception as e:
                # Next tick recomputes from the phase table, so keep going
                logger.exception(f"[SimulationRunner] tick failed: {e}")

            await asyncio.sleep(self.config.tick_interval)

        logger.info("[SimulationRunner] stopped")

    def start(self) -> bool:
        """Start ticking on the running event loop. Returns False if already running."""
        if self._running:
            return False

        self._running = True
        self._last_tick = self.clock()
        self._task = asyncio.get_running_loop().create_task(self._run())
        return True

    async def stop(self) -> None:
        self._running = False
        task, self._task = self._task, None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
