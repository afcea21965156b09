"""
Tick Context - Mutable working copy of one snapshot

A tick (or a control operation) copies the published snapshot into a
TickContext, lets the aggregators mutate it, then freezes the result into
a brand-new SystemSnapshot. The published snapshot is never touched.
"""

import random
from typing import Dict, List, Optional

from achelion.core.models import (
    GateStatus,
    ModuleSignal,
    Phase,
    PillarId,
    PillarSignal,
    PillarSummary,
    PortfolioSnapshot,
    SIGNAL_FIELDS,
    SystemSnapshot,
    clamp01,
)
from achelion.engine.alerts import AlertLog, DEFAULT_CAPACITY
from achelion.engine.regime import RegimeState, clamp_ceiling


class TickContext:

    def __init__(
        self,
        previous: SystemSnapshot,
        ts: float,
        rng: random.Random,
        alert_capacity: int = DEFAULT_CAPACITY,
    ):
        self.previous = previous
        self.ts = ts
        self.rng = rng

        self.regime_state = RegimeState(
            regime=previous.regime,
            ceiling=previous.exposure_ceiling,
            stress_source=previous.stress_source,
        )
        self.modules: List[ModuleSignal] = list(previous.modules)
        self.gates: GateStatus = previous.gates
        self.signals: Dict[PillarId, List[PillarSignal]] = {
            pillar: list(previous.signals_for(pillar)) for pillar in SIGNAL_FIELDS
        }
        self.pillars: Dict[PillarId, PillarSummary] = dict(previous.pillars)
        self.portfolio: Optional[PortfolioSnapshot] = previous.portfolio
        self.alerts = AlertLog(previous.alerts, capacity=alert_capacity, ts=ts, rng=rng)

    def set_regime(self, state: RegimeState) -> None:
        self.regime_state = RegimeState(
            regime=state.regime,
            ceiling=clamp_ceiling(state.ceiling),
            stress_source=state.stress_source,
        )

    def set_pillar(self, pillar: PillarId, **patch) -> None:
        for key in ("score", "confidence"):
            if patch.get(key) is not None:
                patch[key] = clamp01(patch[key])
        self.pillars[pillar] = self.pillars[pillar].model_copy(
            update={**patch, "updated_at": self.ts}
        )

    def publish(
        self,
        phase: Phase,
        scenario_id: Optional[str] = None,
        scenario_name: Optional[str] = None,
        scenario_t: Optional[float] = None,
        scenario_step: Optional[str] = None,
    ) -> SystemSnapshot:
        fields = {
            SIGNAL_FIELDS[pillar]: tuple(signals) for pillar, signals in self.signals.items()
        }
        return SystemSnapshot(
            ts=self.ts,
            scenario_id=scenario_id,
            scenario_name=scenario_name,
            scenario_t=scenario_t,
            scenario_step=scenario_step,
            phase=phase,
            regime=self.regime_state.regime,
            exposure_ceiling=clamp_ceiling(self.regime_state.ceiling),
            stress_source=self.regime_state.stress_source,
            modules=tuple(self.modules),
            gates=self.gates,
            portfolio=self.portfolio,
            pillars=dict(self.pillars),
            alerts=self.alerts.events(),
            **fields,
        )
