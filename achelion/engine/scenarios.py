"""
Scripted Scenarios - Deterministic phase timelines

While a scenario is active the phase is a pure function of elapsed
scenario time, looked up from ordered breakpoints.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from achelion.core.exceptions import UnknownScenario
from achelion.core.models import ModulePatch, Phase


@dataclass(frozen=True)
class ScenarioStep:
    start: float  # seconds since scenario start
    phase: Phase
    label: str


@dataclass(frozen=True)
class Scenario:
    id: str
    name: str
    steps: Tuple[ScenarioStep, ...]
    module_overrides: Dict[Phase, Tuple[ModulePatch, ...]] = field(default_factory=dict)

    def step_at(self, t: float) -> ScenarioStep:
        current = self.steps[0]
        for step in self.steps:
            if step.start <= t:
                current = step
            else:
                break
        return current

    def phase_age(self, t: float) -> float:
        """Seconds since the current contiguous run of the phase began."""
        idx = self.steps.index(self.step_at(t))
        phase = self.steps[idx].phase
        while idx > 0 and self.steps[idx - 1].phase == phase:
            idx -= 1
        return max(0.0, t - self.steps[idx].start)

    def has_reentry(self) -> bool:
        return any(step.phase == Phase.REENTRY for step in self.steps)

    def describe(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "steps": [
                {"start": s.start, "phase": s.phase.value, "label": s.label}
                for s in self.steps
            ],
        }


def _m(risk: float, flag: bool, conf: float) -> ModulePatch:
    return ModulePatch(risk_score=risk, stress_flag=flag, confidence=conf)


S1 = Scenario(
    id="S1",
    name="Correlated Crash & Re-entry",
    steps=(
        ScenarioStep(0.0, Phase.CALM, "Calm markets, risk-on"),
        ScenarioStep(12.0, Phase.BUILD_STRESS, "Correlated stress building"),
        ScenarioStep(30.0, Phase.CIRCUIT_BREAK, "Circuit breaker fires"),
        ScenarioStep(32.0, Phase.DELEVERAGE, "Deleveraging"),
        ScenarioStep(50.0, Phase.STABILIZE, "Stabilizing"),
        ScenarioStep(72.0, Phase.ARES_GATES, "ARES gate checks"),
        ScenarioStep(100.0, Phase.REENTRY, "Re-entry (PM authority)"),
    ),
)

S2 = Scenario(
    id="S2",
    name="Crypto Contagion",
    steps=(
        ScenarioStep(0.0, Phase.CALM, "Calm markets, risk-on"),
        ScenarioStep(8.0, Phase.BUILD_STRESS, "Crypto microstructure breaks"),
        ScenarioStep(26.0, Phase.DELEVERAGE, "Crypto sleeve deleveraging"),
        ScenarioStep(44.0, Phase.STABILIZE, "Contagion contained"),
        ScenarioStep(64.0, Phase.CALM, "Back to calm"),
    ),
    module_overrides={
        Phase.BUILD_STRESS: (
            _m(0.52, True, 0.84), _m(0.78, True, 0.82), _m(0.30, False, 0.80),
            _m(0.28, False, 0.79), _m(0.32, False, 0.80), _m(0.72, True, 0.78),
        ),
        Phase.DELEVERAGE: (
            _m(0.40, False, 0.84), _m(0.60, True, 0.80), _m(0.26, False, 0.82),
            _m(0.25, False, 0.81), _m(0.27, False, 0.81), _m(0.55, False, 0.78),
        ),
    },
)

S3 = Scenario(
    id="S3",
    name="Re-entry Drill",
    steps=(
        ScenarioStep(0.0, Phase.STABILIZE, "Post-stress stabilization"),
        ScenarioStep(12.0, Phase.ARES_GATES, "ARES gate checks"),
        ScenarioStep(38.0, Phase.REENTRY, "Re-entry (PM authority)"),
    ),
)


SCENARIOS: Dict[str, Scenario] = {s.id: s for s in (S1, S2, S3)}


def get_scenario(scenario_id: Optional[str]) -> Scenario:
    scenario = SCENARIOS.get(scenario_id) if scenario_id else None
    if scenario is None:
        raise UnknownScenario(
            f"Unknown scenario {scenario_id!r}; expected one of {sorted(SCENARIOS)}"
        )
    return scenario
