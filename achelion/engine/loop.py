"""
Scenario Loop - Core simulation orchestration

Advances the engine one tick at a time:
1. Advance the clock (scenario clock or phase dwell clock)
2. Drift pillar scores (free-running only)
3. Request the phase's regime/ceiling/stress source
4. Aggregate ARAS modules (stress source + crash override)
5. Roll up the five sub-signal pillars
6. Update gates, headlines and statuses
7. Allocate the portfolio
8. Publish a new immutable snapshot

`advance` is pure in (state, dt, rng): it never mutates its inputs and
returns a new EngineState, so several engines can run side by side and a
seeded run replays exactly.
"""

import logging
import random
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict

from achelion.core.config import EngineConfig
from achelion.core.exceptions import UnknownControlAction, UnknownPhase, UnknownScenario
from achelion.core.models import (
    GateState,
    GateStatus,
    Phase,
    PILLAR_DEFINITIONS,
    PillarId,
    PillarStatus,
    PillarSummary,
    ReentryAuthorization,
    ReentryState,
    Regime,
    Severity,
    StressSource,
    SystemSnapshot,
)
from achelion.engine.alerts import AlertLog
from achelion.engine.context import TickContext
from achelion.engine.modules import INITIAL_MODULES, ModuleAggregator
from achelion.engine.phases import PROFILES, PhaseProfile, gate_updates, next_phase
from achelion.engine.portfolio import PortfolioAllocator
from achelion.engine.regime import nominal_ceiling, resolve_regime
from achelion.engine.reentry import FINAL_TRANCHE, TRANCHE_CEILINGS, is_complete, resolve_reentry
from achelion.engine.scenarios import SCENARIOS, Scenario
from achelion.engine.signals import normalize_signals, update_signals


logger = logging.getLogger(__name__)

CONTROL_TAGS = ["system", "scenario"]


class EngineState(BaseModel):
    """Everything the engine needs to produce the next tick."""
    model_config = ConfigDict(frozen=True)

    snapshot: SystemSnapshot
    phase: Phase = Phase.CALM
    phase_age: float = 0.0
    phase_entered: bool = True
    clock: float = 0.0  # logical seconds since the engine started
    epoch: float = 0.0  # wall-clock origin added to `clock` for snapshot timestamps
    scenario_id: Optional[str] = None
    scenario_t: float = 0.0
    reentry: ReentryAuthorization = ReentryAuthorization()
    tick_count: int = 0


class ScenarioEngine:
    """
    Main simulation orchestrator.

    Holds configuration and the stateless components; all evolving
    state lives in EngineState values passed in and returned.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        allocator: Optional[PortfolioAllocator] = None,
        scenarios: Optional[Dict[str, Scenario]] = None,
    ):
        """
        Args:
            config: Engine configuration (dwell times, alert capacity, drift)
            allocator: Portfolio allocator; defaults to the standard universe
            scenarios: Scripted timelines by id; defaults to the built-in set
        """
        self.config = config or EngineConfig()
        self.modules = ModuleAggregator(repeat_crash_alerts=self.config.repeat_crash_alerts)
        self.allocator = allocator or PortfolioAllocator()
        self.scenarios = scenarios if scenarios is not None else dict(SCENARIOS)

    # ---------------------------------------------------------
    # INITIAL STATE
    # ---------------------------------------------------------

    def initial_state(self, rng: random.Random, epoch: float = 0.0) -> EngineState:
        ts = epoch
        pillars = {
            pid: PillarSummary(
                id=pid,
                name=name,
                category=category,
                status=PillarStatus.OK,
                score=0.18 if pid == PillarId.ARAS else 0.20,
                confidence=0.82,
                headline="Nominal",
                updated_at=ts,
            )
            for pid, name, category in PILLAR_DEFINITIONS
        }
        calm = PROFILES[Phase.CALM]

        alerts = AlertLog(capacity=self.config.alert_capacity, ts=ts, rng=rng)
        alerts.push(Severity.INFO, "Engine initialized", "Demo scenario engine online.", ["system"])

        snapshot = SystemSnapshot(
            ts=ts,
            phase=Phase.CALM,
            regime=Regime.RISK_ON,
            exposure_ceiling=nominal_ceiling(Regime.RISK_ON),
            stress_source=StressSource.GENERAL,
            modules=INITIAL_MODULES,
            gates=GateStatus(),
            macro_signals=tuple(normalize_signals(calm.signals[PillarId.MACRO])),
            master_signals=tuple(normalize_signals(calm.signals[PillarId.MASTER])),
            kevlar_signals=tuple(normalize_signals(calm.signals[PillarId.KEVLAR])),
            perm_signals=tuple(normalize_signals(calm.signals[PillarId.PERM])),
            slof_signals=tuple(normalize_signals(calm.signals[PillarId.SLOF])),
            portfolio=self.allocator.allocate(
                nominal_ceiling(Regime.RISK_ON), Regime.RISK_ON, StressSource.GENERAL
            ),
            pillars=pillars,
            alerts=alerts.events(),
        )
        return EngineState(snapshot=snapshot, epoch=epoch)

    # ---------------------------------------------------------
    # TICK
    # ---------------------------------------------------------

    def advance(self, state: EngineState, dt: float, rng: random.Random) -> EngineState:
        """
        Execute one tick `dt` seconds after the previous one.

        Args:
            state: State produced by the previous tick or control operation
            dt: Elapsed logical seconds since that state
            rng: Seeded generator for drift, ambient alerts and alert ids

        Returns:
            New EngineState carrying the freshly published snapshot
        """
        dt = max(0.0, dt)
        clock = state.clock + dt
        ctx = TickContext(
            state.snapshot, state.epoch + clock, rng, self.config.alert_capacity
        )

        # Step 1: Advance the clock
        scenario = self.scenarios.get(state.scenario_id) if state.scenario_id else None
        step_label = None
        if scenario is not None:
            scenario_t = state.scenario_t + dt
            step = scenario.step_at(scenario_t)
            phase = step.phase
            phase_age = scenario.phase_age(scenario_t)
            step_label = step.label
            entered = state.phase_entered or phase != state.phase
            if phase != state.phase:
                ctx.alerts.push(
                    Severity.INFO,
                    f"Scenario {scenario.id}: {step.label}",
                    f"Phase {state.phase.value} → {phase.value} at t={scenario_t:.1f}s",
                    CONTROL_TAGS,
                )
                logger.info(f"[ScenarioEngine] {scenario.id} t={scenario_t:.1f}s phase → {phase.value}")
        else:
            scenario_t = 0.0
            phase = state.phase
            phase_age = state.phase_age + dt
            entered = state.phase_entered

            # Step 2: Drift (free-running only)
            if dt > 0:
                self._apply_drift(ctx, rng)

        profile = PROFILES[phase]
        reentry: Optional[ReentryState] = (
            resolve_reentry(state.reentry, clock) if scenario is not None else None
        )
        reentry_active = scenario is not None and phase == Phase.REENTRY

        # Step 3: Regime request
        self._request_regime(ctx, profile, reentry if reentry_active else None)

        # Step 4: ARAS modules (may force CRASH)
        patch = profile.modules
        if scenario is not None:
            patch = scenario.module_overrides.get(phase, patch)
        self.modules.update(ctx, patch)

        # Step 5: Sub-signal pillars
        for pillar, inputs in profile.signals.items():
            update_signals(ctx, pillar, inputs)

        # Step 6: Gates, headlines, statuses
        self._apply_gates(ctx, phase, phase_age, monotonic=scenario is not None)
        self._apply_headlines(ctx, profile, reentry if reentry_active else None)

        if scenario is None and dt > 0:
            self._ambient_alerts(ctx, profile, rng)
        if entered and profile.entry_alert is not None:
            a = profile.entry_alert
            ctx.alerts.push(a.severity, a.title, a.detail, a.tags)

        # Step 7: Portfolio
        ctx.portfolio = self._allocate(ctx, reentry, reentry_active)

        # Free-running dwell transition takes effect from the next tick
        next_state_phase, next_age, next_entered = phase, phase_age, False
        if scenario is None and phase_age > self.config.dwell_times[phase]:
            next_state_phase = next_phase(phase)
            next_age, next_entered = 0.0, True
            ctx.alerts.push(
                Severity.INFO, f"Phase → {next_state_phase.value}", "Phase dwell elapsed", CONTROL_TAGS
            )
            logger.info(f"[ScenarioEngine] phase {phase.value} → {next_state_phase.value}")

        # Step 8: Publish
        snapshot = ctx.publish(
            phase,
            scenario_id=scenario.id if scenario else None,
            scenario_name=scenario.name if scenario else None,
            scenario_t=round(scenario_t, 3) if scenario else None,
            scenario_step=step_label,
        )

        return state.model_copy(update={
            "snapshot": snapshot,
            "phase": next_state_phase,
            "phase_age": next_age,
            "phase_entered": next_entered,
            "clock": clock,
            "scenario_t": scenario_t,
            "tick_count": state.tick_count + 1,
        })

    def _apply_drift(self, ctx: TickContext, rng: random.Random) -> None:
        half = self.config.drift_amplitude / 2
        for pid, pillar in list(ctx.pillars.items()):
            if pillar.score is None or pillar.confidence is None:
                continue
            ctx.set_pillar(
                pid,
                score=pillar.score + rng.uniform(-half, half),
                confidence=pillar.confidence + rng.uniform(-half, half),
            )

    def _request_regime(
        self,
        ctx: TickContext,
        profile: PhaseProfile,
        reentry: Optional[ReentryState],
    ) -> None:
        if reentry is not None:
            if is_complete(reentry):
                ctx.set_regime(resolve_regime(
                    Regime.RISK_ON, StressSource.GENERAL, TRANCHE_CEILINGS[FINAL_TRANCHE]
                ))
            else:
                ctx.set_regime(resolve_regime(
                    Regime.NEUTRAL, StressSource.GENERAL, reentry.tranche_ceiling
                ))
            return

        current = ctx.regime_state
        ceiling = profile.ceiling
        if profile.cap_to_previous:
            ceiling = min(current.ceiling, ceiling)
        source = profile.stress_source or current.stress_source
        ctx.set_regime(resolve_regime(profile.regime, source, ceiling))

    def _apply_gates(self, ctx: TickContext, phase: Phase, age: float, monotonic: bool) -> None:
        updates = gate_updates(phase, age)
        if updates is None:
            return

        current = ctx.gates
        if monotonic:
            # Within a scripted timeline a passed gate stays passed
            updates = {
                name: GateState.PASS if getattr(current, name) == GateState.PASS else value
                for name, value in updates.items()
            }

        for name, value in updates.items():
            if value == GateState.PASS and getattr(current, name) != GateState.PASS:
                ctx.alerts.push(
                    Severity.INFO, f"ARES: {name} → PASS", None, ["pillar:ARES", "gate"]
                )
        ctx.gates = current.model_copy(update=updates)

    def _apply_headlines(
        self,
        ctx: TickContext,
        profile: PhaseProfile,
        reentry: Optional[ReentryState],
    ) -> None:
        fmt = {
            "ceiling": ctx.regime_state.ceiling,
            "source": ctx.regime_state.stress_source.value,
        }
        for pillar, (status, headline) in profile.pillars.items():
            patch = {"headline": headline.format(**fmt)}
            if status is not None:
                patch["status"] = status
            ctx.set_pillar(pillar, **patch)

        if profile.phase == Phase.ARES_GATES:
            passed = ctx.gates.pass_count()
            ctx.set_pillar(
                PillarId.ARES,
                status=PillarStatus.TRIGGERED if passed >= 3 else PillarStatus.ACTIVE,
                headline="Gates passed (3/3); ready" if passed >= 3 else f"Gate checks in progress ({passed}/3)",
            )

        if reentry is not None:
            if not reentry.approved:
                status, headline = PillarStatus.ACTIVE, "Gates passed (3/3); awaiting PM approval"
            elif is_complete(reentry):
                status, headline = PillarStatus.TRIGGERED, f"Re-entry complete (tranche {FINAL_TRANCHE}/{FINAL_TRANCHE})"
            else:
                status, headline = (
                    PillarStatus.TRIGGERED,
                    f"Deploying tranche {reentry.tranche}/{FINAL_TRANCHE} "
                    f"(ceiling {reentry.tranche_ceiling:.0%})",
                )
            ctx.set_pillar(PillarId.ARES, status=status, headline=headline)

    def _ambient_alerts(self, ctx: TickContext, profile: PhaseProfile, rng: random.Random) -> None:
        for a in profile.ambient_alerts:
            if rng.random() < a.probability:
                ctx.alerts.push(a.severity, a.title, a.detail, a.tags)

    def _allocate(
        self,
        ctx: TickContext,
        reentry: Optional[ReentryState],
        reentry_active: bool,
    ):
        state = ctx.regime_state
        ceiling = state.ceiling
        if reentry_active and reentry is not None:
            ceiling = min(ceiling, reentry.tranche_ceiling)
        return self.allocator.allocate(
            ceiling,
            state.regime,
            state.stress_source,
            reentry=reentry,
            reentry_active=reentry_active,
        )

    # ---------------------------------------------------------
    # CONTROL OPERATIONS
    # ---------------------------------------------------------

    def _alerts(self, state: EngineState, rng: random.Random) -> AlertLog:
        return AlertLog(
            state.snapshot.alerts,
            capacity=self.config.alert_capacity,
            ts=state.epoch + state.clock,
            rng=rng,
        )

    def _settle(self, state: EngineState, rng: random.Random) -> EngineState:
        """
        Re-evaluate at the current instant after a control change.

        Publishes a snapshot in which phase, regime, gates and portfolio all
        reflect the change. Not counted as a tick.
        """
        settled = self.advance(state, 0.0, rng)
        return settled.model_copy(update={"tick_count": state.tick_count})

    def set_phase(self, state: EngineState, phase, rng: random.Random) -> EngineState:
        """
        Force the free-running machine into `phase` and restart its dwell clock.

        An active scenario is dropped; the operator takes over the timeline.
        """
        try:
            target = Phase(phase)
        except ValueError:
            raise UnknownPhase(
                f"Unknown phase {phase!r}; expected one of {[p.value for p in Phase]}"
            )

        alerts = self._alerts(state, rng)
        alerts.push(Severity.INFO, f"Phase → {target.value}", "Scenario controller", CONTROL_TAGS)
        logger.info(f"[ScenarioEngine] set phase → {target.value}")
        if state.scenario_id is not None:
            logger.info(f"[ScenarioEngine] scenario {state.scenario_id} dropped by manual phase change")

        return self._settle(state.model_copy(update={
            "phase": target,
            "phase_age": 0.0,
            "phase_entered": True,
            "scenario_id": None,
            "scenario_t": 0.0,
            "reentry": ReentryAuthorization(),
            "snapshot": state.snapshot.model_copy(update={"alerts": alerts.events()}),
        }), rng)

    def set_scenario(self, state: EngineState, scenario_id: Optional[str], rng: random.Random) -> EngineState:
        """Switch to a scripted timeline; resets its clock, gates and re-entry approval."""
        scenario = self.scenarios.get(scenario_id) if scenario_id else None
        if scenario is None:
            raise UnknownScenario(
                f"Unknown scenario {scenario_id!r}; expected one of {sorted(self.scenarios)}"
            )

        first = scenario.step_at(0.0)
        alerts = self._alerts(state, rng)
        alerts.push(
            Severity.INFO, f"Scenario → {scenario.id}: {scenario.name}", "Scenario controller", CONTROL_TAGS
        )
        logger.info(f"[ScenarioEngine] scenario → {scenario.id} ({scenario.name})")

        # Gates restart from WAIT; the scripted timeline only ever passes them
        snapshot = state.snapshot.model_copy(update={
            "gates": GateStatus(),
            "alerts": alerts.events(),
        })
        return self._settle(state.model_copy(update={
            "snapshot": snapshot,
            "scenario_id": scenario.id,
            "scenario_t": 0.0,
            "phase": first.phase,
            "phase_age": 0.0,
            "phase_entered": True,
            "reentry": ReentryAuthorization(),
        }), rng)

    def clear_scenario(self, state: EngineState, rng: random.Random) -> EngineState:
        """Return to free-running mode from the current phase."""
        alerts = self._alerts(state, rng)
        alerts.push(Severity.INFO, "Scenario cleared", "Free-running mode", CONTROL_TAGS)
        logger.info("[ScenarioEngine] scenario cleared")

        return self._settle(state.model_copy(update={
            "snapshot": state.snapshot.model_copy(update={"alerts": alerts.events()}),
            "scenario_id": None,
            "scenario_t": 0.0,
            "phase_age": 0.0,
            "reentry": ReentryAuthorization(),
        }), rng)

    def auto_demo(self, state: EngineState, rng: random.Random) -> EngineState:
        state = self.set_scenario(state, self.config.default_scenario, rng)
        alerts = self._alerts(state, rng)
        alerts.push(Severity.INFO, "AUTO-DEMO started", "Scenario controller", CONTROL_TAGS)
        return state.model_copy(update={
            "snapshot": state.snapshot.model_copy(update={"alerts": alerts.events()}),
        })

    def approve_reentry(self, state: EngineState, rng: random.Random) -> EngineState:
        """
        Grant PM approval; tranche deployment is timed from this moment.

        No effect outside a scenario that has a re-entry phase, or when
        approval was already granted.
        """
        scenario = self.scenarios.get(state.scenario_id) if state.scenario_id else None
        if scenario is None or not scenario.has_reentry():
            logger.info("[ScenarioEngine] re-entry approval ignored (no re-entry scenario active)")
            return state
        if state.reentry.approved:
            return state

        alerts = self._alerts(state, rng)
        alerts.push(
            Severity.WATCH,
            "Re-entry authorized (PM)",
            f"Tranche deployment started for {scenario.id}; full ceiling after tranche {FINAL_TRANCHE}.",
            ["pillar:ARES", "scenario"],
        )
        logger.info(f"[ScenarioEngine] re-entry approved at clock={state.clock:.1f}s")

        return self._settle(state.model_copy(update={
            "reentry": ReentryAuthorization(approved=True, approved_at=state.clock),
            "snapshot": state.snapshot.model_copy(update={"alerts": alerts.events()}),
        }), rng)

    def apply_control(
        self,
        state: EngineState,
        action: Optional[str],
        rng: random.Random,
        phase: Optional[str] = None,
        scenario_id: Optional[str] = None,
    ) -> EngineState:
        """
        Dispatch a named control action.

        Raises:
            UnknownControlAction: When `action` is not recognized
            UnknownPhase / UnknownScenario: When the argument is invalid
        """
        if action == "setPhase":
            return self.set_phase(state, phase, rng)
        if action == "setScenario":
            return self.set_scenario(state, scenario_id, rng)
        if action == "clearScenario":
            return self.clear_scenario(state, rng)
        if action == "autoDemo":
            return self.auto_demo(state, rng)
        if action == "approveReentry":
            return self.approve_reentry(state, rng)
        raise UnknownControlAction(f"Unknown action {action!r}")
