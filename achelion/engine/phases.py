"""
Phase Profiles - What each phase writes on every tick

Deterministic tables only; when to advance lives in the loop. Each profile
carries the regime request, the six-module patch, the sub-signal lists,
pillar headlines, and a gate schedule keyed on phase age.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from achelion.core.models import (
    GateState,
    ModulePatch,
    Phase,
    PillarId,
    PillarStatus,
    Regime,
    Severity,
    SignalInput,
    StressSource,
)


CYCLE_ORDER: Tuple[Phase, ...] = (
    Phase.CALM,
    Phase.BUILD_STRESS,
    Phase.CIRCUIT_BREAK,
    Phase.DELEVERAGE,
    Phase.STABILIZE,
    Phase.ARES_GATES,
    Phase.REENTRY,
)


def next_phase(phase: Phase) -> Phase:
    return CYCLE_ORDER[(CYCLE_ORDER.index(phase) + 1) % len(CYCLE_ORDER)]


@dataclass(frozen=True)
class ScriptedAlert:
    severity: Severity
    title: str
    detail: str
    tags: Tuple[str, ...]
    probability: float = 1.0


@dataclass(frozen=True)
class PhaseProfile:
    phase: Phase
    regime: Regime
    ceiling: float
    stress_source: Optional[StressSource]  # None keeps the current source
    modules: Tuple[ModulePatch, ...]
    signals: Dict[PillarId, Tuple[SignalInput, ...]]
    # pillar -> (status or None to leave it, headline template)
    pillars: Dict[PillarId, Tuple[Optional[PillarStatus], str]]
    cap_to_previous: bool = False
    ambient_alerts: Tuple[ScriptedAlert, ...] = ()
    entry_alert: Optional[ScriptedAlert] = None


def _m(risk: float, flag: bool, conf: float) -> ModulePatch:
    return ModulePatch(risk_score=risk, stress_flag=flag, confidence=conf)


def _s(name: str, text: str, score: float, conf: float) -> SignalInput:
    return SignalInput(name=name, value_text=text, score=score, confidence=conf)


def _rows(names, rows) -> Tuple[SignalInput, ...]:
    return tuple(_s(name, *row) for name, row in zip(names, rows))


MACRO_NAMES = ("Liquidity ROC", "Vol regime", "Rates impulse", "Cross-asset corr")
MASTER_NAMES = ("Execution mode", "Queue depth", "Slippage est.")
KEVLAR_NAMES = ("Concentration caps", "DD guard", "Sector skew")
PERM_NAMES = ("Profit lock", "Trail stops", "TP ladder")
SLOF_NAMES = ("Overlay eligibility", "Sizing envelope", "Blocked reason")


def _signals(macro, master, kevlar, perm, slof) -> Dict[PillarId, Tuple[SignalInput, ...]]:
    return {
        PillarId.MACRO: _rows(MACRO_NAMES, macro),
        PillarId.MASTER: _rows(MASTER_NAMES, master),
        PillarId.KEVLAR: _rows(KEVLAR_NAMES, kevlar),
        PillarId.PERM: _rows(PERM_NAMES, perm),
        PillarId.SLOF: _rows(SLOF_NAMES, slof),
    }


CALM = PhaseProfile(
    phase=Phase.CALM,
    regime=Regime.RISK_ON,
    ceiling=0.90,
    stress_source=StressSource.GENERAL,
    modules=(
        _m(0.18, False, 0.88), _m(0.16, False, 0.86), _m(0.14, False, 0.84),
        _m(0.15, False, 0.83), _m(0.17, False, 0.82), _m(0.08, False, 0.80),
    ),
    signals=_signals(
        macro=[("flat", 0.22, 0.78), ("low", 0.18, 0.82), ("benign", 0.16, 0.74), ("contained", 0.20, 0.76)],
        master=[("normal", 0.20, 0.84), ("healthy", 0.18, 0.80), ("6 bps", 0.18, 0.76)],
        kevlar=[("nominal", 0.18, 0.86), ("nominal", 0.16, 0.82), ("ok", 0.20, 0.78)],
        perm=[("inactive", 0.14, 0.80), ("inactive", 0.12, 0.76), ("inactive", 0.10, 0.74)],
        slof=[("allowed", 0.16, 0.82), ("normal", 0.18, 0.78), ("—", 0.05, 0.90)],
    ),
    pillars={
        PillarId.ARAS: (PillarStatus.OK, "Risk-on; ceiling {ceiling:.0%}"),
        PillarId.MACRO: (None, "Liquidity stable"),
        PillarId.MASTER: (None, "Execution normal"),
        PillarId.KEVLAR: (None, "Caps nominal"),
        PillarId.PERM: (None, "Profit protection idle"),
        PillarId.SLOF: (None, "Overlay permitted (bounded)"),
        PillarId.ARES: (PillarStatus.SUSPENDED, "Monitoring (no re-entry needed)"),
    },
)

BUILD_STRESS = PhaseProfile(
    phase=Phase.BUILD_STRESS,
    regime=Regime.NEUTRAL,
    ceiling=0.65,
    stress_source=StressSource.CORRELATED,
    modules=(
        _m(0.46, False, 0.86), _m(0.56, True, 0.83), _m(0.54, True, 0.78),
        _m(0.51, True, 0.77), _m(0.49, False, 0.79), _m(0.53, True, 0.76),
    ),
    signals=_signals(
        macro=[("down", 0.62, 0.76), ("rising", 0.55, 0.74), ("tightening", 0.48, 0.70), ("high", 0.64, 0.72)],
        master=[("defensive", 0.46, 0.78), ("thinning", 0.52, 0.72), ("18 bps", 0.56, 0.70)],
        kevlar=[("tightening", 0.52, 0.80), ("watch", 0.48, 0.76), ("elevated", 0.50, 0.72)],
        perm=[("armed", 0.40, 0.78), ("armed", 0.38, 0.74), ("armed", 0.34, 0.72)],
        slof=[("restricted", 0.52, 0.76), ("tight", 0.56, 0.74), ("vol regime", 0.30, 0.82)],
    ),
    pillars={
        PillarId.ARAS: (PillarStatus.ACTIVE, "Stress building ({source})"),
        PillarId.MACRO: (None, "Liquidity ROC deteriorating"),
        PillarId.MASTER: (None, "Execution defensive"),
        PillarId.KEVLAR: (None, "Caps tightening"),
        PillarId.PERM: (None, "Profit protection arming"),
        PillarId.SLOF: (None, "Overlay restricted"),
        PillarId.ARES: (PillarStatus.SUSPENDED, "Re-entry locked (stress building)"),
    },
    ambient_alerts=(
        ScriptedAlert(Severity.WATCH, "ARAS: correlated stress rising",
                      "Crypto + equity modules elevated within 0.15 → CORRELATED.",
                      ("pillar:ARAS", "scenario"), probability=0.12),
        ScriptedAlert(Severity.WATCH, "MACRO: liquidity deteriorating",
                      "Liquidity ROC down; cross-asset corr rising.",
                      ("pillar:MACRO", "scenario"), probability=0.10),
    ),
)

CIRCUIT_BREAK = PhaseProfile(
    phase=Phase.CIRCUIT_BREAK,
    regime=Regime.DEFENSIVE,
    ceiling=0.40,
    stress_source=None,
    cap_to_previous=True,
    modules=(
        _m(0.72, True, 0.78), _m(0.79, True, 0.74), _m(0.82, True, 0.70),
        _m(0.76, True, 0.69), _m(0.74, True, 0.71), _m(0.68, True, 0.68),
    ),
    signals=_signals(
        macro=[("breakdown", 0.82, 0.74), ("spike", 0.86, 0.72), ("risk-off", 0.70, 0.66), ("1.0", 0.88, 0.70)],
        master=[("liquidate", 0.78, 0.80), ("thin", 0.74, 0.72), ("55 bps", 0.82, 0.68)],
        kevlar=[("hard", 0.76, 0.86), ("active", 0.80, 0.82), ("forced unwind", 0.70, 0.70)],
        perm=[("engaged", 0.74, 0.78), ("active", 0.72, 0.74), ("disabled", 0.55, 0.70)],
        slof=[("blocked", 0.86, 0.84), ("0", 0.90, 0.86), ("circuit breaker", 0.70, 0.92)],
    ),
    pillars={
        PillarId.ARAS: (PillarStatus.TRIGGERED, "Circuit breaker fired (one-way)"),
        PillarId.MACRO: (None, "Macro shock (corr=1)"),
        PillarId.MASTER: (None, "Pre-calculated orderbook executing"),
        PillarId.KEVLAR: (None, "Hard caps engaged"),
        PillarId.PERM: (None, "Profit protection engaged"),
        PillarId.SLOF: (None, "Overlay blocked"),
        PillarId.ARES: (PillarStatus.SUSPENDED, "Re-entry locked (circuit breaker)"),
    },
    entry_alert=ScriptedAlert(
        Severity.CRITICAL, "Circuit breaker: intraday deleverage",
        "Auto-trigger tightened regime. Relaxation requires 2 daily confirmations + PM approval.",
        ("pillar:ARAS", "pillar:MASTER", "scenario"),
    ),
)

DELEVERAGE = PhaseProfile(
    phase=Phase.DELEVERAGE,
    regime=Regime.DEFENSIVE,
    ceiling=0.35,
    stress_source=None,
    modules=(
        _m(0.58, True, 0.80), _m(0.62, True, 0.77), _m(0.60, True, 0.74),
        _m(0.57, True, 0.73), _m(0.52, False, 0.76), _m(0.55, True, 0.72),
    ),
    signals=_signals(
        macro=[("stressed", 0.64, 0.74), ("high", 0.70, 0.72), ("risk-off", 0.56, 0.68), ("elevated", 0.66, 0.70)],
        master=[("delever", 0.66, 0.82), ("recovering", 0.54, 0.74), ("28 bps", 0.60, 0.72)],
        kevlar=[("enforced", 0.62, 0.86), ("active", 0.58, 0.82), ("reducing", 0.50, 0.74)],
        perm=[("active", 0.54, 0.80), ("active", 0.50, 0.76), ("paused", 0.38, 0.74)],
        slof=[("blocked", 0.70, 0.86), ("tight", 0.60, 0.78), ("defensive", 0.42, 0.84)],
    ),
    pillars={
        PillarId.ARAS: (PillarStatus.TRIGGERED, "Deleveraging; ceiling {ceiling:.0%}"),
        PillarId.MACRO: (None, "Macro still stressed"),
        PillarId.MASTER: (None, "Deleveraging execution"),
        PillarId.KEVLAR: (None, "Concentration caps enforced"),
        PillarId.PERM: (None, "Profit protection active"),
        PillarId.SLOF: (None, "Overlay suspended (defensive)"),
        PillarId.ARES: (PillarStatus.SUSPENDED, "Re-entry locked (deleveraging)"),
    },
    ambient_alerts=(
        ScriptedAlert(Severity.INFO, "KEVLAR: caps enforced",
                      "Concentration + exposure caps actively constraining sizing.",
                      ("pillar:KEVLAR", "scenario"), probability=0.08),
    ),
)

STABILIZE = PhaseProfile(
    phase=Phase.STABILIZE,
    regime=Regime.NEUTRAL,
    ceiling=0.55,
    stress_source=StressSource.GENERAL,
    modules=(
        _m(0.34, False, 0.86), _m(0.33, False, 0.85), _m(0.31, False, 0.83),
        _m(0.30, False, 0.82), _m(0.29, False, 0.83), _m(0.28, False, 0.82),
    ),
    signals=_signals(
        macro=[("flattening", 0.48, 0.78), ("falling", 0.40, 0.76), ("neutral", 0.30, 0.72), ("cooling", 0.38, 0.74)],
        master=[("normalize", 0.36, 0.82), ("improving", 0.34, 0.76), ("12 bps", 0.38, 0.74)],
        kevlar=[("active", 0.40, 0.84), ("active", 0.36, 0.80), ("reducing", 0.32, 0.76)],
        perm=[("active", 0.34, 0.78), ("active", 0.30, 0.76), ("rebuilding", 0.26, 0.72)],
        slof=[("restricted", 0.40, 0.78), ("tight", 0.42, 0.76), ("cooldown", 0.22, 0.82)],
    ),
    pillars={
        PillarId.ARAS: (PillarStatus.ACTIVE, "Stabilizing; waiting confirmations"),
        PillarId.MACRO: (None, "Liquidity ROC flattening"),
        PillarId.MASTER: (None, "Execution normalizing"),
        PillarId.KEVLAR: (None, "Caps remain active"),
        PillarId.PERM: (None, "Profit protection cooling"),
        PillarId.SLOF: (None, "Overlay cooldown"),
        PillarId.ARES: (PillarStatus.ACTIVE, "Watching stress normalization (gate 1)"),
    },
)

ARES_GATES = PhaseProfile(
    phase=Phase.ARES_GATES,
    regime=Regime.NEUTRAL,
    ceiling=0.60,
    stress_source=StressSource.GENERAL,
    modules=(
        _m(0.26, False, 0.88), _m(0.25, False, 0.87), _m(0.22, False, 0.85),
        _m(0.23, False, 0.84), _m(0.24, False, 0.84), _m(0.20, False, 0.83),
    ),
    signals=_signals(
        macro=[("stable", 0.30, 0.82), ("normal", 0.26, 0.80), ("neutral", 0.24, 0.76), ("normal", 0.28, 0.78)],
        master=[("ready", 0.28, 0.84), ("healthy", 0.24, 0.80), ("10 bps", 0.28, 0.78)],
        kevlar=[("soft", 0.30, 0.84), ("soft", 0.28, 0.82), ("ok", 0.24, 0.78)],
        perm=[("standby", 0.24, 0.78), ("standby", 0.22, 0.76), ("standby", 0.20, 0.74)],
        slof=[("allowed", 0.22, 0.84), ("bounded", 0.26, 0.78), ("—", 0.05, 0.90)],
    ),
    pillars={
        PillarId.ARAS: (PillarStatus.OK, "Calm; gates may proceed"),
        PillarId.MACRO: (None, "Macro normalized (gate check)"),
        PillarId.MASTER: (None, "Execution ready"),
        PillarId.KEVLAR: (None, "Guards soft"),
        PillarId.PERM: (None, "Protection standby"),
        PillarId.SLOF: (None, "Overlay allowed (bounded)"),
    },
    ambient_alerts=(
        ScriptedAlert(Severity.INFO, "ARES gate update",
                      "Stress normalization passing; awaiting conviction/confirmation.",
                      ("pillar:ARES", "scenario"), probability=0.10),
    ),
)

REENTRY = PhaseProfile(
    phase=Phase.REENTRY,
    regime=Regime.RISK_ON,
    ceiling=0.85,
    stress_source=StressSource.GENERAL,
    modules=(
        _m(0.22, False, 0.88), _m(0.21, False, 0.87), _m(0.19, False, 0.85),
        _m(0.20, False, 0.84), _m(0.21, False, 0.84), _m(0.15, False, 0.83),
    ),
    signals=_signals(
        macro=[("good", 0.22, 0.84), ("normal", 0.20, 0.82), ("benign", 0.18, 0.78), ("contained", 0.22, 0.80)],
        master=[("attack-ready", 0.26, 0.86), ("healthy", 0.22, 0.82), ("9 bps", 0.24, 0.80)],
        kevlar=[("soft", 0.24, 0.86), ("soft", 0.22, 0.84), ("ok", 0.20, 0.78)],
        perm=[("standby", 0.20, 0.80), ("standby", 0.18, 0.78), ("standby", 0.16, 0.76)],
        slof=[("allowed", 0.18, 0.86), ("bounded", 0.22, 0.80), ("—", 0.05, 0.90)],
    ),
    pillars={
        PillarId.ARAS: (PillarStatus.OK, "Risk normal; ceiling {ceiling:.0%}"),
        PillarId.MACRO: (None, "Macro risk contained"),
        PillarId.MASTER: (None, "Execution normal"),
        PillarId.KEVLAR: (None, "Guards soft"),
        PillarId.PERM: (None, "Protection standby"),
        PillarId.SLOF: (None, "Overlay permitted (bounded)"),
        PillarId.ARES: (PillarStatus.TRIGGERED, "Re-entry window confirmed (3/3)"),
    },
    ambient_alerts=(
        ScriptedAlert(Severity.WATCH, "Re-entry authorized (PM)",
                      "Offensive actions require human authority; system prepared targets.",
                      ("pillar:ARES", "pillar:SLOF", "scenario"), probability=0.08),
    ),
)


PROFILES: Dict[Phase, PhaseProfile] = {
    p.phase: p for p in (CALM, BUILD_STRESS, CIRCUIT_BREAK, DELEVERAGE, STABILIZE, ARES_GATES, REENTRY)
}


def gate_updates(phase: Phase, age: float) -> Optional[Dict[str, GateState]]:
    """Gate values a phase writes at `age` seconds in; None leaves gates as they are."""
    if phase in (Phase.CALM, Phase.BUILD_STRESS):
        return {
            "gate1_stress_normalization": GateState.WAIT,
            "gate2_conviction": GateState.WAIT,
            "gate3_confirmation": GateState.WAIT,
        }
    if phase == Phase.STABILIZE:
        return {
            "gate1_stress_normalization": GateState.PASS if age > 10 else GateState.WAIT,
            "gate2_conviction": GateState.WAIT,
            "gate3_confirmation": GateState.WAIT,
        }
    if phase == Phase.ARES_GATES:
        return {
            "gate1_stress_normalization": GateState.PASS,
            "gate2_conviction": GateState.PASS if age > 10 else GateState.WAIT,
            "gate3_confirmation": GateState.PASS if age > 18 else GateState.WAIT,
        }
    if phase == Phase.REENTRY:
        return {
            "gate1_stress_normalization": GateState.PASS,
            "gate2_conviction": GateState.PASS,
            "gate3_confirmation": GateState.PASS,
        }
    return None
