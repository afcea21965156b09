"""
Core Models - Snapshot value types for the Achelion telemetry engine

Every record a reader can observe is a frozen pydantic model. The engine
builds a new SystemSnapshot each tick and swaps it in whole.
"""

from enum import Enum
from typing import Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict


def clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


class Severity(str, Enum):
    INFO = "info"
    WATCH = "watch"
    CRITICAL = "critical"


class PillarId(str, Enum):
    ARAS = "ARAS"
    MACRO = "MACRO"
    MASTER = "MASTER"
    KEVLAR = "KEVLAR"
    PERM = "PERM"
    SLOF = "SLOF"
    ARES = "ARES"


class PillarCategory(str, Enum):
    DEFENSIVE = "defensive"
    OFFENSIVE = "offensive"
    CONTEXT = "context"
    EXECUTION = "execution"


class PillarStatus(str, Enum):
    OK = "OK"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    TRIGGERED = "TRIGGERED"
    DEGRADED = "DEGRADED"


class Regime(str, Enum):
    RISK_ON = "RISK_ON"
    NEUTRAL = "NEUTRAL"
    DEFENSIVE = "DEFENSIVE"
    CRASH = "CRASH"


class StressSource(str, Enum):
    CRYPTO = "CRYPTO"
    EQUITY = "EQUITY"
    GENERAL = "GENERAL"
    CORRELATED = "CORRELATED"


class SourceBucket(str, Enum):
    CRYPTO = "CRYPTO"
    EQUITY = "EQUITY"
    MIXED = "MIXED"


class SignalLevel(str, Enum):
    OK = "OK"
    WATCH = "WATCH"
    RISK = "RISK"


class GateState(str, Enum):
    WAIT = "WAIT"
    PASS = "PASS"
    FAIL = "FAIL"


class Phase(str, Enum):
    CALM = "CALM"
    BUILD_STRESS = "BUILD_STRESS"
    CIRCUIT_BREAK = "CIRCUIT_BREAK"
    DELEVERAGE = "DELEVERAGE"
    STABILIZE = "STABILIZE"
    ARES_GATES = "ARES_GATES"
    REENTRY = "REENTRY"


class Sleeve(str, Enum):
    EQUITY = "EQUITY"
    CRYPTO = "CRYPTO"
    DEFENSE = "DEFENSE"
    CASH_OPTIONS = "CASH_OPTIONS"


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class ModuleSignal(FrozenModel):
    name: str
    risk_score: float
    stress_flag: bool
    confidence: float
    source_bucket: SourceBucket


class ModulePatch(FrozenModel):
    """Partial update for one module slot; None leaves the field as it was."""
    risk_score: Optional[float] = None
    stress_flag: Optional[bool] = None
    confidence: Optional[float] = None


class SignalInput(FrozenModel):
    name: str
    value_text: str
    score: float
    confidence: float
    level: Optional[SignalLevel] = None


class PillarSignal(FrozenModel):
    name: str
    value_text: str
    score: float
    confidence: float
    level: SignalLevel


class GateStatus(FrozenModel):
    gate1_stress_normalization: GateState = GateState.WAIT
    gate2_conviction: GateState = GateState.WAIT
    gate3_confirmation: GateState = GateState.WAIT

    def pass_count(self) -> int:
        return sum(
            1 for g in (self.gate1_stress_normalization, self.gate2_conviction, self.gate3_confirmation)
            if g == GateState.PASS
        )


class PillarSummary(FrozenModel):
    id: PillarId
    name: str
    category: PillarCategory
    status: PillarStatus
    score: Optional[float] = None
    confidence: Optional[float] = None
    headline: str
    updated_at: float


class AlertEvent(FrozenModel):
    id: str
    ts: float
    severity: Severity
    title: str
    detail: Optional[str] = None
    tags: Tuple[str, ...] = ()


class ReentryAuthorization(FrozenModel):
    """PM approval flag and the engine clock reading at which it was granted."""
    approved: bool = False
    approved_at: Optional[float] = None


class ReentryState(FrozenModel):
    approved: bool
    tranche: int
    tranche_ceiling: float


class Position(FrozenModel):
    ticker: str
    sleeve: Sleeve
    target_pct: float
    current_pct: float
    conviction: Optional[float] = None
    eligible: Optional[bool] = None
    tranche: Optional[int] = None
    reason: Optional[str] = None


class PortfolioSnapshot(FrozenModel):
    target_weights: Dict[Sleeve, float]
    current_weights: Dict[Sleeve, float]
    equity_crypto_ceiling: float
    max_overlay: float
    reentry: Optional[ReentryState] = None
    positions: Tuple[Position, ...] = ()


class SystemSnapshot(FrozenModel):
    ts: float

    # Scenario playback
    scenario_id: Optional[str] = None
    scenario_name: Optional[str] = None
    scenario_t: Optional[float] = None
    scenario_step: Optional[str] = None

    phase: Phase
    regime: Regime
    exposure_ceiling: float
    stress_source: StressSource

    modules: Tuple[ModuleSignal, ...]
    gates: GateStatus

    macro_signals: Tuple[PillarSignal, ...] = ()
    master_signals: Tuple[PillarSignal, ...] = ()
    kevlar_signals: Tuple[PillarSignal, ...] = ()
    perm_signals: Tuple[PillarSignal, ...] = ()
    slof_signals: Tuple[PillarSignal, ...] = ()

    portfolio: Optional[PortfolioSnapshot] = None
    pillars: Dict[PillarId, PillarSummary]
    alerts: Tuple[AlertEvent, ...] = ()

    def signals_for(self, pillar: PillarId) -> Tuple[PillarSignal, ...]:
        return getattr(self, SIGNAL_FIELDS[pillar])


# Pillars that roll up from named sub-signals, and where each list lives
SIGNAL_FIELDS: Dict[PillarId, str] = {
    PillarId.MACRO: "macro_signals",
    PillarId.MASTER: "master_signals",
    PillarId.KEVLAR: "kevlar_signals",
    PillarId.PERM: "perm_signals",
    PillarId.SLOF: "slof_signals",
}


PILLAR_DEFINITIONS: List[Tuple[PillarId, str, PillarCategory]] = [
    (PillarId.ARAS, "ARAS", PillarCategory.DEFENSIVE),
    (PillarId.MACRO, "Macro Compass", PillarCategory.CONTEXT),
    (PillarId.MASTER, "Master Engine", PillarCategory.EXECUTION),
    (PillarId.KEVLAR, "Kevlar", PillarCategory.DEFENSIVE),
    (PillarId.PERM, "PERM", PillarCategory.DEFENSIVE),
    (PillarId.SLOF, "SLOF", PillarCategory.OFFENSIVE),
    (PillarId.ARES, "ARES", PillarCategory.OFFENSIVE),
]
