"""
Regime Resolver - Regime to exposure-ceiling mapping

Each regime owns a nominal ceiling and the largest synthetic overlay it
allows on top of gross exposure. Regime, ceiling and stress source always
travel together as one RegimeState so a reader never sees a regime next
to a ceiling that belongs to another.
"""

from typing import Dict, NamedTuple, Optional

from achelion.core.models import Regime, StressSource


# RISK_ON may run past 100% gross through the synthetic overlay
MAX_CEILING = 1.2


class RegimeLimits(NamedTuple):
    nominal: float
    max_overlay: float


REGIME_TABLE: Dict[Regime, RegimeLimits] = {
    Regime.RISK_ON: RegimeLimits(nominal=0.90, max_overlay=0.20),
    Regime.NEUTRAL: RegimeLimits(nominal=0.60, max_overlay=0.10),
    Regime.DEFENSIVE: RegimeLimits(nominal=0.35, max_overlay=0.0),
    Regime.CRASH: RegimeLimits(nominal=0.15, max_overlay=0.0),
}


class RegimeState(NamedTuple):
    regime: Regime
    ceiling: float
    stress_source: StressSource


def clamp_ceiling(x: float) -> float:
    return max(0.0, min(MAX_CEILING, x))


def nominal_ceiling(regime: Regime) -> float:
    return REGIME_TABLE[regime].nominal


def max_overlay(regime: Regime) -> float:
    return REGIME_TABLE[regime].max_overlay


def resolve_regime(
    regime: Regime,
    stress_source: StressSource,
    ceiling: Optional[float] = None,
) -> RegimeState:
    """Build the regime triple; ceiling defaults to the regime's nominal value."""
    if ceiling is None:
        ceiling = nominal_ceiling(regime)
    return RegimeState(regime=regime, ceiling=clamp_ceiling(ceiling), stress_source=stress_source)
