"""
Portfolio Allocator - Sleeve weights and per-instrument allocation

Derives the portfolio view from the ceiling in effect:
1. Split the equity+crypto budget by the fixed sleeve ratio
2. Spread each sub-sleeve across its ranked instruments by target share
3. Cut crypto/equity by stress source in DEFENSIVE/CRASH regimes
4. Zero tranche-tagged instruments that re-entry has not reached yet
5. Defense is structural; cash+options absorbs the remainder
6. Sort positions by realized weight
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from achelion.core.models import (
    PortfolioSnapshot,
    Position,
    Regime,
    ReentryState,
    Sleeve,
    StressSource,
)
from achelion.engine.regime import max_overlay


SLEEVE_TARGETS: Dict[Sleeve, float] = {
    Sleeve.EQUITY: 0.55,
    Sleeve.CRYPTO: 0.20,
    Sleeve.DEFENSE: 0.15,
    Sleeve.CASH_OPTIONS: 0.10,
}


@dataclass(frozen=True)
class Instrument:
    ticker: str
    sleeve: Sleeve
    target: float
    tranche: Optional[int] = None
    conviction: Optional[float] = None


# Ranked within each sleeve
UNIVERSE: Tuple[Instrument, ...] = (
    Instrument("NVDA", Sleeve.EQUITY, 0.12, tranche=1, conviction=0.86),
    Instrument("MSFT", Sleeve.EQUITY, 0.10, tranche=1, conviction=0.80),
    Instrument("AVGO", Sleeve.EQUITY, 0.08, tranche=2, conviction=0.74),
    Instrument("AMZN", Sleeve.EQUITY, 0.08, tranche=2, conviction=0.72),
    Instrument("META", Sleeve.EQUITY, 0.07, tranche=3, conviction=0.68),
    Instrument("TSM", Sleeve.EQUITY, 0.05, tranche=3, conviction=0.66),
    Instrument("PLTR", Sleeve.EQUITY, 0.05, tranche=4, conviction=0.58),
    Instrument("BTC", Sleeve.CRYPTO, 0.10, tranche=1, conviction=0.82),
    Instrument("ETH", Sleeve.CRYPTO, 0.06, tranche=2, conviction=0.70),
    Instrument("SOL", Sleeve.CRYPTO, 0.04, tranche=3, conviction=0.60),
    Instrument("GLD", Sleeve.DEFENSE, 0.07),
    Instrument("TLT", Sleeve.DEFENSE, 0.05),
    Instrument("DBMF", Sleeve.DEFENSE, 0.03),
)

CASH_TICKER = "CASH+OPT"

# stress source -> (crypto cut, equity cut)
STRESS_CUTS: Dict[StressSource, Tuple[float, float]] = {
    StressSource.CRYPTO: (0.50, 0.10),
    StressSource.EQUITY: (0.10, 0.40),
    StressSource.CORRELATED: (0.40, 0.30),
    StressSource.GENERAL: (0.20, 0.20),
}

CUT_REGIMES = (Regime.DEFENSIVE, Regime.CRASH)


class PortfolioAllocator:
    """
    Stateless allocator; every call derives the full portfolio
    from the ceiling, regime, stress source and re-entry state.
    """

    def __init__(
        self,
        universe: Tuple[Instrument, ...] = UNIVERSE,
        sleeve_targets: Optional[Dict[Sleeve, float]] = None,
    ):
        self.universe = universe
        self.sleeve_targets = dict(sleeve_targets or SLEEVE_TARGETS)

    def allocate(
        self,
        ceiling: float,
        regime: Regime,
        stress_source: StressSource,
        reentry: Optional[ReentryState] = None,
        reentry_active: bool = False,
    ) -> PortfolioSnapshot:
        """
        Args:
            ceiling: Combined equity+crypto ceiling in effect
            regime: Current regime (drives cuts and overlay allowance)
            stress_source: Current stress source (selects cut sizes)
            reentry: Approval/tranche state, reported when present
            reentry_active: True while re-entry is in progress (enables tranche gating)
        """
        budgets = self._sub_sleeve_budgets(ceiling)
        cuts = self._cuts(regime, stress_source)

        positions: List[Position] = []
        for sleeve in (Sleeve.EQUITY, Sleeve.CRYPTO):
            positions.extend(self._allocate_sleeve(
                sleeve, budgets[sleeve], cuts[sleeve], stress_source,
                reentry if reentry_active else None,
            ))
        positions.extend(self._allocate_defense())

        invested = sum(p.current_pct for p in positions)
        cash = max(0.0, 1.0 - invested)
        positions.append(Position(
            ticker=CASH_TICKER,
            sleeve=Sleeve.CASH_OPTIONS,
            target_pct=self.sleeve_targets[Sleeve.CASH_OPTIONS],
            current_pct=round(cash, 4),
            eligible=True,
            reason="residual",
        ))

        current_weights = {sleeve: 0.0 for sleeve in Sleeve}
        for p in positions:
            current_weights[p.sleeve] += p.current_pct
        current_weights = {k: round(v, 4) for k, v in current_weights.items()}

        positions.sort(key=lambda p: p.current_pct, reverse=True)

        return PortfolioSnapshot(
            target_weights=dict(self.sleeve_targets),
            current_weights=current_weights,
            equity_crypto_ceiling=round(budgets[Sleeve.EQUITY] + budgets[Sleeve.CRYPTO], 4),
            max_overlay=max_overlay(regime),
            reentry=reentry,
            positions=tuple(positions),
        )

    # ---------------------------------------------------------
    # BUDGETS + CUTS
    # ---------------------------------------------------------

    def _sub_sleeve_budgets(self, ceiling: float) -> Dict[Sleeve, float]:
        equity_target = self.sleeve_targets[Sleeve.EQUITY]
        crypto_target = self.sleeve_targets[Sleeve.CRYPTO]
        # Gross beyond what is left after defense would come from the overlay, not from positions
        budget = max(0.0, min(ceiling, 1.0 - self.sleeve_targets[Sleeve.DEFENSE]))
        combined = equity_target + crypto_target
        return {
            Sleeve.EQUITY: budget * equity_target / combined,
            Sleeve.CRYPTO: budget * crypto_target / combined,
        }

    def _cuts(self, regime: Regime, stress_source: StressSource) -> Dict[Sleeve, float]:
        if regime not in CUT_REGIMES:
            return {Sleeve.EQUITY: 0.0, Sleeve.CRYPTO: 0.0}
        crypto_cut, equity_cut = STRESS_CUTS[stress_source]
        return {Sleeve.EQUITY: equity_cut, Sleeve.CRYPTO: crypto_cut}

    # ---------------------------------------------------------
    # PER-INSTRUMENT
    # ---------------------------------------------------------

    def _allocate_sleeve(
        self,
        sleeve: Sleeve,
        budget: float,
        cut: float,
        stress_source: StressSource,
        reentry: Optional[ReentryState],
    ) -> List[Position]:
        instruments = [i for i in self.universe if i.sleeve == sleeve]
        total_target = sum(i.target for i in instruments)
        positions = []

        for inst in instruments:
            weight = budget * inst.target / total_target if total_target else 0.0
            eligible = True
            reason = None

            if cut > 0:
                weight *= 1.0 - cut
                reason = f"{sleeve.value.lower()} cut {cut:.0%} ({stress_source.value} stress)"

            if reentry is not None and inst.tranche is not None:
                if not reentry.approved:
                    eligible, reason = False, "awaiting PM approval"
                elif reentry.tranche < inst.tranche:
                    eligible, reason = False, f"tranche {inst.tranche} pending"
                if not eligible:
                    weight = 0.0

            positions.append(Position(
                ticker=inst.ticker,
                sleeve=sleeve,
                target_pct=inst.target,
                current_pct=round(weight, 4),
                conviction=inst.conviction,
                eligible=eligible,
                tranche=inst.tranche,
                reason=reason,
            ))

        return positions

    def _allocate_defense(self) -> List[Position]:
        return [
            Position(
                ticker=inst.ticker,
                sleeve=Sleeve.DEFENSE,
                target_pct=inst.target,
                current_pct=inst.target,
                eligible=True,
                reason="structural",
            )
            for inst in self.universe if inst.sleeve == Sleeve.DEFENSE
        ]
