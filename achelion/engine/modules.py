"""
ARAS Module Aggregator - Cross-module rules and crash override

Implements the ARAS pillar's decomposition into six fixed modules:
- Positional patch merge with flag-flip and risk-threshold alerts
- Stress source classification (crypto vs. equity subsets)
- One-way crash override when enough modules are stressed
- Composite pillar score/confidence
"""

from typing import List, Optional, Sequence, Tuple

from achelion.core.models import (
    ModulePatch,
    ModuleSignal,
    PillarId,
    Regime,
    Severity,
    SourceBucket,
    StressSource,
    clamp01,
)
from achelion.engine.regime import RegimeState


INITIAL_MODULES: Tuple[ModuleSignal, ...] = (
    ModuleSignal(name="Deleveraging Risk", risk_score=0.18, stress_flag=False, confidence=0.88, source_bucket=SourceBucket.MIXED),
    ModuleSignal(name="Crypto Microstructure", risk_score=0.16, stress_flag=False, confidence=0.86, source_bucket=SourceBucket.CRYPTO),
    ModuleSignal(name="Margin Stress", risk_score=0.14, stress_flag=False, confidence=0.84, source_bucket=SourceBucket.EQUITY),
    ModuleSignal(name="Dealer Gamma", risk_score=0.15, stress_flag=False, confidence=0.83, source_bucket=SourceBucket.EQUITY),
    ModuleSignal(name="PCR Regime", risk_score=0.17, stress_flag=False, confidence=0.82, source_bucket=SourceBucket.EQUITY),
    ModuleSignal(name="Shutdown Risk", risk_score=0.08, stress_flag=False, confidence=0.80, source_bucket=SourceBucket.CRYPTO),
)

TAGS = ["pillar:ARAS", "module"]


def merge_modules(
    previous: Sequence[ModuleSignal],
    patch: Sequence[Optional[ModulePatch]],
) -> List[ModuleSignal]:
    """Apply `patch` index-for-index; a missing or None entry leaves that slot alone."""
    merged = []
    for i, module in enumerate(previous):
        p = patch[i] if i < len(patch) else None
        if p is None:
            merged.append(module)
            continue
        update = p.model_dump(exclude_none=True)
        for key in ("risk_score", "confidence"):
            if key in update:
                update[key] = clamp01(update[key])
        merged.append(module.model_copy(update=update))
    return merged


class ModuleAggregator:
    """
    Recomputes ARAS state from the six-module patch each tick.

    The crash override runs after the phase has written its regime,
    so it can only tighten the regime/ceiling, never loosen it.
    """

    CRYPTO_INDICES = (1, 5)
    EQUITY_INDICES = (2, 3, 4)

    RISK_ALERT_THRESHOLD = 0.65
    SOURCE_FLOOR = 0.5
    SOURCE_SPREAD = 0.15

    CRASH_STRESS_COUNT = 3
    CRASH_CEILING = 0.15
    STRESS_WEIGHT = 1.5

    def __init__(self, repeat_crash_alerts: bool = True):
        """
        Args:
            repeat_crash_alerts: Alert on every tick the override tightens the
                phase's request. When False, alert only when the published
                regime/ceiling changes, so a held crash alerts once.
        """
        self.repeat_crash_alerts = repeat_crash_alerts

    # ---------------------------------------------------------
    # PUBLIC ENTRYPOINT
    # ---------------------------------------------------------

    def update(self, ctx, patch: Sequence[Optional[ModulePatch]]) -> List[ModuleSignal]:
        previous = ctx.modules
        merged = merge_modules(previous, patch)

        self._emit_module_alerts(ctx, previous, merged)
        ctx.modules = merged

        self._apply_stress_source(ctx, merged)
        self._apply_crash_override(ctx, merged)

        score, confidence = self.composite(merged)
        ctx.set_pillar(PillarId.ARAS, score=score, confidence=confidence)
        return merged

    # ---------------------------------------------------------
    # PER-MODULE TRANSITIONS
    # ---------------------------------------------------------

    def _emit_module_alerts(self, ctx, previous, merged) -> None:
        th = self.RISK_ALERT_THRESHOLD
        for i, (p, n) in enumerate(zip(previous, merged)):
            if p.stress_flag != n.stress_flag:
                ctx.alerts.push(
                    Severity.WATCH if n.stress_flag else Severity.INFO,
                    f"ARAS m{i + 1}: {n.name} stress_flag → {'ON' if n.stress_flag else 'off'}",
                    f"risk {n.risk_score:.2f} · conf {n.confidence:.2f} · bucket {n.source_bucket.value}",
                    TAGS,
                )

            was_high = p.risk_score >= th
            is_high = n.risk_score >= th
            if was_high != is_high:
                ctx.alerts.push(
                    Severity.CRITICAL if is_high else Severity.INFO,
                    f"ARAS m{i + 1}: {n.name} risk {'≥' if is_high else '<'} {th}",
                    f"risk {p.risk_score:.2f} → {n.risk_score:.2f} · conf {n.confidence:.2f}",
                    TAGS,
                )

    # ---------------------------------------------------------
    # STRESS SOURCE
    # ---------------------------------------------------------

    def subset_averages(self, modules: Sequence[ModuleSignal]) -> Tuple[float, float]:
        crypto = sum(modules[i].risk_score for i in self.CRYPTO_INDICES) / len(self.CRYPTO_INDICES)
        equity = sum(modules[i].risk_score for i in self.EQUITY_INDICES) / len(self.EQUITY_INDICES)
        return crypto, equity

    def classify(self, crypto_avg: float, equity_avg: float) -> StressSource:
        if (crypto_avg > self.SOURCE_FLOOR and equity_avg > self.SOURCE_FLOOR
                and abs(crypto_avg - equity_avg) <= self.SOURCE_SPREAD):
            return StressSource.CORRELATED
        if crypto_avg - equity_avg > self.SOURCE_SPREAD:
            return StressSource.CRYPTO
        if equity_avg - crypto_avg > self.SOURCE_SPREAD:
            return StressSource.EQUITY
        return StressSource.GENERAL

    def _apply_stress_source(self, ctx, modules) -> None:
        crypto_avg, equity_avg = self.subset_averages(modules)
        source = self.classify(crypto_avg, equity_avg)
        ctx.set_regime(ctx.regime_state._replace(stress_source=source))

        if source != ctx.previous.stress_source:
            ctx.alerts.push(
                Severity.WATCH,
                f"ARAS: stressSource → {source.value}",
                f"cryptoAvg {crypto_avg:.2f} · equityAvg {equity_avg:.2f}",
                TAGS,
            )

    # ---------------------------------------------------------
    # CRASH OVERRIDE (one-way)
    # ---------------------------------------------------------

    def _apply_crash_override(self, ctx, modules) -> None:
        stress_count = sum(1 for m in modules if m.stress_flag)
        if stress_count < self.CRASH_STRESS_COUNT:
            return

        state = ctx.regime_state
        forced = RegimeState(
            regime=Regime.CRASH,
            ceiling=min(state.ceiling, self.CRASH_CEILING),
            stress_source=state.stress_source,
        )
        ctx.set_regime(forced)

        if self.repeat_crash_alerts:
            prev_regime, prev_ceiling = state.regime, state.ceiling
        else:
            prev_regime, prev_ceiling = ctx.previous.regime, ctx.previous.exposure_ceiling
        if prev_regime != forced.regime or prev_ceiling != forced.ceiling:
            ctx.alerts.push(
                Severity.CRITICAL,
                "ARAS: crash override",
                f"stress_flags {stress_count} · regime {prev_regime.value} → {forced.regime.value} · "
                f"ceiling {prev_ceiling:.2f} → {forced.ceiling:.2f}",
                TAGS,
            )

    # ---------------------------------------------------------
    # COMPOSITE
    # ---------------------------------------------------------

    def composite(self, modules: Sequence[ModuleSignal]) -> Tuple[float, float]:
        """Confidence-weighted risk with stressed modules up-weighted; mean confidence."""
        if not modules:
            return 0.0, 0.0
        total_conf = sum(m.confidence for m in modules)
        weighted = sum(
            m.risk_score * m.confidence * (self.STRESS_WEIGHT if m.stress_flag else 1.0)
            for m in modules
        )
        score = weighted / total_conf if total_conf else 0.0
        return clamp01(score), clamp01(total_conf / len(modules))
