"""
Pillar Signal Aggregator

Five pillars (MACRO, MASTER, KEVLAR, PERM, SLOF) are rolled up from short
lists of named sub-signals. Each update:
1. Normalizes scores/confidences and derives missing levels
2. Alerts on any level change, matched to the previous list by name
3. Replaces the stored list wholesale
4. Rolls status, score and confidence up into the pillar summary
"""

from typing import Iterable, List, Sequence, Tuple

from achelion.core.models import (
    PillarId,
    PillarSignal,
    PillarStatus,
    Severity,
    SignalInput,
    SignalLevel,
    clamp01,
)


RISK_THRESHOLD = 0.70
WATCH_THRESHOLD = 0.45

LEVEL_RANK = {SignalLevel.OK: 0, SignalLevel.WATCH: 1, SignalLevel.RISK: 2}

LEVEL_STATUS = {
    SignalLevel.RISK: PillarStatus.TRIGGERED,
    SignalLevel.WATCH: PillarStatus.ACTIVE,
    SignalLevel.OK: PillarStatus.OK,
}

LEVEL_SEVERITY = {
    SignalLevel.RISK: Severity.CRITICAL,
    SignalLevel.WATCH: Severity.WATCH,
    SignalLevel.OK: Severity.INFO,
}


def level_from_score(score: float) -> SignalLevel:
    if score >= RISK_THRESHOLD:
        return SignalLevel.RISK
    if score >= WATCH_THRESHOLD:
        return SignalLevel.WATCH
    return SignalLevel.OK


def normalize_signals(inputs: Iterable[SignalInput]) -> List[PillarSignal]:
    signals = []
    for s in inputs:
        score = clamp01(s.score)
        signals.append(PillarSignal(
            name=s.name,
            value_text=s.value_text,
            score=score,
            confidence=clamp01(s.confidence),
            level=s.level if s.level is not None else level_from_score(score),
        ))
    return signals


def roll_up(signals: Sequence[PillarSignal]) -> Tuple[PillarStatus, float, float]:
    """
    Worst level wins the status; score is confidence-weighted,
    confidence is a plain mean.
    """
    if not signals:
        return PillarStatus.OK, 0.0, 0.0

    worst = max((s.level for s in signals), key=LEVEL_RANK.__getitem__)
    total_conf = sum(s.confidence for s in signals)
    score = sum(s.score * s.confidence for s in signals) / total_conf if total_conf else 0.0
    confidence = total_conf / len(signals)

    return LEVEL_STATUS[worst], clamp01(score), clamp01(confidence)


def update_signals(ctx, pillar: PillarId, inputs: Iterable[SignalInput]) -> List[PillarSignal]:
    """Apply a new sub-signal list to `pillar` inside the tick context."""
    previous = {s.name: s for s in ctx.signals[pillar]}
    signals = normalize_signals(inputs)

    for s in signals:
        prior = previous.get(s.name)
        if prior is None or prior.level == s.level:
            continue
        ctx.alerts.push(
            LEVEL_SEVERITY[s.level],
            f"{pillar.value}: {s.name} → {s.level.value}",
            f"{prior.level.value} → {s.level.value} · {s.value_text} · "
            f"score {s.score:.2f} · conf {s.confidence:.2f}",
            [f"pillar:{pillar.value}", "signal"],
        )

    ctx.signals[pillar] = signals

    status, score, confidence = roll_up(signals)
    ctx.set_pillar(pillar, status=status, score=score, confidence=confidence)
    return signals
