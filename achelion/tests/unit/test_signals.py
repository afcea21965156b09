"""
Pillar signal aggregator: level derivation, roll-up, level-change alerts.
"""

import random

import pytest

from achelion.core.models import (
    PillarId,
    PillarSignal,
    PillarStatus,
    Severity,
    SignalInput,
    SignalLevel,
)
from achelion.engine.context import TickContext
from achelion.engine.loop import ScenarioEngine
from achelion.engine.signals import level_from_score, normalize_signals, roll_up, update_signals


def sig(score, conf=0.8, level=None, name="s"):
    return PillarSignal(
        name=name,
        value_text="v",
        score=score,
        confidence=conf,
        level=level or level_from_score(score),
    )


@pytest.mark.parametrize("score,level", [
    (0.90, SignalLevel.RISK),
    (0.70, SignalLevel.RISK),
    (0.69, SignalLevel.WATCH),
    (0.45, SignalLevel.WATCH),
    (0.44, SignalLevel.OK),
    (0.0, SignalLevel.OK),
])
def test_level_from_score(score, level):
    assert level_from_score(score) == level


class TestRollUp:

    def test_any_risk_triggers(self):
        status, _, _ = roll_up([sig(0.2), sig(0.5), sig(0.8)])
        assert status == PillarStatus.TRIGGERED

    def test_watch_without_risk_is_active(self):
        status, _, _ = roll_up([sig(0.2), sig(0.5)])
        assert status == PillarStatus.ACTIVE

    def test_all_ok(self):
        status, _, _ = roll_up([sig(0.1), sig(0.2)])
        assert status == PillarStatus.OK

    def test_explicit_level_wins_over_score(self):
        status, _, _ = roll_up([sig(0.1, level=SignalLevel.RISK)])
        assert status == PillarStatus.TRIGGERED

    def test_score_is_confidence_weighted(self):
        _, score, confidence = roll_up([sig(0.2, conf=1.0), sig(0.8, conf=0.5)])
        assert score == pytest.approx(0.4)
        assert confidence == pytest.approx(0.75)

    def test_empty_list(self):
        assert roll_up([]) == (PillarStatus.OK, 0.0, 0.0)


def test_normalize_clamps_and_derives_level():
    signals = normalize_signals([
        SignalInput(name="a", value_text="x", score=1.4, confidence=-0.2),
        SignalInput(name="b", value_text="y", score=0.1, confidence=0.5, level=SignalLevel.WATCH),
    ])
    assert signals[0].score == 1.0
    assert signals[0].confidence == 0.0
    assert signals[0].level == SignalLevel.RISK
    assert signals[1].level == SignalLevel.WATCH


class TestUpdateSignals:

    @pytest.fixture
    def ctx(self):
        rng = random.Random(0)
        snapshot = ScenarioEngine().initial_state(rng).snapshot
        return TickContext(snapshot, ts=5.0, rng=rng)

    def test_level_change_alerts_by_name(self, ctx):
        update_signals(ctx, PillarId.MACRO, [
            SignalInput(name="Liquidity ROC", value_text="breakdown", score=0.82, confidence=0.7),
            SignalInput(name="Vol regime", value_text="low", score=0.18, confidence=0.8),
        ])

        alerts = ctx.alerts.events()
        new = [a for a in alerts if a.title.startswith("MACRO:")]
        assert len(new) == 1
        assert new[0].title == "MACRO: Liquidity ROC → RISK"
        assert new[0].severity == Severity.CRITICAL
        assert "pillar:MACRO" in new[0].tags

    def test_unknown_name_does_not_alert(self, ctx):
        before = len(ctx.alerts)
        update_signals(ctx, PillarId.SLOF, [
            SignalInput(name="Brand new signal", value_text="x", score=0.9, confidence=0.9),
        ])
        assert len(ctx.alerts) == before

    def test_list_replaced_and_pillar_rolled_up(self, ctx):
        update_signals(ctx, PillarId.KEVLAR, [
            SignalInput(name="DD guard", value_text="watch", score=0.5, confidence=1.0),
        ])

        assert [s.name for s in ctx.signals[PillarId.KEVLAR]] == ["DD guard"]
        pillar = ctx.pillars[PillarId.KEVLAR]
        assert pillar.status == PillarStatus.ACTIVE
        assert pillar.score == pytest.approx(0.5)
        assert pillar.confidence == pytest.approx(1.0)
        assert pillar.updated_at == 5.0
