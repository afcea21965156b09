"""
ARAS module aggregator: patch merge, stress source, crash override, composite.
"""

import random

import pytest

from achelion.core.models import (
    ModulePatch,
    ModuleSignal,
    PillarId,
    Regime,
    Severity,
    SourceBucket,
    StressSource,
)
from achelion.engine.context import TickContext
from achelion.engine.loop import ScenarioEngine
from achelion.engine.modules import INITIAL_MODULES, ModuleAggregator, merge_modules
from achelion.engine.regime import resolve_regime


def patch(risk=None, flag=None, conf=None):
    return ModulePatch(risk_score=risk, stress_flag=flag, confidence=conf)


@pytest.fixture
def snapshot():
    return ScenarioEngine().initial_state(random.Random(0)).snapshot


@pytest.fixture
def aggregator():
    return ModuleAggregator()


def make_ctx(snapshot, seed=1):
    return TickContext(snapshot, ts=snapshot.ts + 1.0, rng=random.Random(seed))


# ── Merge ─────────────────────────────────────────────────────

class TestMergeModules:

    def test_short_patch_leaves_missing_slots(self):
        merged = merge_modules(INITIAL_MODULES, [patch(0.5, True, 0.7), patch(0.4)])

        assert merged[0].risk_score == 0.5
        assert merged[0].stress_flag is True
        assert merged[1].risk_score == 0.4
        assert merged[1].stress_flag is False
        assert merged[2:] == list(INITIAL_MODULES[2:])

    def test_none_entry_is_no_change(self):
        merged = merge_modules(INITIAL_MODULES, [None, patch(0.9)])
        assert merged[0] == INITIAL_MODULES[0]
        assert merged[1].risk_score == 0.9

    def test_values_are_clamped(self):
        merged = merge_modules(INITIAL_MODULES, [patch(1.5, None, -0.2)])
        assert merged[0].risk_score == 1.0
        assert merged[0].confidence == 0.0

    def test_names_and_buckets_are_fixed(self):
        merged = merge_modules(INITIAL_MODULES, [patch(0.3, True, 0.5)] * 6)
        assert [m.name for m in merged] == [m.name for m in INITIAL_MODULES]
        assert [m.source_bucket for m in merged] == [
            SourceBucket.MIXED, SourceBucket.CRYPTO, SourceBucket.EQUITY,
            SourceBucket.EQUITY, SourceBucket.EQUITY, SourceBucket.CRYPTO,
        ]


# ── Stress Source ─────────────────────────────────────────────

@pytest.mark.parametrize("crypto,equity,source", [
    (0.60, 0.58, StressSource.CORRELATED),
    (0.70, 0.40, StressSource.CRYPTO),
    (0.30, 0.60, StressSource.EQUITY),
    (0.30, 0.35, StressSource.GENERAL),
    (0.55, 0.45, StressSource.GENERAL),
    (0.90, 0.70, StressSource.CRYPTO),
])
def test_classify(aggregator, crypto, equity, source):
    assert aggregator.classify(crypto, equity) == source


def test_subset_averages_use_fixed_indices(aggregator):
    modules = merge_modules(INITIAL_MODULES, [
        patch(0.99), patch(0.6), patch(0.5), patch(0.6), patch(0.7), patch(0.8),
    ])
    crypto, equity = aggregator.subset_averages(modules)
    assert crypto == pytest.approx(0.7)
    assert equity == pytest.approx(0.6)


def test_stress_source_change_alerts(aggregator, snapshot):
    ctx = make_ctx(snapshot)
    aggregator.update(ctx, [None, patch(0.7), None, None, None, patch(0.6)])

    assert ctx.regime_state.stress_source == StressSource.CRYPTO
    titles = [a.title for a in ctx.alerts.events()]
    assert "ARAS: stressSource → CRYPTO" in titles


# ── Crash Override ────────────────────────────────────────────

class TestCrashOverride:

    FOUR_FLAGS = [patch(0.5, True, 0.8)] * 4

    def test_four_flags_force_crash_with_exact_alerts(self, aggregator, snapshot):
        assert snapshot.regime == Regime.RISK_ON

        ctx = make_ctx(snapshot)
        aggregator.update(ctx, self.FOUR_FLAGS)

        assert ctx.regime_state.regime == Regime.CRASH
        assert ctx.regime_state.ceiling <= 0.15

        alerts = ctx.alerts.events()[:ctx.alerts.pushed]
        crash = [a for a in alerts if a.title == "ARAS: crash override"]
        flags = [a for a in alerts if "stress_flag → ON" in a.title]
        assert len(crash) == 1
        assert crash[0].severity == Severity.CRITICAL
        assert len(flags) == 4
        assert all(a.severity == Severity.WATCH for a in flags)
        assert ctx.alerts.pushed == 5

    def test_two_flags_do_not_override(self, aggregator, snapshot):
        ctx = make_ctx(snapshot)
        aggregator.update(ctx, [patch(0.5, True, 0.8)] * 2)
        assert ctx.regime_state.regime == Regime.RISK_ON

    def held_crash_tick(self, aggregator, snapshot, requested):
        """Second tick of a held crash, after the phase requested `requested`."""
        ctx = make_ctx(snapshot)
        aggregator.update(ctx, self.FOUR_FLAGS)

        ctx2 = make_ctx(ctx.publish(snapshot.phase), seed=2)
        ctx2.set_regime(requested)
        aggregator.update(ctx2, self.FOUR_FLAGS)
        return ctx2

    def test_held_override_alerts_against_phase_request(self, aggregator, snapshot):
        ctx = self.held_crash_tick(
            aggregator, snapshot, resolve_regime(Regime.NEUTRAL, StressSource.GENERAL, 0.65)
        )

        assert ctx.regime_state.regime == Regime.CRASH
        assert ctx.alerts.pushed == 1
        alert = ctx.alerts.events()[0]
        assert alert.title == "ARAS: crash override"
        assert alert.severity == Severity.CRITICAL
        assert "regime NEUTRAL → CRASH" in alert.detail
        assert "ceiling 0.65 → 0.15" in alert.detail

    def test_no_alert_when_request_already_crashed(self, aggregator, snapshot):
        ctx = self.held_crash_tick(
            aggregator, snapshot, resolve_regime(Regime.CRASH, StressSource.GENERAL)
        )
        assert ctx.regime_state.regime == Regime.CRASH
        assert ctx.alerts.pushed == 0

    def test_held_override_alerts_once_when_repeat_disabled(self, snapshot):
        aggregator = ModuleAggregator(repeat_crash_alerts=False)
        ctx = self.held_crash_tick(
            aggregator, snapshot, resolve_regime(Regime.NEUTRAL, StressSource.GENERAL, 0.65)
        )
        assert ctx.regime_state.regime == Regime.CRASH
        assert ctx.alerts.pushed == 0

    def test_override_only_tightens(self, aggregator, snapshot):
        ctx = make_ctx(snapshot)
        ctx.set_regime(resolve_regime(Regime.DEFENSIVE, StressSource.GENERAL, 0.10))
        aggregator.update(ctx, self.FOUR_FLAGS)

        assert ctx.regime_state.regime == Regime.CRASH
        assert ctx.regime_state.ceiling == 0.10


def test_risk_threshold_crossing_alerts(aggregator, snapshot):
    ctx = make_ctx(snapshot)
    aggregator.update(ctx, [patch(0.70)])

    titles = {a.title: a.severity for a in ctx.alerts.events()}
    assert titles["ARAS m1: Deleveraging Risk risk ≥ 0.65"] == Severity.CRITICAL


# ── Composite ─────────────────────────────────────────────────

def module(risk, flag=False, conf=1.0):
    return ModuleSignal(
        name="m", risk_score=risk, stress_flag=flag, confidence=conf,
        source_bucket=SourceBucket.MIXED,
    )


def test_composite_weights_stressed_modules(aggregator):
    score, conf = aggregator.composite([module(0.2), module(0.4)])
    assert score == pytest.approx(0.3)
    assert conf == pytest.approx(1.0)

    score, _ = aggregator.composite([module(0.2), module(0.4, flag=True)])
    assert score == pytest.approx(0.4)


def test_composite_is_clamped(aggregator):
    score, _ = aggregator.composite([module(1.0, flag=True)])
    assert score == 1.0


def test_update_writes_aras_pillar(aggregator, snapshot):
    ctx = make_ctx(snapshot)
    aggregator.update(ctx, [patch(0.5, True, 0.8)] * 6)

    pillar = ctx.pillars[PillarId.ARAS]
    assert 0.0 <= pillar.score <= 1.0
    assert pillar.confidence == pytest.approx(0.8)
    assert pillar.updated_at == ctx.ts
