"""
Achelion Scenario Demo — Headless Scenario Playback

Replays a scripted scenario on a logical clock, without a server, and
prints what a dashboard would show: phase transitions, regime and
ceiling, ARES gates, re-entry tranches and critical alerts.

Usage:
    python -m achelion.demo.run
    python -m achelion.demo.run --scenario S2 --duration 80
    python -m achelion.demo.run --scenario S1 --approve-at 105
    python -m achelion.demo.run --output final_snapshot.json

Same seed, same scenario, same dt → identical output.
"""

import argparse
import json
import random
from typing import Any, Dict, List, Optional

from achelion.core.config import EngineConfig
from achelion.core.models import AlertEvent, Severity, SystemSnapshot
from achelion.engine.loop import ScenarioEngine
from achelion.engine.scenarios import SCENARIOS, get_scenario


# ── Output Formatting ─────────────────────────────────────────

def format_header(scenario_id: str, name: str):
    print("\n" + "=" * 78)
    print(f"  ACHELION SCENARIO DEMO — {scenario_id}: {name}")
    print("  Deterministic playback on a logical clock")
    print("=" * 78)


def format_transition(snapshot: SystemSnapshot):
    print(f"\n{'─' * 78}")
    print(f"  t={snapshot.scenario_t:6.1f}s  │  {snapshot.phase.value}  │  {snapshot.scenario_step}")
    print(f"{'─' * 78}")
    format_regime(snapshot)


def format_regime(snapshot: SystemSnapshot):
    bar_len = int(min(snapshot.exposure_ceiling, 1.2) / 1.2 * 40)
    bar = "#" * bar_len + "." * (40 - bar_len)
    print(f"    regime {snapshot.regime.value:<10} ceiling [{bar}] {snapshot.exposure_ceiling:.2f}"
          f"  ({snapshot.stress_source.value})")


def format_gates(snapshot: SystemSnapshot):
    g = snapshot.gates
    print(f"    gates  1:{g.gate1_stress_normalization.value}  "
          f"2:{g.gate2_conviction.value}  3:{g.gate3_confirmation.value}")


def format_alert(alert: AlertEvent):
    marker = "!!" if alert.severity == Severity.CRITICAL else ">>"
    print(f"    {marker} [{alert.severity.value.upper()}] {alert.title}")


def format_portfolio(snapshot: SystemSnapshot):
    portfolio = snapshot.portfolio
    if portfolio is None:
        return
    print("\n  Portfolio:")
    for sleeve, weight in portfolio.current_weights.items():
        target = portfolio.target_weights.get(sleeve, 0.0)
        print(f"    {sleeve.value:<14} {weight:6.1%}  (target {target:.0%})")
    for p in portfolio.positions:
        reason = f"  {p.reason}" if p.reason else ""
        print(f"      {p.ticker:<9} {p.current_pct:6.2%}{reason}")


def new_alerts(previous: SystemSnapshot, current: SystemSnapshot) -> List[AlertEvent]:
    """Alerts at the head of `current` that were not in `previous`."""
    seen = {a.id for a in previous.alerts}
    fresh = []
    for alert in current.alerts:
        if alert.id in seen:
            break
        fresh.append(alert)
    return list(reversed(fresh))


# ── Main Demo Loop ────────────────────────────────────────────

def run_demo(
    scenario_id: str = "S1",
    duration: float = 140.0,
    dt: float = 0.4,
    seed: int = 7,
    approve_at: Optional[float] = None,
    output_path: Optional[str] = None,
    quiet: bool = False,
) -> Dict[str, Any]:
    """
    Run a scenario from t=0 to `duration` seconds.

    Args:
        scenario_id: Scripted timeline to replay
        duration: Scenario seconds to simulate
        dt: Logical seconds per tick
        seed: Random seed (alert ids)
        approve_at: Scenario time at which the PM approves re-entry
        output_path: Optional path to write the final snapshot as JSON
        quiet: Suppress per-transition output
    """
    scenario = get_scenario(scenario_id)
    engine = ScenarioEngine(EngineConfig(seed=seed))
    rng = random.Random(seed)

    state = engine.initial_state(rng, epoch=0.0)
    state = engine.set_scenario(state, scenario.id, rng)

    if not quiet:
        format_header(scenario.id, scenario.name)
        print(f"\n  Config: duration {duration:.0f}s, dt {dt}s, seed {seed}, "
              f"approve at {'never' if approve_at is None else f'{approve_at:.0f}s'}")

    timeline = []
    last_phase = None
    last_tranche = 0

    while state.scenario_t + dt <= duration + 1e-9:
        if approve_at is not None and not state.reentry.approved and state.scenario_t >= approve_at:
            state = engine.approve_reentry(state, rng)
            if not quiet and state.reentry.approved:
                print(f"\n  >> PM approval granted at t={state.scenario_t:.1f}s")

        previous = state.snapshot
        state = engine.advance(state, dt, rng)
        snap = state.snapshot

        if snap.phase != last_phase:
            last_phase = snap.phase
            timeline.append({
                "t": snap.scenario_t,
                "phase": snap.phase.value,
                "regime": snap.regime.value,
                "ceiling": round(snap.exposure_ceiling, 4),
                "stress_source": snap.stress_source.value,
            })
            if not quiet:
                format_transition(snap)

        reentry = snap.portfolio.reentry if snap.portfolio else None
        if reentry is not None and reentry.tranche != last_tranche:
            last_tranche = reentry.tranche
            if not quiet:
                print(f"    tranche {reentry.tranche}/4 → ceiling {reentry.tranche_ceiling:.0%}  "
                      f"(t={snap.scenario_t:.1f}s)")
                format_regime(snap)

        if not quiet:
            for alert in new_alerts(previous, snap):
                if alert.severity != Severity.INFO:
                    format_alert(alert)

    final = state.snapshot

    # ── Final Summary ─────────────────────────────────────────

    if not quiet:
        print(f"\n{'=' * 78}")
        print("  DEMO COMPLETE — Final State")
        print(f"{'=' * 78}\n")
        format_regime(final)
        format_gates(final)
        format_portfolio(final)

        critical = sum(1 for a in final.alerts if a.severity == Severity.CRITICAL)
        print(f"\n  Summary:")
        print(f"    Ticks:               {state.tick_count}")
        print(f"    Phases visited:      {' → '.join(e['phase'] for e in timeline)}")
        print(f"    Alerts (retained):   {len(final.alerts)} ({critical} critical)")

    output = {
        "demo": "achelion_scenario_playback",
        "config": {
            "scenario": scenario.id,
            "duration": duration,
            "dt": dt,
            "seed": seed,
            "approve_at": approve_at,
        },
        "timeline": timeline,
        "final_snapshot": final.model_dump(mode="json"),
    }

    if output_path:
        with open(output_path, "w") as f:
            json.dump(output, f, indent=2)
        if not quiet:
            print(f"\n  Snapshot written to: {output_path}")

    return output


# ── CLI Entry Point ───────────────────────────────────────────

def main():
    parser = argparse.ArgumentParser(
        description="Achelion headless scenario playback"
    )
    parser.add_argument("--scenario", choices=sorted(SCENARIOS), default="S1",
                        help="Scenario to replay (default: S1)")
    parser.add_argument("--duration", type=float, default=140.0,
                        help="Scenario seconds to simulate (default: 140)")
    parser.add_argument("--dt", type=float, default=0.4,
                        help="Logical seconds per tick (default: 0.4)")
    parser.add_argument("--seed", type=int, default=7,
                        help="Random seed (default: 7)")
    parser.add_argument("--approve-at", type=float, default=None,
                        help="Scenario time at which to approve re-entry")
    parser.add_argument("--output", type=str, default=None,
                        help="Path to write the final snapshot as JSON")
    parser.add_argument("--quiet", action="store_true",
                        help="Suppress per-transition output")

    args = parser.parse_args()

    run_demo(
        scenario_id=args.scenario,
        duration=args.duration,
        dt=args.dt,
        seed=args.seed,
        approve_at=args.approve_at,
        output_path=args.output,
        quiet=args.quiet,
    )


if __name__ == "__main__":
    main()
