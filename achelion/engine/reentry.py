"""
Re-entry Authorization - PM approval and staged tranche deployment

Before approval, re-entry is held at a fixed intermediate ceiling. After
approval the elapsed time maps to a tranche, and each tranche to a ceiling.
"""

from typing import Dict, Tuple

from achelion.core.models import ReentryAuthorization, ReentryState


# (elapsed seconds since approval below which, tranche reached)
TRANCHE_BREAKPOINTS: Tuple[Tuple[float, int], ...] = (
    (10.0, 1),
    (20.0, 2),
    (30.0, 3),
)
FINAL_TRANCHE = 4

TRANCHE_CEILINGS: Dict[int, float] = {
    1: 0.25,
    2: 0.50,
    3: 0.75,
    4: 1.00,
}

HOLD_CEILING = 0.25


def tranche_for(elapsed: float) -> int:
    for limit, tranche in TRANCHE_BREAKPOINTS:
        if elapsed < limit:
            return tranche
    return FINAL_TRANCHE


def resolve_reentry(authorization: ReentryAuthorization, now: float) -> ReentryState:
    """
    Tranche state for the engine clock reading `now`.

    Non-decreasing in `now` for a fixed approval time.
    """
    if not authorization.approved or authorization.approved_at is None:
        return ReentryState(approved=False, tranche=0, tranche_ceiling=HOLD_CEILING)

    tranche = tranche_for(max(0.0, now - authorization.approved_at))
    return ReentryState(approved=True, tranche=tranche, tranche_ceiling=TRANCHE_CEILINGS[tranche])


def is_complete(state: ReentryState) -> bool:
    return state.approved and state.tranche >= FINAL_TRANCHE
