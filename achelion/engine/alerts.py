"""
Alert Log - Bounded, newest-first record of notable transitions

The log only ever grows at the head. Once it holds `capacity` events the
oldest one falls off the tail; there is no other retention policy.
"""

import random
import uuid
from collections import deque
from typing import Deque, Iterable, Optional, Sequence, Tuple

from achelion.core.models import AlertEvent, Severity


DEFAULT_CAPACITY = 200


class AlertLog:
    """
    Working copy of the alert log for one tick or control operation.

    Event ids are drawn from the injected generator so a seeded run
    produces the same ids every time.
    """

    def __init__(
        self,
        events: Iterable[AlertEvent] = (),
        capacity: int = DEFAULT_CAPACITY,
        ts: float = 0.0,
        rng: Optional[random.Random] = None,
    ):
        self.capacity = capacity
        self.ts = ts
        self.rng = rng or random.Random()
        self._events: Deque[AlertEvent] = deque(events, maxlen=capacity)
        self.pushed = 0

    def push(
        self,
        severity: Severity,
        title: str,
        detail: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> AlertEvent:
        event = AlertEvent(
            id=str(uuid.UUID(int=self.rng.getrandbits(128), version=4)),
            ts=self.ts,
            severity=severity,
            title=title,
            detail=detail,
            tags=tuple(tags or ()),
        )
        self._events.appendleft(event)
        self.pushed += 1
        return event

    def events(self) -> Tuple[AlertEvent, ...]:
        return tuple(self._events)

    def __len__(self) -> int:
        return len(self._events)
