"""
Alert log: newest-first ordering, bounded retention, seeded ids.
"""

import random
import uuid

from achelion.core.models import Severity
from achelion.engine.alerts import AlertLog, DEFAULT_CAPACITY


class TestAlertLog:

    def test_newest_alert_is_first(self):
        log = AlertLog(rng=random.Random(1))
        log.push(Severity.INFO, "first")
        log.push(Severity.CRITICAL, "second")

        events = log.events()
        assert [e.title for e in events] == ["second", "first"]
        assert events[0].severity == Severity.CRITICAL

    def test_capacity_drops_oldest(self):
        log = AlertLog(rng=random.Random(1))
        for i in range(DEFAULT_CAPACITY + 50):
            log.push(Severity.INFO, f"alert {i}")

        events = log.events()
        assert len(events) == DEFAULT_CAPACITY
        assert events[0].title == f"alert {DEFAULT_CAPACITY + 49}"
        assert events[-1].title == "alert 50"
        assert log.pushed == DEFAULT_CAPACITY + 50

    def test_existing_events_are_kept(self):
        first = AlertLog(rng=random.Random(1))
        first.push(Severity.INFO, "old")

        second = AlertLog(first.events(), rng=random.Random(2))
        second.push(Severity.WATCH, "new")

        assert [e.title for e in second.events()] == ["new", "old"]
        # The source log is not touched
        assert len(first) == 1

    def test_ids_are_seeded_uuid4(self):
        a = AlertLog(rng=random.Random(42))
        b = AlertLog(rng=random.Random(42))

        ids_a = [a.push(Severity.INFO, "x").id for _ in range(5)]
        ids_b = [b.push(Severity.INFO, "x").id for _ in range(5)]

        assert ids_a == ids_b
        assert len(set(ids_a)) == 5
        assert all(uuid.UUID(i).version == 4 for i in ids_a)

    def test_alert_carries_timestamp_and_tags(self):
        log = AlertLog(ts=123.5, rng=random.Random(0))
        event = log.push(Severity.WATCH, "tagged", "detail", ["pillar:ARAS", "module"])

        assert event.ts == 123.5
        assert event.detail == "detail"
        assert event.tags == ("pillar:ARAS", "module")
