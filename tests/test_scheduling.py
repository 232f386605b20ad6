"""
Scheduling Tests
================

Manual clock, manual scheduler, and periodic tasks.
"""

import asyncio
import logging
from datetime import timedelta

import pytest

from conftest import NOW
from hearing_dose.scheduling.clock import ManualClock
from hearing_dose.scheduling.scheduler import AsyncioScheduler, ManualScheduler, PeriodicTask


class TestManualClock:
    """Tests for ManualClock."""

    def test_advance(self, clock):
        assert clock.advance(90) == NOW + timedelta(seconds=90)
        assert clock.now() == NOW + timedelta(seconds=90)

    def test_cannot_go_backwards(self, clock):
        with pytest.raises(ValueError):
            clock.advance(-1)
        with pytest.raises(ValueError):
            clock.set(NOW - timedelta(seconds=1))

    def test_requires_aware_start(self):
        with pytest.raises(ValueError):
            ManualClock(NOW.replace(tzinfo=None))


class TestManualScheduler:
    """Tests for ManualScheduler."""

    def test_fires_in_due_order(self, scheduler):
        fired = []
        scheduler.schedule(30, lambda: fired.append("b"))
        scheduler.schedule(10, lambda: fired.append("a"))
        scheduler.schedule(60, lambda: fired.append("c"))

        assert scheduler.advance(45) == 2
        assert fired == ["a", "b"]
        assert scheduler.pending_count == 1

    def test_clock_set_to_due_time_during_callback(self, scheduler, clock):
        seen = []
        scheduler.schedule(10, lambda: seen.append(clock.now()))

        scheduler.advance(100)

        assert seen == [NOW + timedelta(seconds=10)]
        assert clock.now() == NOW + timedelta(seconds=100)

    def test_cancelled_task_never_fires(self, scheduler):
        fired = []
        task = scheduler.schedule(10, lambda: fired.append(1))
        task.cancel()
        task.cancel()

        assert scheduler.advance(20) == 0
        assert fired == []
        assert not task.active

    def test_timer_scheduled_from_callback(self, scheduler):
        fired = []

        def first():
            fired.append("first")
            scheduler.schedule(5, lambda: fired.append("second"))

        scheduler.schedule(5, first)
        scheduler.advance(20)

        assert fired == ["first", "second"]


class TestPeriodicTask:
    """Tests for PeriodicTask."""

    def test_runs_every_interval(self, scheduler):
        runs = []
        task = PeriodicTask(scheduler, 60, lambda: runs.append(1), name="test")
        task.start()

        scheduler.advance(185)

        assert len(runs) == 3
        assert task.get_metrics()["run_count"] == 3

    def test_stop_prevents_further_runs(self, scheduler):
        runs = []
        task = PeriodicTask(scheduler, 60, lambda: runs.append(1))
        task.start()
        scheduler.advance(60)
        task.stop()

        scheduler.advance(600)

        assert len(runs) == 1
        assert not task.running
        assert scheduler.pending_count == 0

    def test_failure_is_logged_and_rescheduled(self, scheduler, caplog):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")

        task = PeriodicTask(scheduler, 10, flaky, name="flaky")
        task.start()

        with caplog.at_level(logging.ERROR):
            scheduler.advance(25)

        assert len(calls) == 2
        assert task.error_count == 1
        assert "flaky" in caplog.text

    def test_rejects_non_positive_interval(self, scheduler):
        with pytest.raises(ValueError):
            PeriodicTask(scheduler, 0, lambda: None)


class TestAsyncioScheduler:
    """Tests for AsyncioScheduler."""

    def test_fires_and_cancels(self):
        async def scenario():
            scheduler = AsyncioScheduler()
            fired = []
            scheduler.schedule(0.01, lambda: fired.append("kept"))
            cancelled = scheduler.schedule(0.01, lambda: fired.append("cancelled"))
            cancelled.cancel()
            await asyncio.sleep(0.05)
            return fired

        assert asyncio.run(scenario()) == ["kept"]
