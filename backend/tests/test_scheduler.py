"""
Tests for the single-timer scheduler and its earliest-wins merge rule.
"""

import asyncio

import pytest

from feedguard.core.scheduler import STALE_AFTER_MS, Scheduler


@pytest.fixture
def fired():
    return []


@pytest.fixture
def scheduler(clock, timer, fired):
    async def on_fire():
        fired.append(clock())
    return Scheduler(on_fire, clock=clock, timer=timer, tolerance_ms=10)


class TestArming:

    def test_starts_idle(self, scheduler):
        assert scheduler.scheduled_at == 0
        assert scheduler.state == "idle"

    def test_idle_schedule_arms(self, scheduler, clock, timer):
        assert scheduler.schedule("enqueue", 500) is True

        assert scheduler.state == "armed"
        assert scheduler.scheduled_at == clock.now + 500
        assert len(timer.live) == 1
        assert timer.live[0].delay == pytest.approx(0.5)

    def test_negative_delay_treated_as_zero(self, scheduler, clock):
        scheduler.schedule("enqueue", -100)
        assert scheduler.scheduled_at == clock.now


class TestEarliestWins:

    def test_later_request_is_ignored(self, scheduler, clock, timer):
        scheduler.schedule("enqueue", 0)
        armed_at = scheduler.scheduled_at

        assert scheduler.schedule("tick", 20_000) is False
        assert scheduler.scheduled_at == armed_at
        assert len(timer.live) == 1

    def test_request_within_tolerance_is_ignored(self, scheduler, clock):
        scheduler.schedule("tick", 1_000)
        armed_at = scheduler.scheduled_at

        # due' = T - 5ms, not strictly earlier than T - 10ms
        assert scheduler.schedule("enqueue", 995) is False
        assert scheduler.scheduled_at == armed_at

    def test_request_at_tolerance_boundary_is_ignored(self, scheduler):
        scheduler.schedule("tick", 1_000)
        armed_at = scheduler.scheduled_at

        assert scheduler.schedule("enqueue", 990) is False
        assert scheduler.scheduled_at == armed_at

    def test_earlier_request_rearms(self, scheduler, clock, timer):
        scheduler.schedule("tick", 20_000)
        first_handle = timer.live[0]

        assert scheduler.schedule("enqueue", 0) is True
        assert scheduler.scheduled_at == clock.now
        assert first_handle.cancelled
        assert len(timer.live) == 1

    def test_periodic_rearm_does_not_starve_asap(self, scheduler, clock):
        scheduler.schedule("enqueue", 0)
        for _ in range(5):
            scheduler.schedule("tick", 20_000)
        assert scheduler.scheduled_at == clock.now

    def test_stale_timer_rearmed_immediately(self, scheduler, clock, timer):
        scheduler.schedule("tick", 1_000)
        clock.advance(1_000 + STALE_AFTER_MS + 1)

        assert scheduler.schedule("tick", 20_000) is True
        assert scheduler.scheduled_at == clock.now
        assert timer.live[-1].delay == 0


class TestFiring:

    async def test_fire_goes_idle_then_runs(self, scheduler, timer, fired, clock):
        scheduler.schedule("enqueue", 0)
        timer.fire()

        assert scheduler.scheduled_at == 0
        await scheduler.drain()
        assert fired == [clock.now]

    async def test_pass_can_rearm(self, clock, timer):
        observed = []

        async def on_fire():
            observed.append(scheduler.scheduled_at)
            scheduler.schedule("continuation", 250)

        scheduler = Scheduler(on_fire, clock=clock, timer=timer)
        scheduler.schedule("enqueue", 0)
        timer.fire()
        await scheduler.drain()

        assert observed == [0]
        assert scheduler.scheduled_at == clock.now + 250

    def test_cancel_returns_to_idle(self, scheduler, timer):
        scheduler.schedule("enqueue", 100)
        scheduler.cancel()

        assert scheduler.state == "idle"
        assert timer.live == []

    async def test_real_loop_timer(self):
        done = asyncio.Event()

        async def on_fire():
            done.set()

        scheduler = Scheduler(on_fire)
        scheduler.schedule("enqueue", 5)
        await asyncio.wait_for(done.wait(), timeout=2)
        assert scheduler.scheduled_at == 0
        await scheduler.drain()
