import pytest

from quiz_session.core.services.countdown_timer import CountdownTimer, format_time
from quiz_session.core.services.session_store import MemorySessionStore, SessionKey


def _timer(clock, scheduler, store=None, duration=60, expired=None, **kwargs):
    fired = expired if expired is not None else []
    return CountdownTimer(
        store or MemorySessionStore(),
        duration,
        lambda: fired.append(clock()),
        clock=clock,
        scheduler=scheduler,
        **kwargs,
    )


def test_arm_persists_absolute_deadline(clock, scheduler):
    store = MemorySessionStore()
    timer = _timer(clock, scheduler, store)

    timer.arm()

    assert store.get(SessionKey.TIMER_DEADLINE) == clock.now + 60
    assert timer.remaining_seconds() == 60
    assert timer.is_running


def test_remaining_follows_wall_clock_not_ticks(clock, scheduler):
    timer = _timer(clock, scheduler)
    timer.arm()

    # No ticks delivered, as with a throttled background tab.
    clock.advance(25)

    assert timer.remaining_seconds() == 35
    assert timer.elapsed_seconds() == 25


def test_resume_after_reload_does_not_reset(clock, scheduler):
    store = MemorySessionStore()
    _timer(clock, scheduler, store).arm()
    clock.advance(40)

    reloaded = _timer(clock, scheduler, store)
    reloaded.resume()

    assert reloaded.remaining_seconds() == 20
    assert reloaded.display_seconds == 20


def test_fires_once_at_zero_and_stops_scheduling(clock, scheduler):
    fired = []
    timer = _timer(clock, scheduler, expired=fired)
    start = clock.now
    timer.arm()

    scheduler.advance(59)
    assert fired == []
    assert timer.display_seconds == 1

    scheduler.advance(5)

    assert fired == [start + 60]
    assert timer.has_expired
    assert not timer.is_running
    assert scheduler.pending() == []
    timer.tick()
    assert len(fired) == 1


def test_resume_with_expired_deadline_fires_through_scheduler(clock, scheduler):
    store = MemorySessionStore()
    _timer(clock, scheduler, store).arm()
    scheduler.handles.clear()
    clock.advance(600)
    fired = []

    timer = _timer(clock, scheduler, store, expired=fired)
    timer.resume()
    assert fired == []

    scheduler.advance(0)
    assert len(fired) == 1
    assert timer.elapsed_seconds() == 60


def test_stop_cancels_pending_tick(clock, scheduler):
    fired = []
    timer = _timer(clock, scheduler, expired=fired)
    timer.arm()
    timer.stop()

    scheduler.advance(120)

    assert fired == []
    assert scheduler.pending() == []


def test_tick_is_noop_when_session_no_longer_live(clock, scheduler):
    fired = []
    live = {"value": True}
    timer = _timer(clock, scheduler, expired=fired, is_live=lambda: live["value"])
    timer.arm()
    live["value"] = False

    scheduler.advance(120)

    assert fired == []
    assert not timer.is_running


def test_resume_without_deadline_arms_one(clock, scheduler):
    store = MemorySessionStore()
    timer = _timer(clock, scheduler, store, duration=90)
    timer.resume()
    assert store.get(SessionKey.TIMER_DEADLINE) == clock.now + 90


@pytest.mark.parametrize("seconds, expected", [(0, "0:00"), (5, "0:05"), (60, "1:00"), (754, "12:34"), (-3, "0:00")])
def test_format_time(seconds, expected):
    assert format_time(seconds) == expected
