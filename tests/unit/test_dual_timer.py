"""
Unit tests for DualTimer and the schedulers driving it.

Everything runs on a ManualScheduler so elapsed times are exact.
"""

import asyncio

import pytest

from src.engine.events import EventBus, EventType
from src.engine.scheduler import AsyncioScheduler, ManualScheduler
from src.engine.timer import DualTimer, TimerState, format_time


@pytest.fixture
def bus():
    return EventBus(history_size=1000)


@pytest.fixture
def timer(scheduler, bus):
    return DualTimer(scheduler, bus, tick_interval=100)


class TestFormatTime:

    @pytest.mark.parametrize(
        "ms,text",
        [(0, "00:00"), (999, "00:00"), (61000, "01:01"), (3600000, "60:00"), (-5, "00:00")],
    )
    def test_format(self, ms, text):
        assert format_time(ms) == text


class TestManualScheduler:

    def test_callbacks_fire_in_order(self, scheduler):
        fired = []
        scheduler.call_later(300, lambda: fired.append(("b", scheduler.now())))
        scheduler.call_later(100, lambda: fired.append(("a", scheduler.now())))
        scheduler.advance(500)

        assert fired == [("a", 100), ("b", 300)]
        assert scheduler.now() == 500

    def test_repeating_and_cancel(self, scheduler):
        fired = []
        handle = scheduler.call_every(100, lambda: fired.append(scheduler.now()))
        scheduler.advance(350)
        handle.cancel()
        scheduler.advance(500)

        assert fired == [100, 200, 300]
        assert scheduler.pending == 0

    def test_no_time_travel(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.advance(-1)


class TestAsyncioScheduler:

    @pytest.mark.asyncio
    async def test_call_later_runs_on_loop(self):
        scheduler = AsyncioScheduler()
        fired = []
        scheduler.call_later(10, lambda: fired.append(True))
        cancelled = scheduler.call_later(10, lambda: fired.append(False))
        cancelled.cancel()

        await asyncio.sleep(0.05)

        assert fired == [True]
        assert cancelled.cancelled


class TestElapsed:
    """Test elapsed time accounting."""

    def test_global_elapsed(self, timer, scheduler):
        timer.start_global()
        scheduler.advance(3000)

        assert timer.get_total_time() == 3000
        assert timer.is_running
        assert timer.is_ticking

    def test_pause_freezes_both_timers(self, timer, scheduler):
        timer.start_global()
        timer.start_question(0)
        scheduler.advance(3000)

        assert timer.pause() is True
        assert timer.pause() is False
        scheduler.advance(2000)
        assert timer.get_total_time() == 3000
        assert timer.get_question_time(0) == 3000
        assert not timer.is_ticking

        assert timer.resume() is True
        scheduler.advance(1000)
        assert timer.get_total_time() == 4000
        assert timer.get_question_time(0) == 4000

    def test_question_times_recorded(self, timer, scheduler):
        timer.start_global()
        timer.start_question(0)
        scheduler.advance(2000)
        timer.start_question(1)
        scheduler.advance(1000)

        assert timer.get_question_times() == {0: 2000, 1: 1000}
        assert timer.current_question_index == 1

    def test_revisit_restarts_question_time(self, timer, scheduler):
        timer.start_question(0)
        scheduler.advance(2000)
        timer.start_question(1)
        scheduler.advance(1000)
        timer.start_question(0)
        scheduler.advance(500)

        assert timer.get_question_time(0) == 500

    def test_end_question(self, timer, scheduler, bus):
        timer.start_question(4)
        scheduler.advance(1200)

        assert timer.end_question() == (4, 1200)
        assert timer.end_question() is None
        ended = bus.history(EventType.QUESTION_ENDED)
        assert ended[0].payload.question_index == 4

    def test_question_started_while_paused_stays_frozen(self, timer, scheduler):
        timer.start_global()
        timer.pause()
        timer.start_question(0)
        scheduler.advance(1000)

        assert timer.get_question_time(0) == 0

    def test_unknown_question_time_is_zero(self, timer):
        assert timer.get_question_time(9) == 0.0


class TestTicks:
    """Test tick events, warnings and limits."""

    def test_timer_update_events(self, timer, scheduler, bus):
        timer.start_global()
        scheduler.advance(500)

        updates = bus.history(EventType.TIMER_UPDATE)
        assert [e.payload.elapsed for e in updates] == [100, 200, 300, 400, 500]
        assert all(e.payload.timer == "global" for e in updates)

    def test_question_limit(self, scheduler, bus):
        timer = DualTimer(scheduler, bus, question_limit=1000, warning_threshold=0.8)
        timer.start_global()
        timer.start_question(0)
        scheduler.advance(1500)

        warnings = bus.history(EventType.TIME_WARNING)
        exceeded = bus.history(EventType.TIME_LIMIT_EXCEEDED)
        assert len(warnings) == 1
        assert warnings[0].payload.elapsed == 800
        assert len(exceeded) == 1
        assert exceeded[0].payload.timer == "question"
        assert timer.get_question_time(0) == 1000
        assert timer.current_question_index is None
        # The global timer keeps running
        assert timer.get_total_time() == 1500

    def test_global_limit_stops_everything(self, scheduler, bus):
        timer = DualTimer(scheduler, bus, global_limit=2000)
        timer.start_global()
        timer.start_question(0)
        scheduler.advance(5000)

        assert not timer.is_running
        assert not timer.is_ticking
        assert scheduler.pending == 0
        assert timer.get_total_time() == 2000
        assert len(bus.history(EventType.ALL_STOPPED)) == 1

    def test_update_limits(self, timer, scheduler, bus):
        timer.start_global()
        timer.update_limits(global_limit=300)
        scheduler.advance(1000)

        assert timer.get_total_time() == 300
        assert timer.global_limit == 300

    def test_destroy_silences_timer(self, timer, scheduler, bus):
        timer.start_global()
        timer.destroy()
        scheduler.advance(1000)

        assert bus.history(EventType.TIMER_UPDATE) == []
        assert scheduler.pending == 0


class TestState:
    """Test snapshot and restore."""

    def test_stop_all(self, timer, scheduler, bus):
        timer.start_global()
        timer.start_question(0)
        scheduler.advance(700)
        timer.stop_all()

        stopped = bus.history(EventType.ALL_STOPPED)[0].payload
        assert stopped.total_time == 700
        assert stopped.question_times == {0: 700}
        scheduler.advance(1000)
        assert timer.get_total_time() == 700

    def test_reset(self, timer, scheduler):
        timer.start_global()
        scheduler.advance(700)
        timer.reset()

        assert timer.get_total_time() == 0
        assert timer.get_question_times() == {}
        assert not timer.is_running

    def test_restore_comes_back_paused(self, timer, scheduler):
        timer.start_global()
        timer.start_question(0)
        scheduler.advance(2500)
        timer.start_question(1)
        scheduler.advance(1500)
        state = timer.get_state()

        later = ManualScheduler(start_ms=100000)
        restored = DualTimer(later, EventBus())
        restored.restore(state)

        assert restored.is_paused
        assert restored.get_total_time() == 4000
        assert restored.get_question_times() == {0: 2500, 1: 1500}
        later.advance(1000)
        assert restored.get_total_time() == 4000

        restored.resume()
        later.advance(500)
        assert restored.get_total_time() == 4500
        assert restored.get_question_time(1) == 2000
        assert restored.get_question_time(0) == 2500

    def test_restore_empty_state(self, timer):
        timer.restore({})

        assert not timer.is_running
        assert not timer.is_paused

    def test_timer_state_round_trip(self):
        state = TimerState(start_time=10, paused_time=5, limit=100, question_index=2)
        assert TimerState.from_dict({**state.to_dict(), "unknown": 1}) == state
