"""
Dual session timer: one global timer for the whole exercise, one for the
current question, plus the recorded time of every question visited.

All time comes from the injected Scheduler, so a ManualScheduler makes the
whole timer deterministic. A single repeating tick advances both timers.

Elapsed time for a timer:
    ended:   end - start - paused
    paused:  pause_start - start - paused
    running: now - start - paused
clamped at 0.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import TYPE_CHECKING, Any

from loguru import logger

from .events import EventType, QuestionTiming, TimersStopped, TimerTick

if TYPE_CHECKING:
    from .events import EventBus
    from .scheduler import Handle, Scheduler

GLOBAL = "global"
QUESTION = "question"

_UNSET: Any = object()


def format_time(milliseconds: float) -> str:
    """Render milliseconds as mm:ss; negative values render as 00:00."""
    if milliseconds < 0:
        return "00:00"
    total_seconds = int(milliseconds // 1000)
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"


@dataclass
class TimerState:
    start_time: float | None = None
    end_time: float | None = None
    paused_time: float = 0.0
    is_paused: bool = False
    pause_start_time: float | None = None
    limit: float | None = None
    elapsed: float = 0.0
    warning_emitted: bool = False
    question_index: int | None = None

    @property
    def is_running(self) -> bool:
        return self.start_time is not None and self.end_time is None

    def compute_elapsed(self, now: float) -> float:
        if self.start_time is None:
            return 0.0
        if self.end_time is not None:
            value = self.end_time - self.start_time - self.paused_time
        elif self.is_paused and self.pause_start_time is not None:
            value = self.pause_start_time - self.start_time - self.paused_time
        else:
            value = now - self.start_time - self.paused_time
        return max(0.0, value)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TimerState":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


class DualTimer:
    """
    Global + per-question timer publishing on the engine's event bus.

    Events: timerUpdate on every tick per running timer, timeWarning once
    per timer at warning_threshold x limit, timeLimitExceeded when a limit
    is reached (question: the question ends; global: everything stops),
    questionStarted, questionEnded, allStopped.
    """

    def __init__(
        self,
        scheduler: "Scheduler",
        bus: "EventBus | None" = None,
        *,
        tick_interval: float = 100,
        global_limit: float | None = None,
        question_limit: float | None = None,
        warning_threshold: float = 0.8,
    ):
        self._scheduler = scheduler
        self._bus = bus
        self.tick_interval = tick_interval
        self.global_limit = global_limit
        self.question_limit = question_limit
        self.warning_threshold = warning_threshold

        self._tick_handle: Handle | None = None
        self._paused = False
        self._destroyed = False
        self._init_timers()

    def _init_timers(self) -> None:
        self.global_timer = TimerState(limit=self.global_limit)
        self.question_timer = TimerState(limit=self.question_limit)
        self.question_times: dict[int, TimerState] = {}

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_running(self) -> bool:
        return self.global_timer.is_running or self.question_timer.is_running

    @property
    def is_ticking(self) -> bool:
        return self._tick_handle is not None

    @property
    def current_question_index(self) -> int | None:
        return self.question_timer.question_index if self.question_timer.is_running else None

    # =========================================================================
    # Control
    # =========================================================================

    def start_global(self) -> None:
        if self.global_timer.start_time is not None:
            return
        now = self._scheduler.now()
        self.global_timer.start_time = now
        if self._paused:
            self.global_timer.is_paused = True
            self.global_timer.pause_start_time = now
        logger.debug("Global timer started (limit={})", self.global_timer.limit)
        self._ensure_ticking()

    def start_question(self, question_index: int) -> None:
        """Start timing question_index, ending any question currently timed."""
        if self.question_timer.is_running:
            self.end_question()

        now = self._scheduler.now()
        timer = TimerState(start_time=now, limit=self.question_limit, question_index=question_index)
        if self._paused:
            timer.is_paused = True
            timer.pause_start_time = now
        self.question_timer = timer
        # Revisiting a question restarts its recorded time
        self.question_times[question_index] = timer

        self._publish(EventType.QUESTION_STARTED, QuestionTiming(question_index, 0.0))
        self._ensure_ticking()

    def end_question(self) -> tuple[int, float] | None:
        """Stop the question timer. Returns (question_index, elapsed) or None if idle."""
        timer = self.question_timer
        if not timer.is_running or timer.question_index is None:
            return None

        now = self._scheduler.now()
        self._finish(timer, now)
        index = timer.question_index
        self._publish(EventType.QUESTION_ENDED, QuestionTiming(index, timer.elapsed))

        self.question_timer = TimerState(limit=self.question_limit)
        if not self.is_running:
            self._stop_ticking()
        return index, timer.elapsed

    def pause(self) -> bool:
        """Freeze both timers. Returns False when already paused."""
        if self._paused:
            return False
        # Flag first: a tick already queued for this instant sees it and does nothing
        self._paused = True
        now = self._scheduler.now()
        for timer in (self.global_timer, self.question_timer):
            if timer.is_running and not timer.is_paused:
                timer.is_paused = True
                timer.pause_start_time = now
        self._stop_ticking()
        return True

    def resume(self) -> bool:
        """Unfreeze both timers. Returns False when not paused."""
        if not self._paused:
            return False
        self._paused = False
        now = self._scheduler.now()
        for timer in (self.global_timer, self.question_timer):
            self._unpause(timer, now)
        self._ensure_ticking()
        return True

    def stop_all(self) -> None:
        self.end_question()
        if self.global_timer.is_running:
            self._finish(self.global_timer, self._scheduler.now())
        self._stop_ticking()
        self._publish(
            EventType.ALL_STOPPED,
            TimersStopped(self.get_total_time(), self.get_question_times()),
        )

    def update_limits(
        self,
        global_limit: float | None = _UNSET,
        question_limit: float | None = _UNSET,
        warning_threshold: float | None = None,
    ) -> None:
        if global_limit is not _UNSET:
            self.global_limit = global_limit
            self.global_timer.limit = global_limit
        if question_limit is not _UNSET:
            self.question_limit = question_limit
            self.question_timer.limit = question_limit
        if warning_threshold is not None:
            self.warning_threshold = warning_threshold

    def reset(self) -> None:
        if self.is_running:
            self.stop_all()
        self._stop_ticking()
        self._paused = False
        self._init_timers()

    def destroy(self) -> None:
        """Cancel the tick and stop publishing. The timer cannot be reused."""
        self._stop_ticking()
        self._destroyed = True
        self._bus = None

    # =========================================================================
    # Queries
    # =========================================================================

    def get_question_time(self, question_index: int) -> float:
        timer = self.question_times.get(question_index)
        if timer is None:
            return 0.0
        return timer.compute_elapsed(self._scheduler.now())

    def get_question_times(self) -> dict[int, float]:
        now = self._scheduler.now()
        return {index: timer.compute_elapsed(now) for index, timer in self.question_times.items()}

    def get_total_time(self) -> float:
        return self.global_timer.compute_elapsed(self._scheduler.now())

    def get_state(self) -> dict:
        """JSON-serializable snapshot of both timers and every question timing."""
        now = self._scheduler.now()

        def dump(timer: TimerState) -> dict:
            data = timer.to_dict()
            data["elapsed"] = timer.compute_elapsed(now)
            data["remaining"] = timer.limit - data["elapsed"] if timer.limit else None
            data["is_running"] = timer.is_running
            return data

        return {
            GLOBAL: dump(self.global_timer),
            QUESTION: dump(self.question_timer),
            "questions": [[index, dump(timer)] for index, timer in self.question_times.items()],
            "is_paused": self._paused,
        }

    def restore(self, state: dict) -> None:
        """
        Rebuild timers from get_state() output.

        Clocks do not survive a process, so every timer is re-anchored on the
        current time at its saved elapsed value. Timers that were running come
        back paused; call resume() to continue.
        """
        self._stop_ticking()
        self._paused = False
        now = self._scheduler.now()

        self.global_timer = self._rebuild(state.get(GLOBAL) or {}, now, self.global_limit)
        current = self._rebuild(state.get(QUESTION) or {}, now, self.question_limit)

        self.question_times = {}
        for index, data in state.get("questions") or []:
            self.question_times[int(index)] = self._rebuild(data, now, self.question_limit)

        if current.is_running and current.question_index is not None:
            # Share the instance so the map keeps tracking the live question
            self.question_times[current.question_index] = current
        self.question_timer = current if current.is_running else TimerState(limit=self.question_limit)

        if self.is_running:
            self._paused = True
        logger.debug("Timers restored (total={}ms, questions={})", self.get_total_time(), len(self.question_times))

    # =========================================================================
    # Tick
    # =========================================================================

    def _tick(self) -> None:
        if self._paused or self._destroyed:
            return
        now = self._scheduler.now()
        for name in (GLOBAL, QUESTION):
            timer = self.global_timer if name == GLOBAL else self.question_timer
            if not timer.is_running or timer.is_paused:
                continue
            timer.elapsed = timer.compute_elapsed(now)
            self._publish(EventType.TIMER_UPDATE, self._tick_payload(name, timer))
            self._check_warning(name, timer)
            self._check_limit(name, timer)
        if not self.is_running:
            self._stop_ticking()

    def _check_warning(self, name: str, timer: TimerState) -> None:
        if not timer.limit or timer.warning_emitted:
            return
        if timer.elapsed >= timer.limit * self.warning_threshold:
            timer.warning_emitted = True
            self._publish(EventType.TIME_WARNING, self._tick_payload(name, timer))

    def _check_limit(self, name: str, timer: TimerState) -> None:
        if not timer.limit or timer.elapsed < timer.limit:
            return
        logger.info("{} time limit of {}ms reached", name.capitalize(), timer.limit)
        self._publish(EventType.TIME_LIMIT_EXCEEDED, self._tick_payload(name, timer))
        if name == GLOBAL:
            self.stop_all()
        else:
            self.end_question()

    @staticmethod
    def _tick_payload(name: str, timer: TimerState) -> TimerTick:
        return TimerTick(
            timer=name,
            elapsed=timer.elapsed,
            limit=timer.limit,
            remaining=timer.limit - timer.elapsed if timer.limit else None,
            question_index=timer.question_index,
        )

    def _ensure_ticking(self) -> None:
        if self._tick_handle is None and not self._paused and not self._destroyed and self.is_running:
            self._tick_handle = self._scheduler.call_every(self.tick_interval, self._tick)

    def _stop_ticking(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

    # =========================================================================
    # Helpers
    # =========================================================================

    def _publish(self, event_type: EventType, payload: Any) -> None:
        if self._bus is not None:
            self._bus.publish(event_type, payload)

    @staticmethod
    def _unpause(timer: TimerState, now: float) -> None:
        if timer.is_paused and timer.pause_start_time is not None:
            timer.paused_time += now - timer.pause_start_time
        timer.is_paused = False
        timer.pause_start_time = None

    def _finish(self, timer: TimerState, now: float) -> None:
        self._unpause(timer, now)
        timer.end_time = now
        timer.elapsed = timer.compute_elapsed(now)

    @staticmethod
    def _rebuild(data: dict, now: float, default_limit: float | None) -> TimerState:
        saved = TimerState.from_dict(data)
        if saved.start_time is None:
            return TimerState(limit=saved.limit if "limit" in data else default_limit)
        elapsed = max(0.0, float(data.get("elapsed", saved.elapsed)))
        timer = TimerState(
            start_time=now - elapsed,
            limit=saved.limit,
            elapsed=elapsed,
            warning_emitted=saved.warning_emitted,
            question_index=saved.question_index,
        )
        if saved.end_time is not None:
            timer.end_time = now
        else:
            timer.is_paused = True
            timer.pause_start_time = now
        return timer

    format_time = staticmethod(format_time)
