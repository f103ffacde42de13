"""
Typed event channel for the session engine.

Every event name maps to exactly one payload class; publish() rejects a
payload of the wrong type so listeners can rely on the shape they receive.
Listeners are plain callables invoked synchronously in subscription order.
A listener that raises is logged and skipped; the others still run.

Usage:
    bus = EventBus()
    sub = bus.subscribe(on_answer, EventType.ANSWER_SUBMITTED)
    ...
    sub.unsubscribe()
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from loguru import logger

from .models import CompletionResult
from .scheduler import epoch_ms
from .scoring import ScoreBreakdown
from .validators.base import ValidationResult


class EventType(str, Enum):
    # Lifecycle
    EXERCISE_LOADED = "exercise:loaded"
    EXERCISE_STARTED = "exercise:started"
    EXERCISE_PAUSED = "exercise:paused"
    EXERCISE_RESUMED = "exercise:resumed"
    EXERCISE_RESET = "exercise:reset"
    EXERCISE_COMPLETED = "exercise:completed"

    # Questions and answers
    QUESTION_CHANGED = "question:changed"
    ANSWER_SUBMITTED = "answer:submitted"
    HINT_USED = "hint:used"

    # Bookmarks
    BOOKMARK_ADDED = "bookmark:added"
    BOOKMARK_REMOVED = "bookmark:removed"
    BOOKMARKS_CLEARED = "bookmarks:cleared"

    # Timer
    TIMER_UPDATE = "timerUpdate"
    TIME_WARNING = "timeWarning"
    TIME_LIMIT_EXCEEDED = "timeLimitExceeded"
    QUESTION_STARTED = "questionStarted"
    QUESTION_ENDED = "questionEnded"
    ALL_STOPPED = "allStopped"

    # Persistence
    AUTO_SAVED = "auto:saved"

    # Engine
    ENGINE_INITIALIZED = "engine:initialized"
    ENGINE_DESTROYED = "engine:destroyed"
    ENGINE_ERROR = "engine:error"


# =============================================================================
# Payloads
# =============================================================================


@dataclass(frozen=True)
class SessionChanged:
    """Lifecycle payload: loaded, started, paused, resumed, reset."""

    exercise_id: str | None
    status: str
    question_index: int
    questions_count: int = 0


@dataclass(frozen=True)
class QuestionChanged:
    index: int
    previous_index: int
    question: dict[str, Any] | None


@dataclass(frozen=True)
class AnswerSubmitted:
    question_index: int
    answer: Any
    validation: ValidationResult
    score: ScoreBreakdown
    total_score: int
    can_proceed: bool


@dataclass(frozen=True)
class HintUsed:
    question_index: int
    level: int
    hint: str
    hints_used: int


@dataclass(frozen=True)
class BookmarkChanged:
    question_index: int
    bookmarks: tuple[int, ...]


@dataclass(frozen=True)
class BookmarksCleared:
    count: int


@dataclass(frozen=True)
class TimerTick:
    """timerUpdate, timeWarning and timeLimitExceeded. timer is "global" or "question"."""

    timer: str
    elapsed: float
    limit: float | None = None
    remaining: float | None = None
    question_index: int | None = None


@dataclass(frozen=True)
class QuestionTiming:
    question_index: int
    elapsed: float = 0.0


@dataclass(frozen=True)
class TimersStopped:
    total_time: float
    question_times: dict[int, float] = field(default_factory=dict)


@dataclass(frozen=True)
class AutoSaved:
    key: str
    timestamp: int


@dataclass(frozen=True)
class EngineError:
    stage: str
    error: str


EVENT_PAYLOADS: dict[EventType, type] = {
    EventType.EXERCISE_LOADED: SessionChanged,
    EventType.EXERCISE_STARTED: SessionChanged,
    EventType.EXERCISE_PAUSED: SessionChanged,
    EventType.EXERCISE_RESUMED: SessionChanged,
    EventType.EXERCISE_RESET: SessionChanged,
    EventType.EXERCISE_COMPLETED: CompletionResult,
    EventType.QUESTION_CHANGED: QuestionChanged,
    EventType.ANSWER_SUBMITTED: AnswerSubmitted,
    EventType.HINT_USED: HintUsed,
    EventType.BOOKMARK_ADDED: BookmarkChanged,
    EventType.BOOKMARK_REMOVED: BookmarkChanged,
    EventType.BOOKMARKS_CLEARED: BookmarksCleared,
    EventType.TIMER_UPDATE: TimerTick,
    EventType.TIME_WARNING: TimerTick,
    EventType.TIME_LIMIT_EXCEEDED: TimerTick,
    EventType.QUESTION_STARTED: QuestionTiming,
    EventType.QUESTION_ENDED: QuestionTiming,
    EventType.ALL_STOPPED: TimersStopped,
    EventType.AUTO_SAVED: AutoSaved,
    EventType.ENGINE_INITIALIZED: type(None),
    EventType.ENGINE_DESTROYED: type(None),
    EventType.ENGINE_ERROR: EngineError,
}


@dataclass(frozen=True)
class Event:
    type: EventType
    payload: Any
    timestamp: int = field(default_factory=epoch_ms)


Listener = Callable[[Event], None]


class Subscription:
    """Returned by EventBus.subscribe(); unsubscribe() is idempotent."""

    def __init__(self, bus: "EventBus", listener: Listener, types: frozenset[EventType] | None):
        self._bus = bus
        self.listener = listener
        self.types = types
        self.active = True

    def matches(self, event_type: EventType) -> bool:
        return self.types is None or event_type in self.types

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._bus._remove(self)


class EventBus:
    """Synchronous publish/subscribe with a bounded history."""

    def __init__(self, history_size: int = 200):
        self._subscriptions: list[Subscription] = []
        self._history: deque[Event] = deque(maxlen=history_size)

    def subscribe(self, listener: Listener, *types: EventType | str) -> Subscription:
        """Subscribe to the given event types, or to every event when none are given."""
        wanted = frozenset(EventType(t) for t in types) if types else None
        subscription = Subscription(self, listener, wanted)
        self._subscriptions.append(subscription)
        return subscription

    def publish(self, event_type: EventType | str, payload: Any = None) -> Event:
        """
        Deliver an event to every matching listener.

        Raises:
            TypeError: payload is not the class registered for event_type
        """
        event_type = EventType(event_type)
        expected = EVENT_PAYLOADS[event_type]
        if not isinstance(payload, expected):
            raise TypeError(
                f"{event_type.value} expects {expected.__name__}, got {type(payload).__name__}"
            )

        event = Event(event_type, payload)
        self._history.append(event)
        for subscription in list(self._subscriptions):
            if not subscription.active or not subscription.matches(event_type):
                continue
            try:
                subscription.listener(event)
            except Exception:  # Intentionally broad - one bad listener must not starve the rest
                logger.exception("Listener for {} failed", event_type.value)
        return event

    def clear(self) -> None:
        """Detach every listener."""
        for subscription in self._subscriptions:
            subscription.active = False
        self._subscriptions.clear()

    @property
    def listener_count(self) -> int:
        return len(self._subscriptions)

    def history(self, event_type: EventType | str | None = None) -> list[Event]:
        if event_type is None:
            return list(self._history)
        event_type = EventType(event_type)
        return [e for e in self._history if e.type is event_type]

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
