"""
Periodic snapshot saving for a running session.

The saver listens for state-changing events and marks the session dirty;
every interval a dirty session is queued in the store and auto:saved is
published.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

from loguru import logger

from .events import AutoSaved, Event, EventType
from .scheduler import epoch_ms

if TYPE_CHECKING:
    from .events import EventBus, Subscription
    from .scheduler import Handle, Scheduler
    from .session_store import SessionStore

DIRTY_EVENTS = (
    EventType.EXERCISE_LOADED,
    EventType.EXERCISE_STARTED,
    EventType.EXERCISE_RESUMED,
    EventType.EXERCISE_RESET,
    EventType.QUESTION_CHANGED,
    EventType.ANSWER_SUBMITTED,
    EventType.HINT_USED,
    EventType.BOOKMARK_ADDED,
    EventType.BOOKMARK_REMOVED,
    EventType.BOOKMARKS_CLEARED,
)


class AutoSaver:
    """Interval saver driven by the engine's scheduler. start()/stop() are idempotent."""

    def __init__(
        self,
        bus: "EventBus",
        store: "SessionStore",
        scheduler: "Scheduler",
        snapshot: Callable[[], dict],
        key: Callable[[], str],
        interval: float = 30000,
    ):
        self._bus = bus
        self._store = store
        self._scheduler = scheduler
        self._snapshot = snapshot
        self._key = key
        self.interval = interval

        self.dirty = False
        self.saves = 0
        self._handle: Handle | None = None
        self._subscription: Subscription = bus.subscribe(self._mark_dirty, *DIRTY_EVENTS)

    @property
    def running(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        if self._handle is None:
            self._handle = self._scheduler.call_every(self.interval, self.save_if_dirty)
            logger.debug("Auto-save started every {}ms", self.interval)

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            logger.debug("Auto-save stopped")

    def detach(self) -> None:
        self.stop()
        self._subscription.unsubscribe()

    def save_if_dirty(self) -> bool:
        if not self.dirty:
            return False
        key = self._key()
        if not self._store.enqueue(key, self._snapshot()):
            return False
        self.dirty = False
        self.saves += 1
        self._bus.publish(EventType.AUTO_SAVED, AutoSaved(key=key, timestamp=epoch_ms()))
        return True

    def _mark_dirty(self, event: Event) -> None:
        self.dirty = True
