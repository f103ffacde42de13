"""
Session lifecycle status.

    ready -> in_progress -> completed
                 ^   |
                 |   v
                paused

Any state may move to failed. reset() returns to ready.
"""

from __future__ import annotations

import time
from enum import Enum

from loguru import logger

from .errors import InvalidStatus, InvalidStatusTransition


class SessionStatus(str, Enum):
    """Lifecycle states of an exercise session."""

    READY = "ready"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.READY: frozenset({SessionStatus.IN_PROGRESS}),
    SessionStatus.IN_PROGRESS: frozenset({SessionStatus.PAUSED, SessionStatus.COMPLETED}),
    SessionStatus.PAUSED: frozenset({SessionStatus.IN_PROGRESS}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.FAILED: frozenset(),
}


def parse_status(value: str | SessionStatus) -> SessionStatus:
    """Coerce a raw value into a SessionStatus, raising InvalidStatus."""
    if isinstance(value, SessionStatus):
        return value
    try:
        return SessionStatus(value)
    except ValueError:
        raise InvalidStatus(value) from None


class StatusTracker:
    """Finite-state tracker for one exercise session."""

    def __init__(self, exercise_id: str | None = None):
        self.exercise_id = exercise_id
        self._status = SessionStatus.READY
        self.created_at = int(time.time() * 1000)
        self.updated_at = self.created_at

    @property
    def status(self) -> SessionStatus:
        return self._status

    def can_transition(self, target: str | SessionStatus) -> bool:
        target = parse_status(target)
        if target is SessionStatus.FAILED:
            return True
        return target in ALLOWED_TRANSITIONS[self._status]

    def transition_to(self, target: str | SessionStatus) -> SessionStatus:
        """
        Move to a new status.

        Raises:
            InvalidStatus: target is not a recognized status
            InvalidStatusTransition: target is not reachable from the current status
        """
        target = parse_status(target)
        if target is self._status:
            return self._status
        if not self.can_transition(target):
            raise InvalidStatusTransition(self._status.value, target.value)

        logger.debug("Session {} status {} -> {}", self.exercise_id, self._status.value, target.value)
        self._status = target
        self.updated_at = int(time.time() * 1000)
        return self._status

    def fail(self) -> None:
        self.transition_to(SessionStatus.FAILED)

    def reset(self, exercise_id: str | None = None) -> None:
        """Return to ready, e.g. when a new exercise is loaded."""
        if exercise_id is not None:
            self.exercise_id = exercise_id
        self._status = SessionStatus.READY
        self.updated_at = int(time.time() * 1000)

    def force(self, status: str | SessionStatus) -> None:
        """Set a status restored from a snapshot, bypassing transition rules."""
        self._status = parse_status(status)
        self.updated_at = int(time.time() * 1000)

    def to_dict(self) -> dict:
        return {
            "exercise_id": self.exercise_id,
            "status": self._status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
