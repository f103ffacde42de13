"""
Typed errors raised by the session engine.

Only programmer errors are raised: calling engine operations out of
sequence. Wrong answers, unknown exercise types, exhausted hints and
time limits are reported as data, never as exceptions.
"""


class QuizEngineError(Exception):
    """Base class for all engine errors."""


class InvalidStatus(QuizEngineError):
    """Raised when a status value is not one of the recognized states."""

    def __init__(self, status: object):
        self.status = status
        super().__init__(f"Invalid status: {status!r}")


class InvalidStatusTransition(QuizEngineError):
    """Raised when a recognized status cannot be reached from the current one."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot transition from '{current}' to '{target}'")


class MissingExerciseData(QuizEngineError):
    """Raised by load_exercise when no definition is supplied."""

    def __init__(self) -> None:
        super().__init__("Exercise data is required")


class AlreadyStarted(QuizEngineError):
    """Raised by start() when the exercise has already been started."""

    def __init__(self) -> None:
        super().__init__("Exercise already started")


class ExerciseNotActive(QuizEngineError):
    """Raised when answering while the exercise is paused or completed."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Cannot submit answer: exercise is {reason}")


class NoCurrentQuestion(QuizEngineError):
    """Raised when an operation needs a current question and there is none."""

    def __init__(self) -> None:
        super().__init__("No current question available")


class EngineDestroyed(QuizEngineError):
    """Raised when a destroyed engine is used again."""

    def __init__(self) -> None:
        super().__init__("Engine has been destroyed")


class EngineFailed(QuizEngineError):
    """Raised while the engine is in the failed state; reload the exercise to recover."""

    def __init__(self) -> None:
        super().__init__("Engine is in the failed state; reload the exercise")
