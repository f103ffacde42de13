"""
Exercise session engine.

Runs timed, scored exercises built from heterogeneous question types:
validation, adaptive scoring, dual timers and multi-backend persistence.
"""

from .backends import DatabaseBackend, FileBackend, MemoryBackend
from .errors import (
    AlreadyStarted,
    EngineDestroyed,
    EngineFailed,
    ExerciseNotActive,
    InvalidStatus,
    InvalidStatusTransition,
    MissingExerciseData,
    NoCurrentQuestion,
    QuizEngineError,
)
from .events import Event, EventBus, EventType, Subscription
from .models import (
    AnswerRecord,
    CompletionResult,
    ExerciseConfig,
    ExerciseDefinition,
    HintUse,
    Question,
    ScoringConfig,
)
from .scheduler import AsyncioScheduler, ManualScheduler, Scheduler
from .scoring import FinalScore, ScoreBreakdown, ScoreCalculator
from .session import EngineContext, HintResponse, SessionEngine, SubmissionResult, snapshot_key
from .session_store import SessionStore, StorageStrategy
from .status import SessionStatus, StatusTracker
from .timer import DualTimer, TimerState, format_time
from .validators import AnswerValidator, ExerciseType, ValidationResult

__all__ = [
    # Engine
    "EngineContext",
    "SessionEngine",
    "SubmissionResult",
    "HintResponse",
    "snapshot_key",
    # Components
    "AnswerValidator",
    "DualTimer",
    "EventBus",
    "ScoreCalculator",
    "SessionStore",
    "StatusTracker",
    # Storage backends
    "DatabaseBackend",
    "FileBackend",
    "MemoryBackend",
    # Scheduling
    "AsyncioScheduler",
    "ManualScheduler",
    "Scheduler",
    # Data
    "AnswerRecord",
    "CompletionResult",
    "Event",
    "EventType",
    "ExerciseConfig",
    "ExerciseDefinition",
    "ExerciseType",
    "FinalScore",
    "HintUse",
    "Question",
    "ScoreBreakdown",
    "ScoringConfig",
    "SessionStatus",
    "StorageStrategy",
    "Subscription",
    "TimerState",
    "ValidationResult",
    "format_time",
    # Errors
    "AlreadyStarted",
    "EngineDestroyed",
    "EngineFailed",
    "ExerciseNotActive",
    "InvalidStatus",
    "InvalidStatusTransition",
    "MissingExerciseData",
    "NoCurrentQuestion",
    "QuizEngineError",
]
