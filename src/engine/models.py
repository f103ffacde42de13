"""
Data model for exercise sessions.

Definitions and configuration are pydantic models so that authored JSON
(camelCase keys such as correctAnswer) validates on the way in; runtime
records are dataclasses with explicit to_dict/from_dict for snapshots.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .scheduler import epoch_ms
from .validators.base import ValidationResult

if TYPE_CHECKING:
    from config import Settings

    from .scoring import FinalScore

Difficulty = Literal["easy", "medium", "hard"]


# =============================================================================
# Exercise definitions
# =============================================================================


class Question(BaseModel):
    """
    One question. Which correct_* field is used depends on the exercise type:

    - correct_answer: multipleChoice, singleAnswer, clickToChange
    - correct_answers: multipleAnswers, fillInTheBlanks, gapFill
    - correct_selections: highlight
    - correct_positions: dragAndDrop ({item_id: zone})
    - correct_sequence: sequencing
    - correct_table: tableExercise ({row: {column: value}})
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    id: str | int | None = None
    prompt: str | None = Field(default=None, alias="question")
    options: list[Any] | None = None
    correct_answer: Any = Field(default=None, alias="correctAnswer")
    correct_answers: list[Any] = Field(default_factory=list, alias="correctAnswers")
    correct_selections: list[Any] = Field(default_factory=list, alias="correctSelections")
    correct_positions: dict[str, Any] = Field(default_factory=dict, alias="correctPositions")
    correct_sequence: list[Any] = Field(default_factory=list, alias="correctSequence")
    correct_table: dict[str, dict[str, Any]] = Field(default_factory=dict, alias="correctTable")
    hint: str | None = None
    hints: list[str] = Field(default_factory=list)
    difficulty: Difficulty = "medium"
    correct_feedback: str | None = Field(default=None, alias="correctFeedback")
    incorrect_feedback: str | None = Field(default=None, alias="incorrectFeedback")

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ExerciseDefinition(BaseModel):
    """An exercise: a type tag plus its questions. Immutable for a session."""

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    id: str
    type: str
    title: str | None = None
    questions: list[Question] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Configuration
# =============================================================================


class TimeBonusConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = True
    max_bonus: float = Field(default=50, ge=0, alias="maxBonus")  # percent
    fast_answer_threshold: int = Field(default=10000, gt=0, alias="fastAnswerThreshold")  # ms


class HintPenaltyConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = True
    penalty_per_hint: float = Field(default=10, ge=0, alias="penaltyPerHint")  # percent


class PartialCreditConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = True
    minimum_score: float = Field(default=0.1, ge=0, le=1, alias="minimumScore")


class StreakBonusConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = True
    bonus_per_streak: float = Field(default=5, ge=0, alias="bonusPerStreak")  # percent
    max_streak: int = Field(default=10, ge=0, alias="maxStreak")


class ScoringConfig(BaseModel):
    """Weights for ScoreCalculator."""

    model_config = ConfigDict(populate_by_name=True)

    base_score: int = Field(default=100, ge=0, alias="baseScore")
    time_bonus: TimeBonusConfig = Field(default_factory=TimeBonusConfig, alias="timeBonus")
    difficulty_multiplier: dict[str, float] = Field(
        default_factory=lambda: {"easy": 1.0, "medium": 1.25, "hard": 1.5},
        alias="difficultyMultiplier",
    )
    hint_penalty: HintPenaltyConfig = Field(default_factory=HintPenaltyConfig, alias="hintPenalty")
    partial_credit: PartialCreditConfig = Field(default_factory=PartialCreditConfig, alias="partialCredit")
    streak_bonus: StreakBonusConfig = Field(default_factory=StreakBonusConfig, alias="streakBonus")
    completion_bonus_rate: float = Field(default=0.10, ge=0, alias="completionBonusRate")


class ExerciseConfig(BaseModel):
    """Per-exercise settings passed to load_exercise."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    global_time_limit: int | None = Field(default=None, gt=0, alias="globalTimeLimit")
    question_time_limit: int | None = Field(default=None, gt=0, alias="questionTimeLimit")
    warning_threshold: float = Field(default=0.8, ge=0, le=1, alias="warningThreshold")
    auto_save: bool = Field(default=True, alias="autoSave")
    auto_save_frequency: int = Field(default=30000, gt=0, alias="autoSaveFrequency")
    max_hints: int = Field(default=3, ge=0, alias="maxHints")
    allow_incorrect_progression: bool = Field(default=True, alias="allowIncorrectProgression")
    persist_snapshots: bool = Field(default=True, alias="persistSnapshots")

    @classmethod
    def from_settings(cls, settings: "Settings", **overrides: Any) -> "ExerciseConfig":
        base = cls(
            global_time_limit=settings.global_time_limit_ms,
            question_time_limit=settings.question_time_limit_ms,
            warning_threshold=settings.warning_threshold,
            auto_save_frequency=settings.auto_save_frequency_ms,
            max_hints=settings.max_hints,
        )
        return base.merged(overrides) if overrides else base

    def merged(self, overrides: "ExerciseConfig | dict | None") -> "ExerciseConfig":
        """Return a copy with the explicitly-set fields of overrides applied."""
        if overrides is None:
            return self
        if isinstance(overrides, dict):
            overrides = ExerciseConfig.model_validate(overrides)
        update = {name: getattr(overrides, name) for name in overrides.model_fields_set}
        return self.model_copy(update=update)


# =============================================================================
# Runtime records
# =============================================================================


@dataclass
class HintUse:
    level: int
    hint: str
    timestamp: int = field(default_factory=epoch_ms)

    def to_dict(self) -> dict:
        return {"level": self.level, "hint": self.hint, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict) -> "HintUse":
        return cls(level=data["level"], hint=data["hint"], timestamp=data.get("timestamp", 0))


@dataclass
class AnswerRecord:
    """The live answer for one question index (resubmission overwrites)."""

    question_index: int
    answer: Any
    validation: ValidationResult
    time_to_answer: float = 0.0  # ms
    hints_used: int = 0
    difficulty: str = "medium"
    timestamp: int = field(default_factory=epoch_ms)

    def to_dict(self) -> dict:
        return {
            "question_index": self.question_index,
            "answer": self.answer,
            "validation": self.validation.to_dict(),
            "time_to_answer": self.time_to_answer,
            "hints_used": self.hints_used,
            "difficulty": self.difficulty,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AnswerRecord":
        return cls(
            question_index=int(data["question_index"]),
            answer=data.get("answer"),
            validation=ValidationResult.from_dict(data["validation"]),
            time_to_answer=data.get("time_to_answer", 0.0),
            hints_used=data.get("hints_used", 0),
            difficulty=data.get("difficulty", "medium"),
            timestamp=data.get("timestamp", 0),
        )


@dataclass
class CompletionResult:
    """What complete() returns and exercise:completed carries."""

    exercise_id: str
    final_score: "FinalScore"
    total_time: float  # ms
    answers_count: int
    questions_count: int
    completed_at: int = field(default_factory=epoch_ms)

    def to_dict(self) -> dict:
        return {
            "exercise_id": self.exercise_id,
            "final_score": self.final_score.to_dict(),
            "total_time": self.total_time,
            "answers_count": self.answers_count,
            "questions_count": self.questions_count,
            "completed_at": self.completed_at,
        }
