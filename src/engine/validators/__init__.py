"""
Answer validators for exercise sessions.

Each exercise family has its own module:
- exact: multiple choice, single answer, click to change
- sets: multiple answers, highlight
- blanks: fill in the blanks, gap fill
- mapping: drag and drop, table exercise
- sequence: sequencing

Built-in validators register themselves with @register; AnswerValidator
dispatches on the resolved type tag and accepts custom validators at runtime.
"""

from __future__ import annotations

from dataclasses import replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable

from loguru import logger

from .base import (
    UNKNOWN_TYPE_FEEDBACK,
    VALIDATION_ERROR_FEEDBACK,
    ValidationResult,
    Validator,
)

if TYPE_CHECKING:
    from ..models import Question


class ExerciseType(str, Enum):
    """Built-in exercise types."""
    MULTIPLE_CHOICE = "multipleChoice"
    SINGLE_ANSWER = "singleAnswer"
    CLICK_TO_CHANGE = "clickToChange"
    MULTIPLE_ANSWERS = "multipleAnswers"
    HIGHLIGHT = "highlight"
    FILL_IN_THE_BLANKS = "fillInTheBlanks"
    GAP_FILL = "gapFill"
    DRAG_AND_DROP = "dragAndDrop"
    TABLE_EXERCISE = "tableExercise"
    SEQUENCING = "sequencing"


ALIASES: dict[str, ExerciseType] = {
    "multiple-choice": ExerciseType.MULTIPLE_CHOICE,
    "multiple_choice": ExerciseType.MULTIPLE_CHOICE,
    "mc": ExerciseType.MULTIPLE_CHOICE,
    "single-answer": ExerciseType.SINGLE_ANSWER,
    "single_answer": ExerciseType.SINGLE_ANSWER,
    "radio": ExerciseType.SINGLE_ANSWER,
    "click-to-change": ExerciseType.CLICK_TO_CHANGE,
    "click_to_change": ExerciseType.CLICK_TO_CHANGE,
    "multiple-answers": ExerciseType.MULTIPLE_ANSWERS,
    "multiple_answers": ExerciseType.MULTIPLE_ANSWERS,
    "checkbox": ExerciseType.MULTIPLE_ANSWERS,
    "highlighting": ExerciseType.HIGHLIGHT,
    "fillinblanks": ExerciseType.FILL_IN_THE_BLANKS,
    "fill-in-blanks": ExerciseType.FILL_IN_THE_BLANKS,
    "fill_in_blanks": ExerciseType.FILL_IN_THE_BLANKS,
    "fill-in-the-blanks": ExerciseType.FILL_IN_THE_BLANKS,
    "fill-blanks": ExerciseType.FILL_IN_THE_BLANKS,
    "gap-fill": ExerciseType.GAP_FILL,
    "gap_fill": ExerciseType.GAP_FILL,
    "drag-and-drop": ExerciseType.DRAG_AND_DROP,
    "drag_and_drop": ExerciseType.DRAG_AND_DROP,
    "dnd": ExerciseType.DRAG_AND_DROP,
    "table": ExerciseType.TABLE_EXERCISE,
    "table-exercise": ExerciseType.TABLE_EXERCISE,
    "table_exercise": ExerciseType.TABLE_EXERCISE,
    "sequence": ExerciseType.SEQUENCING,
    "ordering": ExerciseType.SEQUENCING,
}


# Validator registry - populated by @register decorator
VALIDATORS: dict[ExerciseType, Validator] = {}


def register(exercise_type: ExerciseType):
    """Decorator to register a built-in validator."""
    def decorator(cls):
        VALIDATORS[exercise_type] = cls()
        return cls
    return decorator


def get_validator(exercise_type: str | ExerciseType) -> Validator | None:
    """Get the built-in validator for a type tag or alias."""
    if not isinstance(exercise_type, ExerciseType):
        exercise_type = _resolve_builtin(exercise_type)
        if exercise_type is None:
            return None
    return VALIDATORS.get(exercise_type)


def _resolve_builtin(tag: str) -> ExerciseType | None:
    lowered = tag.strip().lower()
    for member in ExerciseType:
        if member.value.lower() == lowered:
            return member
    return ALIASES.get(lowered)


class _FunctionValidator:
    """Adapts a plain function (answer, question) -> result to the Validator protocol."""

    def __init__(self, func: Callable[[Any, "Question"], Any]):
        self._func = func

    def check(self, answer: Any, question: "Question") -> ValidationResult:
        result = self._func(answer, question)
        if isinstance(result, dict):
            return ValidationResult.from_dict(result)
        return result


class AnswerValidator:
    """
    Registry-backed answer validation.

    validate() never raises for an unknown type or a malformed submission:
    both come back as an incorrect ValidationResult and a logged diagnostic.
    """

    def __init__(self) -> None:
        self._validators: dict[str, Validator] = {t.value: v for t, v in VALIDATORS.items()}
        self._aliases: dict[str, str] = {
            **{t.value.lower(): t.value for t in ExerciseType},
            **{alias: t.value for alias, t in ALIASES.items()},
        }

    def resolve_type(self, exercise_type: str | ExerciseType | None) -> str | None:
        """Map a tag or alias onto its registered name."""
        if exercise_type is None:
            return None
        if isinstance(exercise_type, ExerciseType):
            return exercise_type.value
        if exercise_type in self._validators:
            return exercise_type
        return self._aliases.get(exercise_type.strip().lower())

    def has_validator(self, exercise_type: str | ExerciseType | None) -> bool:
        return self.resolve_type(exercise_type) is not None

    def available_types(self) -> list[str]:
        return list(self._validators)

    def aliases_for(self, exercise_type: str) -> list[str]:
        return sorted(
            alias for alias, name in self._aliases.items()
            if name == exercise_type and alias != exercise_type.lower()
        )

    def register_validator(
        self,
        exercise_type: str,
        validator: Validator | Callable[[Any, "Question"], Any],
        aliases: Iterable[str] = (),
    ) -> None:
        """Register (or replace) the validator for a type tag."""
        if not hasattr(validator, "check"):
            validator = _FunctionValidator(validator)
        self._validators[exercise_type] = validator
        self._aliases[exercise_type.lower()] = exercise_type
        for alias in aliases:
            self._aliases[alias.strip().lower()] = exercise_type
        logger.debug("Registered validator for exercise type '{}'", exercise_type)

    def validate(
        self,
        answer: Any,
        question: "Question",
        exercise_type: str | ExerciseType | None,
    ) -> ValidationResult:
        resolved = self.resolve_type(exercise_type)
        validator = self._validators.get(resolved) if resolved else None

        if validator is None:
            logger.warning("No validator found for exercise type: {}", exercise_type)
            return ValidationResult(
                is_correct=False,
                feedback=UNKNOWN_TYPE_FEEDBACK,
                correct_answer=None,
                exercise_type=str(exercise_type) if exercise_type is not None else None,
            )

        try:
            result = validator.check(answer, question)
        except (TypeError, ValueError, KeyError, IndexError, AttributeError) as e:
            logger.error("Validation error for {} answer {!r}: {}", resolved, answer, e)
            return ValidationResult(
                is_correct=False,
                feedback=VALIDATION_ERROR_FEEDBACK,
                correct_answer=None,
                exercise_type=resolved,
                error=str(e),
            )

        if result.exercise_type is None:
            result = replace(result, exercise_type=resolved)
        return result


# Import validators to trigger registration
from . import exact
from . import sets
from . import blanks
from . import mapping
from . import sequence

_unregistered = set(ExerciseType) - set(VALIDATORS)
if _unregistered:
    raise RuntimeError(f"Exercise types without a validator: {sorted(t.value for t in _unregistered)}")

__all__ = [
    "ALIASES",
    "AnswerValidator",
    "ExerciseType",
    "VALIDATORS",
    "ValidationResult",
    "get_validator",
    "register",
]
