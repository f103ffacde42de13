"""
Exact-match validators.

A single correct option, compared case-sensitively against correct_answer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from . import ExerciseType, register
from .base import ValidationResult, strict_equal

if TYPE_CHECKING:
    from ..models import Question


def _option_text(question: "Question", correct: Any) -> Any:
    """Resolve an option index to its display text when possible."""
    options = question.options or []
    if isinstance(correct, int) and not isinstance(correct, bool) and 0 <= correct < len(options):
        return options[correct]
    return correct


@register(ExerciseType.MULTIPLE_CHOICE)
class MultipleChoiceValidator:
    """Validator for single-select multiple choice questions."""

    def check(self, answer: Any, question: "Question") -> ValidationResult:
        is_correct = strict_equal(answer, question.correct_answer)
        if is_correct:
            feedback = question.correct_feedback or "Correct!"
        else:
            feedback = question.incorrect_feedback or (
                f"Incorrect. The correct answer is: {_option_text(question, question.correct_answer)}"
            )
        return ValidationResult(
            is_correct=is_correct,
            feedback=feedback,
            correct_answer=question.correct_answer,
        )


@register(ExerciseType.SINGLE_ANSWER)
class SingleAnswerValidator:
    """Validator for single answer questions."""

    def check(self, answer: Any, question: "Question") -> ValidationResult:
        is_correct = strict_equal(answer, question.correct_answer)
        return ValidationResult(
            is_correct=is_correct,
            feedback=(
                question.correct_feedback or "Correct!"
                if is_correct
                else question.incorrect_feedback or "Incorrect answer."
            ),
            correct_answer=question.correct_answer,
        )


@register(ExerciseType.CLICK_TO_CHANGE)
class ClickToChangeValidator:
    """Validator for click-to-change (pick the word to change) questions."""

    def check(self, answer: Any, question: "Question") -> ValidationResult:
        is_correct = strict_equal(answer, question.correct_answer)
        return ValidationResult(
            is_correct=is_correct,
            feedback=(
                question.correct_feedback or "Correct!"
                if is_correct
                else question.incorrect_feedback or "Incorrect selection."
            ),
            correct_answer=question.correct_answer,
        )
