"""
Set-comparison validators (multi-select, highlight).

Correct iff the submitted set equals the correct set exactly.
Partial credit = |submitted ∩ correct| / |correct|.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from . import ExerciseType, register
from .base import ValidationResult, as_list, fraction, identity_key

if TYPE_CHECKING:
    from ..models import Question


def _compare_sets(answer: Any, expected: list) -> tuple[bool, int, float]:
    submitted = {identity_key(item) for item in as_list(answer)}
    correct = {identity_key(item) for item in expected}
    hits = len(submitted & correct)
    return submitted == correct, hits, fraction(hits, len(correct))


@register(ExerciseType.MULTIPLE_ANSWERS)
class MultipleAnswersValidator:
    """Validator for checkbox-style questions with several correct answers."""

    def check(self, answer: Any, question: "Question") -> ValidationResult:
        expected = list(question.correct_answers)
        is_correct, _, partial = _compare_sets(answer, expected)
        return ValidationResult(
            is_correct=is_correct,
            feedback=(
                question.correct_feedback or "Correct!"
                if is_correct
                else question.incorrect_feedback or "Incorrect selection."
            ),
            correct_answer=expected,
            partial_credit=partial,
        )


@register(ExerciseType.HIGHLIGHT)
class HighlightValidator:
    """Validator for highlight-the-words questions."""

    def check(self, answer: Any, question: "Question") -> ValidationResult:
        expected = list(question.correct_selections)
        is_correct, hits, partial = _compare_sets(answer, expected)
        return ValidationResult(
            is_correct=is_correct,
            feedback=(
                question.correct_feedback or "Perfect highlighting!"
                if is_correct
                else f"{hits}/{len(set(expected))} correct selections."
            ),
            correct_answer=expected,
            partial_credit=partial,
        )
