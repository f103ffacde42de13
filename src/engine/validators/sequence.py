"""
Ordered sequence validator.

Partial credit counts indices holding the expected element, not the
longest common subsequence: moving one item to the front can drop
every position.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from . import ExerciseType, register
from .base import ValidationResult, fraction, strict_equal

if TYPE_CHECKING:
    from ..models import Question


@register(ExerciseType.SEQUENCING)
class SequencingValidator:
    """Validator for put-in-order questions."""

    def check(self, answer: Any, question: "Question") -> ValidationResult:
        expected = list(question.correct_sequence)
        submitted = list(answer) if isinstance(answer, (list, tuple)) else []

        in_place = sum(1 for given, correct in zip(submitted, expected) if strict_equal(given, correct))
        is_correct = bool(expected) and strict_equal(submitted, expected)
        return ValidationResult(
            is_correct=is_correct,
            feedback=(
                question.correct_feedback or "Perfect sequence!"
                if is_correct
                else f"{in_place}/{len(expected)} items in correct position."
            ),
            correct_answer=expected,
            partial_credit=fraction(in_place, len(expected)),
        )
