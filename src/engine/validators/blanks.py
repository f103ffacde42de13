"""
Positional fill validators (fill in the blanks, gap fill).

Each position is compared case-insensitively after trimming whitespace.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from . import ExerciseType, register
from .base import ValidationResult, as_list, compare_text, fraction

if TYPE_CHECKING:
    from ..models import Question


def check_blanks(answer: Any, question: "Question", success: str) -> ValidationResult:
    expected = list(question.correct_answers)
    submitted = as_list(answer)

    details = []
    correct_count = 0
    for index, correct in enumerate(expected):
        given = submitted[index] if index < len(submitted) else None
        ok = compare_text(given, correct)
        correct_count += ok
        details.append({"correct": ok, "user_answer": given, "correct_answer": correct})

    total = len(expected)
    is_correct = total > 0 and correct_count == total
    return ValidationResult(
        is_correct=is_correct,
        feedback=(
            question.correct_feedback or success
            if is_correct
            else f"{correct_count}/{total} blanks correct."
        ),
        correct_answer=expected,
        partial_credit=fraction(correct_count, total),
        details=details,
    )


@register(ExerciseType.FILL_IN_THE_BLANKS)
class FillInTheBlanksValidator:
    """Validator for fill-in-the-blanks questions."""

    def check(self, answer: Any, question: "Question") -> ValidationResult:
        return check_blanks(answer, question, "All blanks filled correctly!")


@register(ExerciseType.GAP_FILL)
class GapFillValidator:
    """Validator for gap fill questions (same rules as fill in the blanks)."""

    def check(self, answer: Any, question: "Question") -> ValidationResult:
        return check_blanks(answer, question, "All gaps filled correctly!")
