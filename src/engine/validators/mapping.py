"""
Map-comparison validators (drag and drop placement, table cells).

Every expected key is checked against the submitted value for that key;
partial credit is the fraction of keys that match.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from . import ExerciseType, register
from .base import ValidationResult, compare_text, fraction, strict_equal

if TYPE_CHECKING:
    from ..models import Question


def _as_mapping(value: Any) -> dict[str, Any]:
    if not isinstance(value, dict):
        return {}
    return {str(key): item for key, item in value.items()}


@register(ExerciseType.DRAG_AND_DROP)
class DragAndDropValidator:
    """Validator for drag-and-drop placement. Zones must match exactly."""

    def check(self, answer: Any, question: "Question") -> ValidationResult:
        expected = dict(question.correct_positions)
        positions = _as_mapping(answer)

        details = {}
        correct_count = 0
        for item_id, zone in expected.items():
            actual = positions.get(item_id)
            ok = strict_equal(actual, zone)
            correct_count += ok
            details[item_id] = {"correct": ok, "expected": zone, "actual": actual}

        total = len(expected)
        is_correct = total > 0 and correct_count == total
        return ValidationResult(
            is_correct=is_correct,
            feedback=(
                question.correct_feedback or "Perfect placement!"
                if is_correct
                else f"{correct_count}/{total} items placed correctly."
            ),
            correct_answer=expected,
            partial_credit=fraction(correct_count, total),
            details=details,
        )


@register(ExerciseType.TABLE_EXERCISE)
class TableExerciseValidator:
    """Validator for table completion. Cells use the lenient text compare."""

    def check(self, answer: Any, question: "Question") -> ValidationResult:
        expected = {row: dict(cols) for row, cols in question.correct_table.items()}
        table = _as_mapping(answer)

        details: dict[str, dict[str, dict]] = {}
        correct_cells = 0
        total_cells = 0
        for row, columns in expected.items():
            user_row = _as_mapping(table.get(row))
            details[row] = {}
            for col, expected_value in columns.items():
                total_cells += 1
                actual = user_row.get(col)
                ok = compare_text(actual, expected_value)
                correct_cells += ok
                details[row][col] = {"correct": ok, "expected": expected_value, "actual": actual}

        is_correct = total_cells > 0 and correct_cells == total_cells
        return ValidationResult(
            is_correct=is_correct,
            feedback=(
                question.correct_feedback or "Table completed perfectly!"
                if is_correct
                else f"{correct_cells}/{total_cells} cells correct."
            ),
            correct_answer=expected,
            partial_credit=fraction(correct_cells, total_cells),
            details=details,
        )
