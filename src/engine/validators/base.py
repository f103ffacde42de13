"""
Base protocol and types for answer validators.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from ..scheduler import epoch_ms

if TYPE_CHECKING:
    from ..models import Question


@dataclass(frozen=True)
class ValidationResult:
    """Verdict for one submitted answer. Never mutated after creation."""
    is_correct: bool
    feedback: str
    correct_answer: Any
    partial_credit: float | None = None  # 0.0-1.0 when the type supports it
    details: Any = None
    exercise_type: str | None = None
    error: str | None = None
    timestamp: int = field(default_factory=epoch_ms)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ValidationResult":
        known = {k: data[k] for k in cls.__dataclass_fields__ if k in data}
        return cls(**known)


UNKNOWN_TYPE_FEEDBACK = "Unable to validate answer - unknown exercise type."
VALIDATION_ERROR_FEEDBACK = "An error occurred while validating your answer."


class Validator(Protocol):
    """Protocol for per-type comparison strategies."""

    def check(self, answer: Any, question: "Question") -> ValidationResult:
        """Compare the answer against the question's expected answer."""
        ...


def strict_equal(left: Any, right: Any) -> bool:
    """Equality that never treats a bool as the number 0 or 1."""
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return len(left) == len(right) and all(strict_equal(a, b) for a, b in zip(left, right))
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(strict_equal(v, right[k]) for k, v in left.items())
    return left == right


def identity_key(value: Any) -> tuple:
    """Hashable key that keeps True apart from 1 inside a set."""
    return (isinstance(value, bool), value)


def compare_text(user_answer: Any, correct_answer: Any) -> bool:
    """Case-insensitive, whitespace-trimmed compare for strings; strict equality otherwise."""
    if isinstance(user_answer, str) and isinstance(correct_answer, str):
        return user_answer.strip().lower() == correct_answer.strip().lower()
    return strict_equal(user_answer, correct_answer)


def as_list(value: Any) -> list:
    """Treat a scalar submission as a one-element list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=repr)
    return [value]


def to_json_native(value: Any) -> Any:
    """Turn sets and tuples inside a submission into plain lists."""
    if isinstance(value, (set, frozenset, tuple)):
        return [to_json_native(item) for item in as_list(value)]
    if isinstance(value, list):
        return [to_json_native(item) for item in value]
    if isinstance(value, dict):
        return {key: to_json_native(item) for key, item in value.items()}
    return value


def fraction(numerator: int, denominator: int) -> float:
    return numerator / denominator if denominator else 0.0
