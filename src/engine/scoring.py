"""
Adaptive scoring for exercise sessions.

Per answer:
    base (or partial-credit base)
    x difficulty multiplier
    + time bonus      (correct only, linear decay to 0 at the threshold)
    - hint penalty    (percentage of the running score per hint)
    + streak bonus    (correct only, capped)
    floored at 0, rounded half up

Per session: answers are replayed in question order to rebuild streaks,
then accuracy, efficiency, grade and performance tier are derived.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from loguru import logger

from .models import AnswerRecord, ScoringConfig
from .validators.base import ValidationResult

# Accuracy lower bounds, highest first
GRADE_TABLE: list[tuple[float, str]] = [
    (0.97, "A+"),
    (0.93, "A"),
    (0.90, "A-"),
    (0.87, "B+"),
    (0.83, "B"),
    (0.80, "B-"),
    (0.77, "C+"),
    (0.73, "C"),
    (0.70, "C-"),
    (0.67, "D+"),
    (0.60, "D"),
]

PERFORMANCE_LEVELS: list[tuple[float, str]] = [
    (0.9, "Excellent"),
    (0.8, "Very Good"),
    (0.7, "Good"),
    (0.6, "Satisfactory"),
]

# Efficiency time normalization: 30s is average, 10s is very fast
AVERAGE_ANSWER_MS = 30000
FAST_ANSWER_SPAN_MS = 20000


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass
class ScoreBreakdown:
    """Points for one answer plus how they were derived."""

    points: int
    breakdown: dict[str, float] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"points": self.points, "breakdown": dict(self.breakdown), "metadata": dict(self.metadata)}


@dataclass
class DetailedScore:
    question_index: int
    score: ScoreBreakdown
    answer: AnswerRecord

    def to_dict(self) -> dict:
        return {
            "question_index": self.question_index,
            "score": self.score.to_dict(),
            "answer": self.answer.to_dict(),
        }


@dataclass
class FinalScore:
    """Aggregated session result. accuracy and efficiency are integer percentages."""

    total: int
    base_total: int
    completion_bonus: int
    correct_answers: int
    total_questions: int
    accuracy: int
    longest_streak: int
    average_time_per_question: int
    efficiency: int
    grade: str
    performance: str
    detailed_scores: list[DetailedScore] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "base_total": self.base_total,
            "completion_bonus": self.completion_bonus,
            "correct_answers": self.correct_answers,
            "total_questions": self.total_questions,
            "accuracy": self.accuracy,
            "longest_streak": self.longest_streak,
            "average_time_per_question": self.average_time_per_question,
            "efficiency": self.efficiency,
            "grade": self.grade,
            "performance": self.performance,
            "detailed_scores": [d.to_dict() for d in self.detailed_scores],
        }


def _ordered(answers: Mapping[int, AnswerRecord] | Iterable[tuple[int, AnswerRecord]]) -> list[tuple[int, AnswerRecord]]:
    items = answers.items() if isinstance(answers, Mapping) else answers
    return sorted(items, key=lambda pair: pair[0])


class ScoreCalculator:
    """Prices answers and aggregates session results."""

    def __init__(self, config: ScoringConfig | dict | None = None):
        if isinstance(config, dict):
            config = ScoringConfig.model_validate(config)
        self._config = config or ScoringConfig()

    @property
    def config(self) -> ScoringConfig:
        return self._config

    def update_config(self, **changes: Any) -> ScoringConfig:
        """Replace scoring fields; nested sections are replaced wholesale."""
        merged = {**self._config.model_dump(), **changes}
        self._config = ScoringConfig.model_validate(merged)
        return self._config

    # =========================================================================
    # Per answer
    # =========================================================================

    def calculate_score(
        self,
        validation: ValidationResult,
        *,
        time_to_answer: float = 0,
        difficulty: str = "medium",
        hints_used: int = 0,
        streak_length: int = 0,
    ) -> ScoreBreakdown:
        cfg = self._config
        breakdown: dict[str, float] = {}
        score = 0.0

        if validation.is_correct:
            score = float(cfg.base_score)
            breakdown["base"] = score
        elif cfg.partial_credit.enabled and validation.partial_credit:
            score = cfg.base_score * max(validation.partial_credit, cfg.partial_credit.minimum_score)
            breakdown["base"] = score
            breakdown["partial_credit"] = validation.partial_credit
        else:
            breakdown["base"] = 0.0

        multiplier = cfg.difficulty_multiplier.get(difficulty)
        if multiplier is None:
            logger.debug("Unknown difficulty '{}', scoring at 1.0x", difficulty)
            multiplier = 1.0
        breakdown["difficulty_multiplier"] = multiplier
        breakdown["difficulty_bonus"] = (multiplier - 1) * score
        score *= multiplier

        if validation.is_correct and cfg.time_bonus.enabled:
            time_bonus = self.calculate_time_bonus(time_to_answer, score)
            if time_bonus:
                score += time_bonus
                breakdown["time_bonus"] = time_bonus

        if cfg.hint_penalty.enabled and hints_used > 0:
            penalty = score * (hints_used * cfg.hint_penalty.penalty_per_hint / 100)
            score -= penalty
            breakdown["hint_penalty"] = -penalty

        if validation.is_correct and cfg.streak_bonus.enabled and streak_length > 1:
            streak_bonus = self.calculate_streak_bonus(streak_length, score)
            score += streak_bonus
            breakdown["streak_bonus"] = streak_bonus

        score = max(0.0, score)

        return ScoreBreakdown(
            points=round_half_up(score),
            breakdown=breakdown,
            metadata={
                "time_to_answer": time_to_answer,
                "difficulty": difficulty,
                "hints_used": hints_used,
                "streak_length": streak_length,
                "is_correct": validation.is_correct,
                "partial_credit": validation.partial_credit,
            },
        )

    def calculate_time_bonus(self, time_to_answer: float, score: float) -> float:
        threshold = self._config.time_bonus.fast_answer_threshold
        if time_to_answer < 0 or time_to_answer >= threshold:
            return 0.0
        time_ratio = 1 - (time_to_answer / threshold)
        return score * time_ratio * (self._config.time_bonus.max_bonus / 100)

    def calculate_streak_bonus(self, streak_length: int, score: float) -> float:
        if streak_length <= 1:
            return 0.0
        effective = min(streak_length - 1, self._config.streak_bonus.max_streak)
        return score * effective * (self._config.streak_bonus.bonus_per_streak / 100)

    # =========================================================================
    # Per session
    # =========================================================================

    @staticmethod
    def streak_length_at(
        answers: Mapping[int, AnswerRecord] | Iterable[tuple[int, AnswerRecord]],
        question_index: int,
    ) -> int:
        """Consecutive correct answers ending at question_index, in question order."""
        streak = 0
        for index, record in _ordered(answers):
            if index > question_index:
                break
            streak = streak + 1 if record.validation.is_correct else 0
        return streak

    def calculate_final_score(
        self,
        answers: Mapping[int, AnswerRecord] | Iterable[tuple[int, AnswerRecord]],
        total_time: float,
        questions_count: int,
    ) -> FinalScore:
        ordered = _ordered(answers)

        total_score = 0
        correct_answers = 0
        current_streak = 0
        longest_streak = 0
        detailed: list[DetailedScore] = []

        for question_index, record in ordered:
            if record.validation.is_correct:
                current_streak += 1
                correct_answers += 1
                longest_streak = max(longest_streak, current_streak)
            else:
                current_streak = 0

            score = self.calculate_score(
                record.validation,
                time_to_answer=record.time_to_answer,
                difficulty=record.difficulty,
                hints_used=record.hints_used,
                streak_length=current_streak,
            )
            total_score += score.points
            detailed.append(DetailedScore(question_index, score, record))

        accuracy = correct_answers / questions_count if questions_count > 0 else 0.0
        average_time = total_time / questions_count if questions_count > 0 else 0.0
        efficiency = self.calculate_efficiency(accuracy, average_time)

        all_answered = questions_count > 0 and len(ordered) == questions_count
        completion_bonus = round_half_up(total_score * self._config.completion_bonus_rate) if all_answered else 0

        return FinalScore(
            total=total_score + completion_bonus,
            base_total=total_score,
            completion_bonus=completion_bonus,
            correct_answers=correct_answers,
            total_questions=questions_count,
            accuracy=round_half_up(accuracy * 100),
            longest_streak=longest_streak,
            average_time_per_question=round_half_up(average_time),
            efficiency=round_half_up(efficiency * 100),
            grade=self.calculate_grade(accuracy),
            performance=self.get_performance_level(accuracy, efficiency),
            detailed_scores=detailed,
        )

    @staticmethod
    def calculate_efficiency(accuracy: float, average_time: float) -> float:
        time_score = max(0.0, min(1.0, (AVERAGE_ANSWER_MS - average_time) / FAST_ANSWER_SPAN_MS))
        return accuracy * 0.7 + time_score * 0.3

    @staticmethod
    def calculate_grade(accuracy: float) -> str:
        for threshold, grade in GRADE_TABLE:
            if accuracy >= threshold:
                return grade
        return "F"

    @staticmethod
    def get_performance_level(accuracy: float, efficiency: float) -> str:
        combined = (accuracy + efficiency) / 2
        for threshold, label in PERFORMANCE_LEVELS:
            if combined >= threshold:
                return label
        return "Needs Improvement"

    # =========================================================================
    # Normalization
    # =========================================================================

    def get_maximum_possible_score(self, questions_count: int) -> int:
        """
        Theoretical ceiling for questions_count answers.

        Bonuses compound in calculate_score, so the ceiling multiplies them
        too, and rounds up at each step where the real path rounds.
        """
        if questions_count <= 0:
            return 0
        cfg = self._config
        per_question = cfg.base_score * max([1.0, *cfg.difficulty_multiplier.values()])
        if cfg.time_bonus.enabled:
            per_question *= 1 + cfg.time_bonus.max_bonus / 100
        if cfg.streak_bonus.enabled:
            per_question *= 1 + cfg.streak_bonus.max_streak * cfg.streak_bonus.bonus_per_streak / 100

        total = math.ceil(per_question) * questions_count
        return total + math.ceil(total * cfg.completion_bonus_rate)

    def get_score_percentage(self, current_score: float, questions_count: int) -> int:
        maximum = self.get_maximum_possible_score(questions_count)
        return round_half_up(current_score / maximum * 100) if maximum > 0 else 0
