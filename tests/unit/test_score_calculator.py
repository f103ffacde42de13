"""
Unit tests for ScoreCalculator.

Per-answer pricing, session aggregation, grading and the score ceiling.
"""

import pytest

from src.engine.models import AnswerRecord, ScoringConfig
from src.engine.scoring import ScoreCalculator, round_half_up
from src.engine.validators.base import ValidationResult

CORRECT = ValidationResult(is_correct=True, feedback="Correct!", correct_answer=1)
WRONG = ValidationResult(is_correct=False, feedback="Incorrect.", correct_answer=1)


def partial(credit: float) -> ValidationResult:
    return ValidationResult(is_correct=False, feedback="Partly", correct_answer=None, partial_credit=credit)


def record(index: int, correct: bool, time_ms: float = 20000, difficulty: str = "easy") -> AnswerRecord:
    return AnswerRecord(
        question_index=index,
        answer=None,
        validation=CORRECT if correct else WRONG,
        time_to_answer=time_ms,
        difficulty=difficulty,
    )


@pytest.fixture
def calculator():
    return ScoreCalculator()


class TestRounding:

    def test_half_rounds_up(self):
        assert round_half_up(62.5) == 63
        assert round_half_up(12.5) == 13
        assert round_half_up(156.25) == 156
        assert round_half_up(0.0) == 0


class TestCalculateScore:
    """Test per-answer pricing."""

    def test_correct_with_time_bonus(self, calculator):
        """125 base at medium, plus half of the max bonus at half the threshold."""
        result = calculator.calculate_score(CORRECT, time_to_answer=5000, difficulty="medium")

        assert result.points == 156
        assert result.breakdown["base"] == 100
        assert result.breakdown["difficulty_multiplier"] == 1.25
        assert result.breakdown["time_bonus"] == pytest.approx(31.25)
        assert result.metadata["is_correct"] is True

    def test_incorrect_scores_zero(self, calculator):
        result = calculator.calculate_score(WRONG, time_to_answer=1000)

        assert result.points == 0
        assert "time_bonus" not in result.breakdown

    def test_partial_credit(self, calculator):
        assert calculator.calculate_score(partial(0.5), time_to_answer=0).points == 63

    def test_partial_credit_minimum(self, calculator):
        """Credit below the minimum is raised to it."""
        assert calculator.calculate_score(partial(0.05)).points == 13

    def test_zero_partial_credit_scores_nothing(self, calculator):
        assert calculator.calculate_score(partial(0.0)).points == 0

    def test_partial_credit_disabled(self):
        calculator = ScoreCalculator({"partialCredit": {"enabled": False}})
        assert calculator.calculate_score(partial(0.5)).points == 0

    def test_unknown_difficulty_uses_one(self, calculator):
        result = calculator.calculate_score(CORRECT, time_to_answer=10000, difficulty="extreme")

        assert result.points == 100
        assert result.breakdown["difficulty_multiplier"] == 1.0

    def test_no_time_bonus_at_threshold(self, calculator):
        assert calculator.calculate_time_bonus(10000, 100) == 0.0
        assert calculator.calculate_time_bonus(-1, 100) == 0.0
        assert calculator.calculate_time_bonus(0, 100) == 50.0

    def test_hint_penalty(self, calculator):
        result = calculator.calculate_score(CORRECT, time_to_answer=20000, difficulty="easy", hints_used=2)

        assert result.points == 80
        assert result.breakdown["hint_penalty"] == pytest.approx(-20)

    def test_hint_penalty_applies_after_time_bonus(self, calculator):
        result = calculator.calculate_score(CORRECT, time_to_answer=0, difficulty="medium", hints_used=1)
        assert result.points == 169

    def test_score_floored_at_zero(self, calculator):
        result = calculator.calculate_score(CORRECT, time_to_answer=20000, difficulty="easy", hints_used=15)
        assert result.points == 0

    def test_streak_bonus(self, calculator):
        result = calculator.calculate_score(CORRECT, time_to_answer=20000, difficulty="hard", streak_length=5)

        assert result.points == 180
        assert result.breakdown["streak_bonus"] == pytest.approx(30)

    def test_streak_bonus_capped(self, calculator):
        result = calculator.calculate_score(CORRECT, time_to_answer=20000, difficulty="easy", streak_length=20)
        assert result.points == 150

    def test_streak_of_one_has_no_bonus(self, calculator):
        assert calculator.calculate_streak_bonus(1, 100) == 0.0

    def test_streak_ignored_for_wrong_answer(self, calculator):
        assert calculator.calculate_score(WRONG, streak_length=5).points == 0

    def test_update_config(self, calculator):
        calculator.update_config(base_score=10)

        assert calculator.config.base_score == 10
        assert calculator.calculate_score(CORRECT, time_to_answer=20000, difficulty="easy").points == 10

    def test_config_accepts_camel_case(self):
        config = ScoringConfig.model_validate({"baseScore": 50, "timeBonus": {"enabled": False}})
        calculator = ScoreCalculator(config)

        assert calculator.calculate_score(CORRECT, time_to_answer=0, difficulty="easy").points == 50


class TestStreaks:

    def test_streak_replays_in_question_order(self):
        answers = {2: record(2, True), 0: record(0, True), 1: record(1, False)}

        assert ScoreCalculator.streak_length_at(answers, 0) == 1
        assert ScoreCalculator.streak_length_at(answers, 1) == 0
        assert ScoreCalculator.streak_length_at(answers, 2) == 1

    def test_streak_accepts_pairs(self):
        pairs = [(0, record(0, True)), (1, record(1, True))]
        assert ScoreCalculator.streak_length_at(pairs, 1) == 2


class TestFinalScore:
    """Test session aggregation."""

    def test_mixed_session(self, calculator):
        answers = {
            0: record(0, True),
            1: record(1, False),
            2: record(2, True),
            3: record(3, True),
        }
        final = calculator.calculate_final_score(answers, total_time=80000, questions_count=4)

        assert final.base_total == 305
        assert final.completion_bonus == 31
        assert final.total == 336
        assert final.correct_answers == 3
        assert final.accuracy == 75
        assert final.grade == "C"
        assert final.longest_streak == 2
        assert final.average_time_per_question == 20000
        assert [d.question_index for d in final.detailed_scores] == [0, 1, 2, 3]

    def test_no_completion_bonus_when_unanswered(self, calculator):
        answers = {0: record(0, True), 1: record(1, True)}
        final = calculator.calculate_final_score(answers, total_time=40000, questions_count=3)

        assert final.completion_bonus == 0
        assert final.total == final.base_total == 205
        assert final.accuracy == 67
        assert final.grade == "D"

    def test_empty_session(self, calculator):
        final = calculator.calculate_final_score({}, total_time=0, questions_count=0)

        assert final.total == 0
        assert final.accuracy == 0
        assert final.grade == "F"
        assert final.completion_bonus == 0

    def test_to_dict(self, calculator):
        final = calculator.calculate_final_score({0: record(0, True)}, total_time=1000, questions_count=1)
        data = final.to_dict()

        assert data["total"] == final.total
        assert data["detailed_scores"][0]["question_index"] == 0


class TestGrading:

    @pytest.mark.parametrize(
        "accuracy,grade",
        [(1.0, "A+"), (0.97, "A+"), (0.95, "A"), (0.85, "B"), (0.6, "D"), (0.59, "F")],
    )
    def test_grade_table(self, accuracy, grade):
        assert ScoreCalculator.calculate_grade(accuracy) == grade

    def test_efficiency_is_clamped(self):
        assert ScoreCalculator.calculate_efficiency(1.0, 0) == pytest.approx(1.0)
        assert ScoreCalculator.calculate_efficiency(1.0, 60000) == pytest.approx(0.7)
        assert ScoreCalculator.calculate_efficiency(0.0, 20000) == pytest.approx(0.15)

    def test_performance_levels(self):
        assert ScoreCalculator.get_performance_level(1.0, 1.0) == "Excellent"
        assert ScoreCalculator.get_performance_level(0.8, 0.8) == "Very Good"
        assert ScoreCalculator.get_performance_level(0.5, 0.5) == "Needs Improvement"


class TestMaximumScore:

    def test_default_ceiling(self, calculator):
        assert calculator.get_maximum_possible_score(3) == 1116
        assert calculator.get_maximum_possible_score(0) == 0

    def test_ceiling_without_bonuses(self):
        calculator = ScoreCalculator(
            {"timeBonus": {"enabled": False}, "streakBonus": {"enabled": False}, "completionBonusRate": 0}
        )
        assert calculator.get_maximum_possible_score(2) == 300

    def test_percentage(self, calculator):
        assert calculator.get_score_percentage(558, 3) == 50
        assert calculator.get_score_percentage(10, 0) == 0

    def test_ceiling_bounds_best_session(self, calculator):
        """A perfect, instant, hard session never exceeds the ceiling."""
        answers = {i: record(i, True, time_ms=0, difficulty="hard") for i in range(12)}
        final = calculator.calculate_final_score(answers, total_time=0, questions_count=12)

        assert final.total <= calculator.get_maximum_possible_score(12)


class TestMonotonicity:
    """Harder questions never score less; more hints never score more."""

    @pytest.mark.parametrize("time_ms", [0, 4000, 15000])
    def test_difficulty_order(self, calculator, time_ms):
        points = [
            calculator.calculate_score(CORRECT, time_to_answer=time_ms, difficulty=d).points
            for d in ("easy", "medium", "hard")
        ]
        assert points == sorted(points)

    @pytest.mark.parametrize("validation", [CORRECT, partial(0.6)])
    def test_hints_never_help(self, calculator, validation):
        points = [
            calculator.calculate_score(validation, time_to_answer=3000, hints_used=h).points
            for h in range(12)
        ]
        assert points == sorted(points, reverse=True)
        assert points[-1] == 0

    def test_streak_bonus_bounded(self, calculator):
        cap = calculator.config.streak_bonus.max_streak
        bonuses = [calculator.calculate_streak_bonus(s, 100) for s in range(1, cap + 10)]

        assert bonuses == sorted(bonuses)
        assert max(bonuses) == pytest.approx(100 * cap * calculator.config.streak_bonus.bonus_per_streak / 100)
