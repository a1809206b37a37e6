"""
Tests for attempt scoring.
"""
import pytest

from mockprep.core.scoring import (
    average_rounded,
    calculate_percentage,
    round_half_up_ratio,
    score_answers,
)
from mockprep.models import Question


def _questions(answer_key):
    """Unsaved questions with ids 101, 102, ... and the given answer key."""
    return [
        Question(
            id=101 + position,
            position=position,
            text=f"Question {position + 1}",
            options=["A", "B", "C", "D"],
            correct_answer=correct,
        )
        for position, correct in enumerate(answer_key)
    ]


class TestRoundHalfUpRatio:
    """Tests for integer round-half-up division."""

    def test_exact_division(self):
        assert round_half_up_ratio(300, 5) == 60

    def test_half_rounds_up(self):
        """Test that .5 always rounds away from zero."""
        assert round_half_up_ratio(5, 2) == 3
        assert round_half_up_ratio(125, 2) == 63

    def test_below_half_rounds_down(self):
        assert round_half_up_ratio(100, 3) == 33

    def test_above_half_rounds_up(self):
        assert round_half_up_ratio(200, 3) == 67

    def test_zero_denominator_rejected(self):
        with pytest.raises(ValueError):
            round_half_up_ratio(1, 0)


class TestCalculatePercentage:
    """Tests for calculate_percentage."""

    def test_empty_test_is_zero(self):
        """Test that a test without questions scores 0%."""
        assert calculate_percentage(0, 0) == 0

    def test_perfect_score(self):
        assert calculate_percentage(7, 7) == 100

    def test_five_of_eight_rounds_half_up(self):
        """62.5% rounds to 63."""
        assert calculate_percentage(5, 8) == 63

    def test_one_of_three(self):
        assert calculate_percentage(1, 3) == 33


class TestAverageRounded:
    def test_empty_is_zero(self):
        assert average_rounded([]) == 0

    def test_half_rounds_up(self):
        assert average_rounded([80, 85]) == 83

    def test_single_value(self):
        assert average_rounded([90]) == 90


class TestScoreAnswers:
    """Tests for score_answers."""

    def test_documented_example(self):
        """Five questions, key [0,1,1,1,2], answers to q0,q1,q2,q4 -> 3 and 60%."""
        questions = _questions([0, 1, 1, 1, 2])
        answers = {
            questions[0].key: 0,
            questions[1].key: 1,
            questions[2].key: 0,
            questions[4].key: 2,
        }

        result = score_answers(questions, answers)

        assert result.score == 3
        assert result.total_questions == 5
        assert result.percentage == 60

    def test_no_answers(self):
        result = score_answers(_questions([0, 1]), {})

        assert result.score == 0
        assert result.percentage == 0

    def test_no_questions(self):
        result = score_answers([], {"101": 0})

        assert result.score == 0
        assert result.total_questions == 0
        assert result.percentage == 0

    def test_keys_are_question_ids_not_positions(self):
        """Test that an answer stored under a position index never matches."""
        questions = _questions([0, 0])

        result = score_answers(questions, {"0": 0, "1": 0})

        assert result.score == 0

    def test_unknown_keys_ignored(self):
        questions = _questions([2])

        result = score_answers(questions, {questions[0].key: 2, "999": 1})

        assert result.score == 1
        assert result.percentage == 100

    def test_null_answer_counts_as_unanswered(self):
        questions = _questions([0])

        result = score_answers(questions, {questions[0].key: None})

        assert result.score == 0
