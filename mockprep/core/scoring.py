"""
Attempt scoring.

Score is the count of questions whose stored answer exactly matches the
answer key. Percentage is 100 * score / total rounded half up, and 0 for a
test without questions. Rounding uses integer arithmetic so results never
depend on float representation (2.5 -> 3, 62.5 -> 63).
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from mockprep.models.models import Question

logger = logging.getLogger(__name__)


@dataclass
class AttemptScore:
    """Result of scoring one attempt."""

    score: int
    total_questions: int
    percentage: int


def round_half_up_ratio(numerator: int, denominator: int) -> int:
    """
    Round numerator / denominator to the nearest integer, halves rounding up.

    Both arguments must be non-negative and denominator positive.
    """
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    return (2 * numerator + denominator) // (2 * denominator)


def calculate_percentage(score: int, total_questions: int) -> int:
    """
    Convert a correct-answer count to a 0-100 integer percentage.

    Args:
        score: Number of correctly answered questions
        total_questions: Number of questions in the test

    Returns:
        round(100 * score / total_questions), or 0 when the test is empty
    """
    if total_questions == 0:
        return 0
    return round_half_up_ratio(100 * score, total_questions)


def average_rounded(values: Sequence[int]) -> int:
    """Round-half-up mean of integer values, 0 for an empty sequence."""
    if not values:
        return 0
    return round_half_up_ratio(sum(values), len(values))


def score_answers(
    questions: Sequence["Question"], answers: Mapping[str, Optional[int]]
) -> AttemptScore:
    """
    Score stored answers against a test's answer key.

    Questions are walked in catalog order. Unanswered questions and answers
    stored under keys that no longer name a question never count.

    Args:
        questions: The test's questions, ordered by position
        answers: Mapping of question key to selected option index

    Returns:
        AttemptScore with score, total and percentage
    """
    score = 0
    for question in questions:
        selected = answers.get(question.key)
        if selected is not None and selected == question.correct_answer:
            score += 1

    total = len(questions)
    return AttemptScore(
        score=score,
        total_questions=total,
        percentage=calculate_percentage(score, total),
    )
