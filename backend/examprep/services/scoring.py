"""Grading and score arithmetic shared by the scheduler and the quiz engine."""
from __future__ import annotations

import math
from collections.abc import Sequence

from examprep.models.attempt import AnswerKeyEntry, AttemptAnswer, AttemptScore
from examprep.models.question import QuestionType


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (2.5 -> 3, not 2)."""
    return math.floor(value + 0.5)


def grade_answer(key: AnswerKeyEntry, submitted: str) -> bool:
    """Check a submitted answer against one question's key.

    Multiple-choice compares the option text exactly, case included. Every
    other type compares case-insensitively, without trimming whitespace.
    """
    if key.question_type is QuestionType.MULTIPLE_CHOICE:
        return key.correct_option is not None and submitted == key.correct_option
    return key.correct_answer is not None and submitted.lower() == key.correct_answer.lower()


def score_answers(answers: Sequence[AttemptAnswer]) -> AttemptScore:
    # every slot is worth one point; unanswered slots hold 0
    earned = sum(a.points_earned for a in answers)
    total = len(answers)
    return AttemptScore(
        total_points=total,
        earned_points=earned,
        percentage=round_half_up(100 * earned / total),
    )


def is_passing(percentage: int, passing_score: float) -> bool:
    return percentage >= passing_score
