"""
Read-only performance views over the counters the quiz engine maintains.

Question success rates come from each question's correct_answers /
total_attempts; quiz trends come from completed attempts.
"""
from __future__ import annotations

from datetime import timedelta
from itertools import groupby

import aiosqlite

from examprep.clock import Clock, utc_now
from examprep.db.sqlite import get_question_performance, get_quiz_performance
from examprep.models.analytics import (
    QuestionPerformanceEntry,
    QuestionPerformanceReport,
    QuizPerformanceDay,
    SubjectDayPerformance,
)
from examprep.models.question import Question


def _entry(question: Question) -> QuestionPerformanceEntry:
    perf = question.performance
    return QuestionPerformanceEntry(
        id=question.id,
        question_text=question.question_text,
        difficulty=question.difficulty,
        question_type=question.question_type,
        success_rate=perf.correct_answers / perf.total_attempts,
        total_attempts=perf.total_attempts,
        usage_count=question.usage_count,
        topics=question.topics,
    )


async def question_performance(
    db: aiosqlite.Connection, subject: str | None = None, limit: int = 20
) -> QuestionPerformanceReport:
    report = await get_question_performance(db, subject, limit)
    return QuestionPerformanceReport(
        avg_success_rate=report["avg_success_rate"],
        top_performing=[_entry(q) for q in report["top_performing"]],
        low_performing=[_entry(q) for q in report["low_performing"]],
        most_used=[_entry(q) for q in report["most_used"]],
    )


async def quiz_performance(
    db: aiosqlite.Connection, days: int = 30, clock: Clock = utc_now
) -> list[QuizPerformanceDay]:
    """Per-day, per-subject attempt counts, scores and pass rates, oldest day first."""
    rows = await get_quiz_performance(db, clock() - timedelta(days=days))
    result = []
    for day, group in groupby(rows, key=lambda r: r["day"]):
        subjects = [
            SubjectDayPerformance(**{k: v for k, v in r.items() if k != "day"})
            for r in group
        ]
        result.append(
            QuizPerformanceDay(
                date=day,
                subjects=subjects,
                total_attempts=sum(s.attempt_count for s in subjects),
                overall_avg_score=sum(s.avg_score for s in subjects) / len(subjects),
            )
        )
    return result
