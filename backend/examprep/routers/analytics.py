"""
Performance analytics router.

Endpoints:
  GET /analytics/performance/questions   average success rate, best / worst / most used
  GET /analytics/performance/quizzes     completed attempts per day and subject
"""
from __future__ import annotations

import aiosqlite
from fastapi import APIRouter, Depends, Query

from examprep.db.sqlite import get_db
from examprep.models.analytics import QuestionPerformanceReport, QuizPerformanceDay
from examprep.services.analytics import question_performance, quiz_performance

router = APIRouter()


@router.get("/performance/questions", response_model=QuestionPerformanceReport)
async def questions(
    subject: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    db: aiosqlite.Connection = Depends(get_db),
) -> QuestionPerformanceReport:
    return await question_performance(db, subject=subject, limit=limit)


@router.get("/performance/quizzes", response_model=list[QuizPerformanceDay])
async def quizzes(
    days: int = Query(default=30, ge=1, le=365),
    db: aiosqlite.Connection = Depends(get_db),
) -> list[QuizPerformanceDay]:
    return await quiz_performance(db, days=days)
