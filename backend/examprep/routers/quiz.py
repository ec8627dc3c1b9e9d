"""
Quiz & attempt router.

Endpoints:
  POST   /quiz/create                        assemble a quiz from question ids
  GET    /quiz/                              list active quizzes, newest first
  GET    /quiz/{id}                          single quiz
  PUT    /quiz/{id}                          replace title, questions, settings
  DELETE /quiz/{id}                          soft delete
  POST   /quiz/{id}/start                    open an attempt; returns the quiz without answers
  POST   /quiz/attempts/{id}/answer          grade one answer (re-answering replaces)
  POST   /quiz/attempts/{id}/complete        score, freeze, update statistics
  POST   /quiz/attempts/{id}/abandon         freeze without scoring
  GET    /quiz/attempts/{id}/results         answers and score

Typed service errors (EmptyQuiz, AttemptNotActive, ...) are turned into
HTTP responses by the handler registered in create_app().
"""
from __future__ import annotations

import logging

import aiosqlite
from fastapi import APIRouter, Depends, HTTPException, Query

from examprep.clock import utc_now
from examprep.db.sqlite import deactivate_quiz, get_db, get_quiz, list_quizzes
from examprep.models.attempt import (
    AnswerRequest,
    AnswerResult,
    AttemptResults,
    AttemptStarted,
    AttemptStartRequest,
    CompletionResult,
)
from examprep.models.quiz import Quiz, QuizCreate, QuizDifficulty, QuizList
from examprep.services.quiz_engine import (
    abandon_attempt,
    assemble_quiz,
    complete_attempt,
    get_attempt_results,
    revise_quiz,
    start_attempt,
    submit_answer,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/create", response_model=Quiz, status_code=201)
async def create(
    body: QuizCreate,
    db: aiosqlite.Connection = Depends(get_db),
) -> Quiz:
    quiz = await assemble_quiz(db, body)
    logger.info("Created quiz %s with %d questions", quiz.id, len(quiz.questions))
    return quiz


@router.get("/", response_model=QuizList)
async def list_all(
    subject: str | None = Query(default=None),
    difficulty: QuizDifficulty | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=10, ge=1, le=100),
    db: aiosqlite.Connection = Depends(get_db),
) -> QuizList:
    items, total = await list_quizzes(
        db,
        subject=subject,
        difficulty=difficulty.value if difficulty else None,
        offset=offset,
        limit=limit,
    )
    return QuizList(items=items, total=total, offset=offset, limit=limit)


@router.post("/attempts/{attempt_id}/answer", response_model=AnswerResult)
async def answer(
    attempt_id: str,
    body: AnswerRequest,
    db: aiosqlite.Connection = Depends(get_db),
) -> AnswerResult:
    return await submit_answer(
        db, attempt_id, body.question_id, body.answer, body.time_spent
    )


@router.post("/attempts/{attempt_id}/complete", response_model=CompletionResult)
async def complete(
    attempt_id: str,
    db: aiosqlite.Connection = Depends(get_db),
) -> CompletionResult:
    return await complete_attempt(db, attempt_id)


@router.post("/attempts/{attempt_id}/abandon", response_model=AttemptResults)
async def abandon(
    attempt_id: str,
    db: aiosqlite.Connection = Depends(get_db),
) -> AttemptResults:
    return await abandon_attempt(db, attempt_id)


@router.get("/attempts/{attempt_id}/results", response_model=AttemptResults)
async def results(
    attempt_id: str,
    db: aiosqlite.Connection = Depends(get_db),
) -> AttemptResults:
    return await get_attempt_results(db, attempt_id)


@router.get("/{quiz_id}", response_model=Quiz)
async def get_one(
    quiz_id: str,
    db: aiosqlite.Connection = Depends(get_db),
) -> Quiz:
    quiz = await get_quiz(db, quiz_id)
    if not quiz or not quiz.is_active:
        raise HTTPException(status_code=404, detail="Quiz not found")
    return quiz


@router.put("/{quiz_id}", response_model=Quiz)
async def edit(
    quiz_id: str,
    body: QuizCreate,
    db: aiosqlite.Connection = Depends(get_db),
) -> Quiz:
    return await revise_quiz(db, quiz_id, body)


@router.post("/{quiz_id}/start", response_model=AttemptStarted)
async def start(
    quiz_id: str,
    body: AttemptStartRequest | None = None,
    db: aiosqlite.Connection = Depends(get_db),
) -> AttemptStarted:
    body = body or AttemptStartRequest()
    return await start_attempt(db, quiz_id, user_id=body.user_id, session_id=body.session_id)


@router.delete("/{quiz_id}", status_code=204)
async def remove(
    quiz_id: str,
    db: aiosqlite.Connection = Depends(get_db),
) -> None:
    deleted = await deactivate_quiz(db, quiz_id, utc_now())
    if not deleted:
        raise HTTPException(status_code=404, detail="Quiz not found")
