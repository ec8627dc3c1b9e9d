"""
Question bank router.

Endpoints:
  POST   /questions/                       add a gradable question
  GET    /questions/                       list, newest first
  POST   /questions/search                 match text, keywords and topics
  GET    /questions/by-subject/{subject}   newest questions plus subject stats
  GET    /questions/{id}                   single question
  PUT    /questions/{id}                   replace content
  DELETE /questions/{id}                   remove from the bank
"""
from __future__ import annotations

import aiosqlite
from fastapi import APIRouter, Depends, HTTPException, Query

from examprep.clock import utc_now
from examprep.db.sqlite import (
    create_question,
    delete_question,
    get_db,
    get_question,
    get_question_subject_stats,
    list_questions,
    save_question,
    search_questions,
)
from examprep.models.question import (
    Question,
    QuestionCreate,
    QuestionList,
    QuestionSearch,
    QuestionSearchResult,
    QuestionType,
    SubjectQuestions,
    SubjectQuestionStats,
)

router = APIRouter()


@router.post("/", response_model=Question, status_code=201)
async def add_question(
    body: QuestionCreate, db: aiosqlite.Connection = Depends(get_db)
):
    return await create_question(db, body, utc_now())


@router.get("/", response_model=QuestionList)
async def list_all(
    subject: str | None = Query(default=None),
    question_type: QuestionType | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    db: aiosqlite.Connection = Depends(get_db),
):
    items, total = await list_questions(
        db,
        subject=subject,
        question_type=question_type.value if question_type else None,
        offset=offset,
        limit=limit,
    )
    return QuestionList(items=items, total=total, offset=offset, limit=limit)


@router.post("/search", response_model=QuestionSearchResult)
async def search(body: QuestionSearch, db: aiosqlite.Connection = Depends(get_db)):
    questions = await search_questions(
        db,
        query=body.query,
        subject=body.subject,
        difficulty=body.difficulty.value if body.difficulty else None,
        question_type=body.question_type.value if body.question_type else None,
        limit=body.limit,
    )
    return QuestionSearchResult(questions=questions, count=len(questions))


@router.get("/by-subject/{subject}", response_model=SubjectQuestions)
async def by_subject(
    subject: str,
    limit: int = Query(default=50, ge=1, le=200),
    db: aiosqlite.Connection = Depends(get_db),
):
    """Newest questions for one subject plus counts and mean success rate."""
    questions, _ = await list_questions(db, subject=subject, limit=limit)
    stats = await get_question_subject_stats(db, subject)
    return SubjectQuestions(questions=questions, statistics=SubjectQuestionStats(**stats))


@router.get("/{question_id}", response_model=Question)
async def get_one(question_id: str, db: aiosqlite.Connection = Depends(get_db)):
    question = await get_question(db, question_id)
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")
    return question


@router.put("/{question_id}", response_model=Question)
async def edit(
    question_id: str,
    body: QuestionCreate,
    db: aiosqlite.Connection = Depends(get_db),
):
    """Replace a question's content. Attempts already started keep their key.

    generated_by records where the question came from and is not editable.
    """
    question = await get_question(db, question_id)
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")
    revised = question.model_copy(
        update={
            name: getattr(body, name)
            for name in QuestionCreate.model_fields
            if name != "generated_by"
        }
    )
    await save_question(db, revised, utc_now())
    return await get_question(db, question_id)


@router.delete("/{question_id}", status_code=204)
async def remove(question_id: str, db: aiosqlite.Connection = Depends(get_db)) -> None:
    if not await delete_question(db, question_id):
        raise HTTPException(status_code=404, detail="Question not found")
