"""
Flashcards & spaced repetition router.

Endpoints:
  POST   /flashcards/                 create a card (due immediately)
  GET    /flashcards/                 list active cards, soonest review first
  GET    /flashcards/study-session    cards due now, most overdue first
  GET    /flashcards/statistics       totals, due count, accuracy
  POST   /flashcards/{id}/review      submit again/hard/good/easy, run SM-2
  GET    /flashcards/{id}             single card
  PUT    /flashcards/{id}             edit content
  DELETE /flashcards/{id}             soft delete
"""
from __future__ import annotations

import aiosqlite
from fastapi import APIRouter, Depends, HTTPException, Query

from examprep.clock import utc_now
from examprep.db.sqlite import (
    create_flashcard,
    deactivate_flashcard,
    get_db,
    get_flashcard,
    list_flashcards,
    update_flashcard_content,
)
from examprep.models.flashcard import (
    Difficulty,
    Flashcard,
    FlashcardCreate,
    FlashcardList,
    FlashcardStats,
    FlashcardUpdate,
    ReviewRequest,
    ReviewResult,
    StudySession,
)
from examprep.services.study import (
    flashcard_statistics,
    review_flashcard,
    select_study_session,
)

router = APIRouter()


@router.post("/", response_model=Flashcard, status_code=201)
async def create_card(
    body: FlashcardCreate,
    db: aiosqlite.Connection = Depends(get_db),
) -> Flashcard:
    return await create_flashcard(db, body, utc_now())


@router.get("/", response_model=FlashcardList)
async def list_cards(
    subject: str | None = Query(default=None),
    difficulty: Difficulty | None = Query(default=None),
    topic: str | None = Query(default=None),
    due_for_review: bool = Query(default=False),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=200),
    db: aiosqlite.Connection = Depends(get_db),
) -> FlashcardList:
    items, total = await list_flashcards(
        db,
        subject=subject,
        difficulty=difficulty.value if difficulty else None,
        topic=topic,
        due_before=utc_now() if due_for_review else None,
        offset=offset,
        limit=limit,
    )
    return FlashcardList(items=items, total=total)


@router.get("/study-session", response_model=StudySession)
async def study_session(
    subject: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1, le=100),
    db: aiosqlite.Connection = Depends(get_db),
) -> StudySession:
    return await select_study_session(db, limit=limit, subject=subject)


@router.get("/statistics", response_model=FlashcardStats)
async def statistics(
    subject: str | None = Query(default=None),
    db: aiosqlite.Connection = Depends(get_db),
) -> FlashcardStats:
    return await flashcard_statistics(db, subject=subject)


@router.post("/{card_id}/review", response_model=ReviewResult)
async def review_card(
    card_id: str,
    body: ReviewRequest,
    db: aiosqlite.Connection = Depends(get_db),
) -> ReviewResult:
    """Submit a review response. Unknown responses are rejected with 422."""
    card = await review_flashcard(db, card_id, body.response)
    sr = card.spaced_repetition
    return ReviewResult(
        id=card.id,
        next_review=sr.next_review,
        interval=sr.interval,
        repetition=sr.repetition,
        ease_factor=sr.ease_factor,
        performance=card.performance,
    )


@router.get("/{card_id}", response_model=Flashcard)
async def get_card(
    card_id: str,
    db: aiosqlite.Connection = Depends(get_db),
) -> Flashcard:
    card = await get_flashcard(db, card_id)
    if not card or not card.is_active:
        raise HTTPException(status_code=404, detail="Flashcard not found")
    return card


@router.put("/{card_id}", response_model=Flashcard)
async def edit_card(
    card_id: str,
    body: FlashcardUpdate,
    db: aiosqlite.Connection = Depends(get_db),
) -> Flashcard:
    updated = await update_flashcard_content(db, card_id, body, utc_now())
    if not updated:
        raise HTTPException(status_code=404, detail="Flashcard not found")
    return updated


@router.delete("/{card_id}", status_code=204)
async def remove_card(
    card_id: str,
    db: aiosqlite.Connection = Depends(get_db),
) -> None:
    deleted = await deactivate_flashcard(db, card_id, utc_now())
    if not deleted:
        raise HTTPException(status_code=404, detail="Flashcard not found")
