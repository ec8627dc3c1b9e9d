"""
Flashcard study sessions: picking due cards, recording reviews, stats.

Reviews are read-modify-write on a single card. save_flashcard only
succeeds against the version that was read, so a concurrent review of the
same card makes this one re-read and re-apply instead of overwriting it.
"""
from __future__ import annotations

import logging

import aiosqlite

from examprep.clock import Clock, utc_now
from examprep.config import settings
from examprep.db.sqlite import (
    get_flashcard,
    get_flashcard_stats,
    list_due_flashcards,
    save_flashcard,
)
from examprep.errors import ConcurrentUpdate, RecordNotFound
from examprep.models.flashcard import (
    Flashcard,
    FlashcardStats,
    ReviewResponse,
    StudySession,
)
from examprep.services.scheduler import parse_response, review
from examprep.services.scoring import round_half_up

logger = logging.getLogger(__name__)


async def review_flashcard(
    db: aiosqlite.Connection,
    card_id: str,
    response: ReviewResponse | str,
    clock: Clock = utc_now,
) -> Flashcard:
    """Run one review through the scheduler and persist the result."""
    # reject a bad grade before touching the store
    response = parse_response(response)

    for tries in range(1, settings.cas_max_retries + 1):
        card = await get_flashcard(db, card_id)
        if card is None or not card.is_active:
            raise RecordNotFound("Flashcard not found")

        now = clock()
        updated = review(card, response, now)
        if await save_flashcard(db, updated, now):
            return updated.model_copy(update={"version": card.version + 1, "updated_at": now})

        logger.warning(
            "Flashcard %s changed during review (try %d), retrying", card_id, tries
        )

    raise ConcurrentUpdate()


async def select_study_session(
    db: aiosqlite.Connection,
    limit: int | None = None,
    subject: str | None = None,
    clock: Clock = utc_now,
) -> StudySession:
    """Most overdue active cards first, at most `limit` of them."""
    cards = await list_due_flashcards(
        db,
        as_of=clock(),
        limit=limit or settings.study_session_size,
        subject=subject,
    )
    return StudySession(flashcards=cards, count=len(cards))


async def flashcard_statistics(
    db: aiosqlite.Connection,
    subject: str | None = None,
    clock: Clock = utc_now,
) -> FlashcardStats:
    stats = await get_flashcard_stats(db, clock(), subject)
    total_reviews = stats["total_reviews"]
    accuracy = (
        round_half_up(100 * stats["correct_reviews"] / total_reviews)
        if total_reviews > 0
        else 0
    )
    return FlashcardStats(accuracy=accuracy, **stats)
