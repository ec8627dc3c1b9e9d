"""
Races on shared records, each contender on its own SQLite connection.

The quiz aggregate (total_attempts / average_score) is contended by every
attempt of the same quiz; it must not lose updates. A single attempt must
complete at most once, and concurrent reviews of one card must all land.
"""
import asyncio

import pytest

from examprep.db.sqlite import connect, create_flashcard, get_attempt, get_flashcard, get_quiz
from examprep.errors import AttemptNotActive
from examprep.models.attempt import AttemptStatus
from examprep.models.flashcard import FlashcardCreate
from examprep.services.quiz_engine import complete_attempt, start_attempt, submit_answer
from examprep.services.study import review_flashcard


@pytest.mark.asyncio
async def test_concurrent_completions_keep_quiz_aggregate(db, db_path, clock, add_question, add_quiz):
    questions = [await add_question("fill-blank") for _ in range(2)]
    quiz = await add_quiz(questions)

    attempt_ids = []
    for i in range(6):
        attempt_id = (await start_attempt(db, quiz.id, clock=clock)).attempt_id
        # even attempts score 100, odd ones 50
        answered = questions if i % 2 == 0 else questions[:1]
        for question in answered:
            await submit_answer(db, attempt_id, question.id, "100", 3, clock=clock)
        attempt_ids.append(attempt_id)

    async def finish(attempt_id):
        async with connect(db_path) as conn:
            return await complete_attempt(conn, attempt_id, clock=clock)

    results = await asyncio.gather(*(finish(a) for a in attempt_ids))

    assert sorted(r.score.percentage for r in results) == [50, 50, 50, 100, 100, 100]
    stored = await get_quiz(db, quiz.id)
    assert stored.total_attempts == 6
    assert stored.average_score == pytest.approx(75.0)

    first = await db.execute(
        "SELECT total_attempts, correct_answers FROM questions WHERE id = ?", (questions[0].id,)
    )
    assert tuple(await first.fetchone()) == (6, 6)


@pytest.mark.asyncio
async def test_racing_completions_of_one_attempt(db, db_path, clock, add_question, add_quiz):
    quiz = await add_quiz([await add_question()])
    attempt_id = (await start_attempt(db, quiz.id, clock=clock)).attempt_id

    async def finish():
        async with connect(db_path) as conn:
            return await complete_attempt(conn, attempt_id, clock=clock)

    outcomes = await asyncio.gather(*(finish() for _ in range(4)), return_exceptions=True)

    completed = [o for o in outcomes if not isinstance(o, Exception)]
    rejected = [o for o in outcomes if isinstance(o, AttemptNotActive)]
    assert len(completed) == 1
    assert len(rejected) == 3
    assert (await get_quiz(db, quiz.id)).total_attempts == 1
    assert (await get_attempt(db, attempt_id)).status is AttemptStatus.COMPLETED


@pytest.mark.asyncio
async def test_concurrent_reviews_of_one_card(db, db_path, clock):
    card = await create_flashcard(
        db, FlashcardCreate(front="Q", back="A", subject="biology"), clock()
    )

    async def grade():
        async with connect(db_path) as conn:
            await review_flashcard(conn, card.id, "good", clock=clock)

    await asyncio.gather(*(grade() for _ in range(4)))

    stored = await get_flashcard(db, card.id)
    assert stored.performance.total_reviews == 4
    assert stored.performance.correct_reviews == 4
    assert stored.spaced_repetition.repetition == 4
    assert stored.version == 4
