"""
Quiz attempt lifecycle.

  start     -> in-progress attempt, one answer slot per quiz question
  answer    -> grade one submission and overwrite its slot
  complete  -> score, freeze, update quiz / question statistics
  abandon   -> freeze without scoring (explicitly, or after going idle)

The answer key and passing score are copied into the attempt when it
starts, so editing a question mid-attempt does not regrade anyone.

Attempt writes go through save_attempt, which only succeeds against the
version that was read and only while the row is still in-progress. That is
what makes completion at-most-once. Quiz and question statistics are
derived counters, updated with single-statement increments after the
attempt itself is committed; a failure there is logged, never raised.
"""
from __future__ import annotations

import logging
import random
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TypeVar

import aiosqlite

from examprep.clock import Clock, utc_now
from examprep.config import settings
from examprep.db.sqlite import (
    create_attempt,
    create_quiz,
    find_idle_attempts,
    get_attempt,
    get_questions,
    get_quiz,
    record_question_result,
    record_quiz_completion,
    save_attempt,
    save_quiz,
)
from examprep.errors import (
    AttemptNotActive,
    AttemptNotFound,
    ConcurrentUpdate,
    DuplicateQuestion,
    EmptyQuiz,
    QuestionNotInAttempt,
    RecordNotFound,
)
from examprep.models.attempt import (
    AnswerKeyEntry,
    AnswerResult,
    AttemptAnswer,
    AttemptResults,
    AttemptScore,
    AttemptStarted,
    AttemptStatus,
    CompletionResult,
    QuizAttempt,
)
from examprep.models.question import Question, QuestionType
from examprep.models.quiz import (
    Quiz,
    QuizCreate,
    QuizQuestionRef,
    QuizView,
    SafeOption,
    SafeQuestion,
)
from examprep.services.scoring import grade_answer, is_passing, score_answers

logger = logging.getLogger(__name__)

T = TypeVar("T")


# --- Pure state transitions ---


def build_answer_key(question: Question) -> AnswerKeyEntry:
    correct_option = None
    if question.question_type is QuestionType.MULTIPLE_CHOICE:
        correct_option = next(
            (opt.text for opt in question.options if opt.is_correct), None
        )
    return AnswerKeyEntry(
        question_id=question.id,
        question_type=question.question_type,
        correct_option=correct_option,
        correct_answer=question.correct_answer,
        explanation=question.explanation,
    )


def new_attempt(
    quiz: Quiz,
    questions: dict[str, Question],
    now: datetime,
    user_id: str | None = None,
    session_id: str | None = None,
) -> QuizAttempt:
    """Create an in-progress attempt with one empty slot per quiz question."""
    if not quiz.questions:
        raise EmptyQuiz()
    for ref in quiz.questions:
        if ref.question_id not in questions:
            raise RecordNotFound(f"Question {ref.question_id} not found")

    return QuizAttempt(
        id=str(uuid.uuid4()),
        quiz_id=quiz.id,
        user_id=user_id or "anonymous",
        session_id=session_id or str(int(now.timestamp() * 1000)),
        answers=[AttemptAnswer(question_id=ref.question_id) for ref in quiz.questions],
        score=AttemptScore(total_points=len(quiz.questions)),
        status=AttemptStatus.IN_PROGRESS,
        started_at=now,
        answer_key=[build_answer_key(questions[ref.question_id]) for ref in quiz.questions],
        passing_score=quiz.settings.passing_score,
        updated_at=now,
    )


def safe_quiz_view(
    quiz: Quiz,
    questions: dict[str, Question],
    rng: random.Random | None = None,
) -> QuizView:
    """The quiz as shown to a taker: no correct answers, explanations or flags.

    Shuffling, when the quiz asks for it, happens on copies; the stored quiz
    and the attempt's slots keep the canonical order.
    """
    rng = rng or random.Random()
    refs = list(quiz.questions)
    if quiz.settings.randomize_questions:
        rng.shuffle(refs)

    items = []
    for ref in refs:
        question = questions[ref.question_id]
        options = [SafeOption(text=opt.text) for opt in question.options]
        if quiz.settings.randomize_options:
            rng.shuffle(options)
        items.append(
            SafeQuestion(
                id=question.id,
                question_text=question.question_text,
                question_type=question.question_type,
                options=options,
                difficulty=question.difficulty,
                topics=question.topics,
                estimated_time=question.estimated_time,
                points=ref.points,
            )
        )

    return QuizView(
        id=quiz.id,
        title=quiz.title,
        description=quiz.description,
        subject=quiz.subject,
        settings=quiz.settings,
        questions=items,
    )


def _ensure_active(attempt: QuizAttempt) -> None:
    if attempt.status is not AttemptStatus.IN_PROGRESS:
        raise AttemptNotActive()


def record_answer(
    attempt: QuizAttempt,
    question_id: str,
    submitted: str,
    time_spent: int,
    now: datetime,
) -> AnswerResult:
    """Grade a submission and replace the question's slot in place."""
    _ensure_active(attempt)
    index = next(
        (i for i, slot in enumerate(attempt.answers) if slot.question_id == question_id),
        None,
    )
    if index is None:
        raise QuestionNotInAttempt()

    key = next(k for k in attempt.answer_key if k.question_id == question_id)
    is_correct = grade_answer(key, submitted)
    points = 1 if is_correct else 0
    attempt.answers[index] = AttemptAnswer(
        question_id=question_id,
        selected_answer=submitted,
        is_correct=is_correct,
        time_spent=time_spent,
        points_earned=points,
    )
    attempt.updated_at = now
    return AnswerResult(is_correct=is_correct, points_earned=points)


def finalize(attempt: QuizAttempt, now: datetime) -> CompletionResult:
    _ensure_active(attempt)
    attempt.score = score_answers(attempt.answers)
    attempt.status = AttemptStatus.COMPLETED
    attempt.completed_at = now
    attempt.time_spent = sum(a.time_spent for a in attempt.answers)
    attempt.updated_at = now
    return CompletionResult(
        score=attempt.score,
        time_spent=attempt.time_spent,
        answers=attempt.answers,
        passed=is_passing(attempt.score.percentage, attempt.passing_score),
    )


def abandon(attempt: QuizAttempt, now: datetime) -> None:
    _ensure_active(attempt)
    attempt.status = AttemptStatus.ABANDONED
    attempt.time_spent = sum(a.time_spent for a in attempt.answers)
    attempt.updated_at = now


# --- Store-backed operations ---


async def _load_attempt(db: aiosqlite.Connection, attempt_id: str) -> QuizAttempt:
    attempt = await get_attempt(db, attempt_id)
    if attempt is None:
        raise AttemptNotFound()
    return attempt


async def _mutate_attempt(
    db: aiosqlite.Connection,
    attempt_id: str,
    apply: Callable[[QuizAttempt], T],
) -> tuple[QuizAttempt, T]:
    """Load, apply a transition, and compare-and-swap the result back.

    A lost race re-reads the attempt, so a transition that is no longer
    valid (e.g. the attempt was completed meanwhile) raises on the next try.
    """
    for tries in range(1, settings.cas_max_retries + 1):
        attempt = await _load_attempt(db, attempt_id)
        result = apply(attempt)
        if await save_attempt(db, attempt):
            return attempt, result
        logger.warning("Attempt %s changed concurrently (try %d), retrying", attempt_id, tries)
    raise ConcurrentUpdate()


async def _question_refs(
    db: aiosqlite.Connection, question_ids: list[str]
) -> list[QuizQuestionRef]:
    # one answer slot per question id
    repeated = sorted({qid for qid in question_ids if question_ids.count(qid) > 1})
    if repeated:
        raise DuplicateQuestion(f"Questions listed more than once: {', '.join(repeated)}")
    found = await get_questions(db, question_ids)
    missing = [qid for qid in question_ids if qid not in found]
    if missing:
        raise RecordNotFound(f"Some questions not found: {', '.join(missing)}")
    return [QuizQuestionRef(question_id=qid, points=1) for qid in question_ids]


async def assemble_quiz(
    db: aiosqlite.Connection, body: QuizCreate, clock: Clock = utc_now
) -> Quiz:
    """Create a quiz over existing questions, one point each, in the given order."""
    refs = await _question_refs(db, body.question_ids)
    return await create_quiz(db, body, refs, clock())


async def revise_quiz(
    db: aiosqlite.Connection, quiz_id: str, body: QuizCreate, clock: Clock = utc_now
) -> Quiz:
    """Replace a quiz's content, keeping its id and attempt statistics.

    Attempts already in progress keep grading against the answer key and
    passing score they started with.
    """
    quiz = await get_quiz(db, quiz_id)
    if quiz is None or not quiz.is_active:
        raise RecordNotFound("Quiz not found")

    revised = quiz.model_copy(
        update={
            "title": body.title,
            "description": body.description,
            "subject": body.subject,
            "questions": await _question_refs(db, body.question_ids),
            "settings": body.settings,
            "difficulty": body.difficulty,
            "topics": body.topics,
        }
    )
    if not await save_quiz(db, revised, clock()):
        raise RecordNotFound("Quiz not found")
    logger.info("Revised quiz %s", quiz_id)
    return await get_quiz(db, quiz_id)  # type: ignore[return-value]


async def start_attempt(
    db: aiosqlite.Connection,
    quiz_id: str,
    user_id: str | None = None,
    session_id: str | None = None,
    clock: Clock = utc_now,
    rng: random.Random | None = None,
) -> AttemptStarted:
    quiz = await get_quiz(db, quiz_id)
    if quiz is None or not quiz.is_active:
        raise RecordNotFound("Quiz not found")

    questions = await get_questions(db, [ref.question_id for ref in quiz.questions])
    attempt = new_attempt(quiz, questions, clock(), user_id, session_id)
    await create_attempt(db, attempt)
    logger.info("Started attempt %s on quiz %s", attempt.id, quiz.id)

    return AttemptStarted(attempt_id=attempt.id, quiz=safe_quiz_view(quiz, questions, rng))


async def submit_answer(
    db: aiosqlite.Connection,
    attempt_id: str,
    question_id: str,
    answer: str,
    time_spent: int = 0,
    clock: Clock = utc_now,
) -> AnswerResult:
    _, result = await _mutate_attempt(
        db,
        attempt_id,
        lambda attempt: record_answer(attempt, question_id, answer, time_spent, clock()),
    )
    return result


async def complete_attempt(
    db: aiosqlite.Connection,
    attempt_id: str,
    clock: Clock = utc_now,
) -> CompletionResult:
    """Score and freeze an attempt, then update quiz and question statistics.

    Not safe to retry blindly: a second call on the same attempt raises
    AttemptNotActive instead of counting the attempt twice.
    """
    now = clock()
    attempt, result = await _mutate_attempt(
        db, attempt_id, lambda attempt: finalize(attempt, now)
    )
    logger.info(
        "Completed attempt %s on quiz %s: %d%%",
        attempt.id,
        attempt.quiz_id,
        attempt.score.percentage,
    )
    await _update_statistics(db, attempt, now)
    return result


async def _update_statistics(
    db: aiosqlite.Connection, attempt: QuizAttempt, now: datetime
) -> None:
    try:
        if not await record_quiz_completion(db, attempt.quiz_id, attempt.score.percentage, now):
            logger.warning("Quiz %s not found; statistics skipped", attempt.quiz_id)
    except aiosqlite.Error:
        logger.warning(
            "Quiz statistics update failed for attempt %s", attempt.id, exc_info=True
        )

    for answer in attempt.answers:
        if answer.selected_answer is None:
            continue
        try:
            updated = await record_question_result(
                db, answer.question_id, answer.is_correct, answer.time_spent, now
            )
        except aiosqlite.Error:
            logger.warning(
                "Question statistics update failed for %s (attempt %s)",
                answer.question_id,
                attempt.id,
                exc_info=True,
            )
            continue
        if not updated:
            logger.warning("Question %s not found; statistics skipped", answer.question_id)


async def abandon_attempt(
    db: aiosqlite.Connection,
    attempt_id: str,
    clock: Clock = utc_now,
) -> AttemptResults:
    attempt, _ = await _mutate_attempt(
        db, attempt_id, lambda attempt: abandon(attempt, clock())
    )
    logger.info("Abandoned attempt %s", attempt.id)
    return _results_view(attempt, show_key=False)


async def expire_idle_attempts(
    db: aiosqlite.Connection,
    idle_for: timedelta,
    clock: Clock = utc_now,
) -> int:
    """Abandon in-progress attempts with no activity for `idle_for`.

    An attempt answered while this runs keeps its in-progress status.
    """
    now = clock()
    expired = 0
    for attempt in await find_idle_attempts(db, now - idle_for):
        abandon(attempt, now)
        if await save_attempt(db, attempt):
            expired += 1
    if expired:
        logger.info("Abandoned %d idle quiz attempts", expired)
    return expired


def _results_view(attempt: QuizAttempt, show_key: bool) -> AttemptResults:
    completed = attempt.status is AttemptStatus.COMPLETED
    return AttemptResults(
        id=attempt.id,
        quiz_id=attempt.quiz_id,
        status=attempt.status,
        score=attempt.score,
        answers=attempt.answers,
        started_at=attempt.started_at,
        completed_at=attempt.completed_at,
        time_spent=attempt.time_spent,
        passed=is_passing(attempt.score.percentage, attempt.passing_score) if completed else None,
        answer_key=attempt.answer_key if show_key else None,
    )


async def get_attempt_results(db: aiosqlite.Connection, attempt_id: str) -> AttemptResults:
    """An attempt's answers and score.

    The answer key is only revealed once the attempt is over and the quiz
    allows showing correct answers.
    """
    attempt = await _load_attempt(db, attempt_id)
    quiz = await get_quiz(db, attempt.quiz_id)
    show_key = (
        attempt.status is not AttemptStatus.IN_PROGRESS
        and quiz is not None
        and quiz.settings.show_correct_answers
    )
    return _results_view(attempt, show_key)
