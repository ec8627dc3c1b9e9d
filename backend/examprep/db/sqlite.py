import json
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator

import aiosqlite

from examprep.config import settings
from examprep.models.attempt import QuizAttempt
from examprep.models.flashcard import Flashcard, FlashcardCreate, FlashcardUpdate
from examprep.models.question import Question, QuestionCreate
from examprep.models.quiz import Quiz, QuizCreate, QuizQuestionRef

_db_path: Path | None = None

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS flashcards (
    id              TEXT PRIMARY KEY,
    front           TEXT NOT NULL,
    back            TEXT NOT NULL,
    subject         TEXT NOT NULL,
    topics          TEXT NOT NULL DEFAULT '[]',
    difficulty      TEXT NOT NULL DEFAULT 'medium',
    tags            TEXT NOT NULL DEFAULT '[]',
    source_question_id TEXT,
    source_paper_id TEXT,
    interval        INTEGER NOT NULL DEFAULT 1,
    repetition      INTEGER NOT NULL DEFAULT 0,
    ease_factor     REAL NOT NULL DEFAULT 2.5,
    next_review     TEXT NOT NULL,
    last_reviewed   TEXT,
    total_reviews   INTEGER NOT NULL DEFAULT 0,
    correct_reviews INTEGER NOT NULL DEFAULT 0,
    streak_count    INTEGER NOT NULL DEFAULT 0,
    last_response   TEXT,
    is_active       INTEGER NOT NULL DEFAULT 1,
    version         INTEGER NOT NULL DEFAULT 0,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_flashcards_review ON flashcards(is_active, next_review);
CREATE INDEX IF NOT EXISTS idx_flashcards_subject ON flashcards(subject, difficulty);

CREATE TABLE IF NOT EXISTS questions (
    id              TEXT PRIMARY KEY,
    question_text   TEXT NOT NULL,
    question_type   TEXT NOT NULL,
    options         TEXT NOT NULL DEFAULT '[]',
    correct_answer  TEXT,
    explanation     TEXT,
    difficulty      TEXT NOT NULL DEFAULT 'medium',
    subject         TEXT NOT NULL,
    topics          TEXT NOT NULL DEFAULT '[]',
    keywords        TEXT NOT NULL DEFAULT '[]',
    generated_by    TEXT NOT NULL DEFAULT 'manual',
    bloom_level     TEXT,
    estimated_time  INTEGER NOT NULL DEFAULT 2,
    usage_count     INTEGER NOT NULL DEFAULT 0,
    correct_answers INTEGER NOT NULL DEFAULT 0,
    total_attempts  INTEGER NOT NULL DEFAULT 0,
    average_time    REAL NOT NULL DEFAULT 0.0,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_questions_subject ON questions(subject, difficulty);

CREATE TABLE IF NOT EXISTS quizzes (
    id              TEXT PRIMARY KEY,
    title           TEXT NOT NULL,
    description     TEXT NOT NULL DEFAULT '',
    subject         TEXT NOT NULL,
    questions       TEXT NOT NULL DEFAULT '[]',
    settings        TEXT NOT NULL,
    difficulty      TEXT NOT NULL DEFAULT 'mixed',
    topics          TEXT NOT NULL DEFAULT '[]',
    is_active       INTEGER NOT NULL DEFAULT 1,
    created_by      TEXT NOT NULL DEFAULT 'anonymous',
    total_attempts  INTEGER NOT NULL DEFAULT 0,
    average_score   REAL NOT NULL DEFAULT 0.0,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_quizzes_subject ON quizzes(is_active, subject, difficulty);

CREATE TABLE IF NOT EXISTS quiz_attempts (
    id              TEXT PRIMARY KEY,
    quiz_id         TEXT NOT NULL REFERENCES quizzes(id),
    user_id         TEXT NOT NULL DEFAULT 'anonymous',
    session_id      TEXT NOT NULL,
    answers         TEXT NOT NULL,
    answer_key      TEXT NOT NULL,
    passing_score   REAL NOT NULL,
    total_points    INTEGER NOT NULL,
    earned_points   INTEGER NOT NULL DEFAULT 0,
    percentage      INTEGER NOT NULL DEFAULT 0,
    status          TEXT NOT NULL DEFAULT 'in-progress',
    started_at      TEXT NOT NULL,
    completed_at    TEXT,
    time_spent      INTEGER NOT NULL DEFAULT 0,
    version         INTEGER NOT NULL DEFAULT 0,
    updated_at      TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_attempts_quiz ON quiz_attempts(quiz_id, completed_at);
CREATE INDEX IF NOT EXISTS idx_attempts_activity ON quiz_attempts(status, updated_at);
"""


async def init_sqlite(data_dir: Path) -> Path:
    global _db_path
    _db_path = data_dir / settings.sqlite_filename
    async with aiosqlite.connect(_db_path) as db:
        await db.executescript(SCHEMA_SQL)
        await db.commit()
    return _db_path


@asynccontextmanager
async def connect(db_path: Path) -> AsyncIterator[aiosqlite.Connection]:
    async with aiosqlite.connect(db_path) as db:
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys=ON")
        yield db


async def get_db() -> AsyncIterator[aiosqlite.Connection]:
    assert _db_path is not None, "SQLite not initialized"
    async with connect(_db_path) as db:
        yield db


def ts(value: datetime) -> str:
    """Fixed-width UTC ISO-8601, so text comparison is chronological."""
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _dump(value: Any) -> str:
    return json.dumps(value)


# --- Flashcards ---


def _row_to_flashcard(row: aiosqlite.Row) -> Flashcard:
    d = dict(row)
    return Flashcard(
        id=d["id"],
        front=d["front"],
        back=d["back"],
        subject=d["subject"],
        topics=json.loads(d["topics"]),
        difficulty=d["difficulty"],
        tags=json.loads(d["tags"]),
        source_question_id=d["source_question_id"],
        source_paper_id=d["source_paper_id"],
        spaced_repetition={
            "interval": d["interval"],
            "repetition": d["repetition"],
            "ease_factor": d["ease_factor"],
            "next_review": d["next_review"],
            "last_reviewed": d["last_reviewed"],
        },
        performance={
            "total_reviews": d["total_reviews"],
            "correct_reviews": d["correct_reviews"],
            "streak_count": d["streak_count"],
            "last_response": d["last_response"],
        },
        is_active=bool(d["is_active"]),
        version=d["version"],
        created_at=d["created_at"],
        updated_at=d["updated_at"],
    )


async def create_flashcard(
    db: aiosqlite.Connection, card: FlashcardCreate, now: datetime
) -> Flashcard:
    """Insert a new card, due immediately."""
    card_id = str(uuid.uuid4())
    stamp = ts(now)
    await db.execute(
        """INSERT INTO flashcards
           (id, front, back, subject, topics, difficulty, tags,
            source_question_id, source_paper_id, next_review, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            card_id,
            card.front,
            card.back,
            card.subject,
            _dump(card.topics),
            card.difficulty.value,
            _dump(card.tags),
            card.source_question_id,
            card.source_paper_id,
            stamp,
            stamp,
            stamp,
        ),
    )
    await db.commit()
    return await get_flashcard(db, card_id)  # type: ignore[return-value]


async def get_flashcard(db: aiosqlite.Connection, card_id: str) -> Flashcard | None:
    cursor = await db.execute("SELECT * FROM flashcards WHERE id = ?", (card_id,))
    row = await cursor.fetchone()
    return _row_to_flashcard(row) if row else None


async def save_flashcard(
    db: aiosqlite.Connection, card: Flashcard, now: datetime
) -> bool:
    """Persist scheduling and performance state.

    Compare-and-swap on ``card.version``: returns False when another writer
    saved the card since it was read.
    """
    sr = card.spaced_repetition
    perf = card.performance
    cursor = await db.execute(
        """UPDATE flashcards
           SET interval = ?, repetition = ?, ease_factor = ?, next_review = ?,
               last_reviewed = ?, total_reviews = ?, correct_reviews = ?,
               streak_count = ?, last_response = ?,
               version = version + 1, updated_at = ?
           WHERE id = ? AND version = ?""",
        (
            sr.interval,
            sr.repetition,
            sr.ease_factor,
            ts(sr.next_review),
            ts(sr.last_reviewed) if sr.last_reviewed else None,
            perf.total_reviews,
            perf.correct_reviews,
            perf.streak_count,
            perf.last_response.value if perf.last_response else None,
            ts(now),
            card.id,
            card.version,
        ),
    )
    await db.commit()
    return (cursor.rowcount or 0) > 0


def _flashcard_filter(
    subject: str | None,
    difficulty: str | None,
    topic: str | None,
    due_before: datetime | None,
) -> tuple[str, list[Any]]:
    clauses = ["is_active = 1"]
    params: list[Any] = []
    if subject:
        clauses.append("subject = ?")
        params.append(subject)
    if difficulty:
        clauses.append("difficulty = ?")
        params.append(difficulty)
    if topic:
        clauses.append("EXISTS (SELECT 1 FROM json_each(flashcards.topics) WHERE value = ?)")
        params.append(topic)
    if due_before is not None:
        clauses.append("next_review <= ?")
        params.append(ts(due_before))
    return " AND ".join(clauses), params


async def list_flashcards(
    db: aiosqlite.Connection,
    subject: str | None = None,
    difficulty: str | None = None,
    topic: str | None = None,
    due_before: datetime | None = None,
    offset: int = 0,
    limit: int = 20,
) -> tuple[list[Flashcard], int]:
    where, params = _flashcard_filter(subject, difficulty, topic, due_before)
    cursor = await db.execute(
        f"SELECT COUNT(*) FROM flashcards WHERE {where}", params  # noqa: S608
    )
    total = (await cursor.fetchone())[0]

    cursor = await db.execute(
        f"SELECT * FROM flashcards WHERE {where} "  # noqa: S608
        "ORDER BY next_review ASC LIMIT ? OFFSET ?",
        [*params, limit, offset],
    )
    rows = await cursor.fetchall()
    return [_row_to_flashcard(r) for r in rows], total


async def list_due_flashcards(
    db: aiosqlite.Connection,
    as_of: datetime,
    limit: int = 20,
    subject: str | None = None,
) -> list[Flashcard]:
    """Active cards with next_review <= as_of, most overdue first."""
    items, _ = await list_flashcards(
        db, subject=subject, due_before=as_of, offset=0, limit=limit
    )
    return items


async def update_flashcard_content(
    db: aiosqlite.Connection,
    card_id: str,
    update: FlashcardUpdate,
    now: datetime,
) -> Flashcard | None:
    fields = update.model_dump(exclude_none=True)
    card = await get_flashcard(db, card_id)
    if not card or not card.is_active:
        return None
    if not fields:
        return card

    for key in ("topics", "tags"):
        if key in fields:
            fields[key] = _dump(fields[key])
    if "difficulty" in fields:
        fields["difficulty"] = fields["difficulty"].value

    fields["updated_at"] = ts(now)
    set_clause = ", ".join(f"{k} = ?" for k in fields)
    await db.execute(
        f"UPDATE flashcards SET {set_clause}, version = version + 1 WHERE id = ?",  # noqa: S608
        [*fields.values(), card_id],
    )
    await db.commit()
    return await get_flashcard(db, card_id)


async def deactivate_flashcard(
    db: aiosqlite.Connection, card_id: str, now: datetime
) -> bool:
    cursor = await db.execute(
        "UPDATE flashcards SET is_active = 0, version = version + 1, updated_at = ? "
        "WHERE id = ? AND is_active = 1",
        (ts(now), card_id),
    )
    await db.commit()
    return (cursor.rowcount or 0) > 0


async def get_flashcard_stats(
    db: aiosqlite.Connection, as_of: datetime, subject: str | None = None
) -> dict[str, Any]:
    where, params = _flashcard_filter(subject, None, None, None)
    cursor = await db.execute(
        f"""SELECT COUNT(*),
                   SUM(CASE WHEN next_review <= ? THEN 1 ELSE 0 END),
                   SUM(total_reviews),
                   SUM(correct_reviews),
                   AVG(streak_count)
            FROM flashcards WHERE {where}""",  # noqa: S608
        [ts(as_of), *params],
    )
    row = await cursor.fetchone()

    cursor = await db.execute(
        f"SELECT difficulty, COUNT(*) FROM flashcards WHERE {where} GROUP BY difficulty",  # noqa: S608
        params,
    )
    by_difficulty = {r[0]: r[1] for r in await cursor.fetchall()}

    cursor = await db.execute(
        f"SELECT subject, COUNT(*) FROM flashcards WHERE {where} GROUP BY subject",  # noqa: S608
        params,
    )
    by_subject = {r[0]: r[1] for r in await cursor.fetchall()}

    return {
        "total": row[0] or 0,
        "due_for_review": row[1] or 0,
        "total_reviews": row[2] or 0,
        "correct_reviews": row[3] or 0,
        "avg_streak": float(row[4] or 0.0),
        "by_difficulty": by_difficulty,
        "by_subject": by_subject,
    }


# --- Questions ---


def _row_to_question(row: aiosqlite.Row) -> Question:
    d = dict(row)
    for key in ("options", "topics", "keywords"):
        d[key] = json.loads(d[key])
    d["performance"] = {
        "correct_answers": d.pop("correct_answers"),
        "total_attempts": d.pop("total_attempts"),
        "average_time": d.pop("average_time"),
    }
    return Question(**d)


async def create_question(
    db: aiosqlite.Connection, question: QuestionCreate, now: datetime
) -> Question:
    question_id = str(uuid.uuid4())
    stamp = ts(now)
    await db.execute(
        """INSERT INTO questions
           (id, question_text, question_type, options, correct_answer, explanation,
            difficulty, subject, topics, keywords, generated_by, bloom_level,
            estimated_time, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            question_id,
            question.question_text,
            question.question_type.value,
            _dump([o.model_dump() for o in question.options]),
            question.correct_answer,
            question.explanation,
            question.difficulty.value,
            question.subject,
            _dump(question.topics),
            _dump(question.keywords),
            question.generated_by.value,
            question.bloom_level.value if question.bloom_level else None,
            question.estimated_time,
            stamp,
            stamp,
        ),
    )
    await db.commit()
    return await get_question(db, question_id)  # type: ignore[return-value]


async def get_question(db: aiosqlite.Connection, question_id: str) -> Question | None:
    cursor = await db.execute("SELECT * FROM questions WHERE id = ?", (question_id,))
    row = await cursor.fetchone()
    return _row_to_question(row) if row else None


async def get_questions(
    db: aiosqlite.Connection, question_ids: list[str]
) -> dict[str, Question]:
    """Fetch several questions at once, keyed by id. Missing ids are absent."""
    if not question_ids:
        return {}
    placeholders = ", ".join("?" for _ in question_ids)
    cursor = await db.execute(
        f"SELECT * FROM questions WHERE id IN ({placeholders})",  # noqa: S608
        question_ids,
    )
    rows = await cursor.fetchall()
    questions = [_row_to_question(r) for r in rows]
    return {q.id: q for q in questions}


async def save_question(
    db: aiosqlite.Connection, question: Question, now: datetime
) -> bool:
    """Persist edited question content.

    Performance counters and usage_count are left alone; those only move
    through record_question_result.
    """
    cursor = await db.execute(
        """UPDATE questions
           SET question_text = ?, question_type = ?, options = ?, correct_answer = ?,
               explanation = ?, difficulty = ?, subject = ?, topics = ?, keywords = ?,
               bloom_level = ?, estimated_time = ?, updated_at = ?
           WHERE id = ?""",
        (
            question.question_text,
            question.question_type.value,
            _dump([o.model_dump() for o in question.options]),
            question.correct_answer,
            question.explanation,
            question.difficulty.value,
            question.subject,
            _dump(question.topics),
            _dump(question.keywords),
            question.bloom_level.value if question.bloom_level else None,
            question.estimated_time,
            ts(now),
            question.id,
        ),
    )
    await db.commit()
    return (cursor.rowcount or 0) > 0


async def list_questions(
    db: aiosqlite.Connection,
    subject: str | None = None,
    question_type: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> tuple[list[Question], int]:
    clauses = ["1 = 1"]
    params: list[Any] = []
    if subject:
        clauses.append("subject = ?")
        params.append(subject)
    if question_type:
        clauses.append("question_type = ?")
        params.append(question_type)
    where = " AND ".join(clauses)

    cursor = await db.execute(
        f"SELECT COUNT(*) FROM questions WHERE {where}", params  # noqa: S608
    )
    total = (await cursor.fetchone())[0]
    cursor = await db.execute(
        f"SELECT * FROM questions WHERE {where} "  # noqa: S608
        "ORDER BY created_at DESC LIMIT ? OFFSET ?",
        [*params, limit, offset],
    )
    rows = await cursor.fetchall()
    return [_row_to_question(r) for r in rows], total


async def record_question_result(
    db: aiosqlite.Connection,
    question_id: str,
    is_correct: bool,
    time_spent: int,
    now: datetime,
) -> bool:
    """Fold one answer into the question's statistics in a single statement.

    SQLite evaluates every SET expression against the pre-update row, so the
    running mean uses the old total_attempts as n - 1.
    """
    cursor = await db.execute(
        """UPDATE questions
           SET total_attempts = total_attempts + 1,
               correct_answers = correct_answers + ?,
               average_time = (average_time * total_attempts + ?) / (total_attempts + 1),
               usage_count = usage_count + 1,
               updated_at = ?
           WHERE id = ?""",
        (1 if is_correct else 0, time_spent, ts(now), question_id),
    )
    await db.commit()
    return (cursor.rowcount or 0) > 0


async def delete_question(db: aiosqlite.Connection, question_id: str) -> bool:
    """Remove a question from the bank.

    Attempts keep their own copy of its answer key; quizzes that still list
    it can no longer be started.
    """
    cursor = await db.execute("DELETE FROM questions WHERE id = ?", (question_id,))
    await db.commit()
    return (cursor.rowcount or 0) > 0


def _like(text: str) -> str:
    escaped = text.replace("!", "!!").replace("%", "!%").replace("_", "!_")
    return f"%{escaped}%"


async def search_questions(
    db: aiosqlite.Connection,
    query: str | None = None,
    subject: str | None = None,
    difficulty: str | None = None,
    question_type: str | None = None,
    limit: int = 20,
) -> list[Question]:
    """Case-insensitive substring match on text, keywords and topics.

    Most used questions come first.
    """
    clauses = ["1 = 1"]
    params: list[Any] = []
    if query:
        pattern = _like(query)
        clauses.append(
            """(question_text LIKE ? ESCAPE '!'
                OR EXISTS (SELECT 1 FROM json_each(questions.keywords)
                           WHERE value LIKE ? ESCAPE '!')
                OR EXISTS (SELECT 1 FROM json_each(questions.topics)
                           WHERE value LIKE ? ESCAPE '!'))"""
        )
        params.extend([pattern, pattern, pattern])
    if subject:
        clauses.append("subject = ?")
        params.append(subject)
    if difficulty:
        clauses.append("difficulty = ?")
        params.append(difficulty)
    if question_type:
        clauses.append("question_type = ?")
        params.append(question_type)
    where = " AND ".join(clauses)

    cursor = await db.execute(
        f"SELECT * FROM questions WHERE {where} "  # noqa: S608
        "ORDER BY usage_count DESC, created_at DESC LIMIT ?",
        [*params, limit],
    )
    rows = await cursor.fetchall()
    return [_row_to_question(r) for r in rows]


async def get_question_subject_stats(
    db: aiosqlite.Connection, subject: str
) -> dict[str, Any]:
    cursor = await db.execute(
        """SELECT COUNT(*),
                  AVG(CASE WHEN total_attempts > 0
                           THEN CAST(correct_answers AS REAL) / total_attempts
                           ELSE 0 END)
           FROM questions WHERE subject = ?""",
        (subject,),
    )
    row = await cursor.fetchone()

    cursor = await db.execute(
        "SELECT difficulty, COUNT(*) FROM questions WHERE subject = ? GROUP BY difficulty",
        (subject,),
    )
    by_difficulty = {r[0]: r[1] for r in await cursor.fetchall()}

    cursor = await db.execute(
        "SELECT question_type, COUNT(*) FROM questions WHERE subject = ? GROUP BY question_type",
        (subject,),
    )
    by_type = {r[0]: r[1] for r in await cursor.fetchall()}

    return {
        "total": row[0] or 0,
        "by_difficulty": by_difficulty,
        "by_type": by_type,
        "avg_performance": float(row[1] or 0.0),
    }


_SUCCESS_RATE = "CAST(correct_answers AS REAL) / total_attempts"


async def get_question_performance(
    db: aiosqlite.Connection, subject: str | None = None, limit: int = 20
) -> dict[str, Any]:
    """Best, worst and most used questions among those answered at least once."""
    where = "total_attempts > 0"
    params: list[Any] = []
    if subject:
        where += " AND subject = ?"
        params.append(subject)

    cursor = await db.execute(
        f"SELECT AVG({_SUCCESS_RATE}) FROM questions WHERE {where}",  # noqa: S608
        params,
    )
    avg_success_rate = (await cursor.fetchone())[0]

    async def ranked(order: str) -> list[Question]:
        cursor = await db.execute(
            f"SELECT * FROM questions WHERE {where} "  # noqa: S608
            f"ORDER BY {order}, created_at DESC LIMIT ?",
            [*params, limit],
        )
        return [_row_to_question(r) for r in await cursor.fetchall()]

    return {
        "avg_success_rate": float(avg_success_rate or 0.0),
        "top_performing": await ranked(f"{_SUCCESS_RATE} DESC"),
        "low_performing": await ranked(f"{_SUCCESS_RATE} ASC"),
        "most_used": await ranked("usage_count DESC"),
    }


# --- Quizzes ---


def _row_to_quiz(row: aiosqlite.Row) -> Quiz:
    d = dict(row)
    d["questions"] = json.loads(d["questions"])
    d["settings"] = json.loads(d["settings"])
    d["topics"] = json.loads(d["topics"])
    d["is_active"] = bool(d["is_active"])
    return Quiz(**d)


async def create_quiz(
    db: aiosqlite.Connection,
    quiz: QuizCreate,
    questions: list[QuizQuestionRef],
    now: datetime,
) -> Quiz:
    quiz_id = str(uuid.uuid4())
    stamp = ts(now)
    await db.execute(
        """INSERT INTO quizzes
           (id, title, description, subject, questions, settings, difficulty,
            topics, created_by, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            quiz_id,
            quiz.title,
            quiz.description,
            quiz.subject,
            _dump([q.model_dump() for q in questions]),
            quiz.settings.model_dump_json(),
            quiz.difficulty.value,
            _dump(quiz.topics),
            quiz.created_by,
            stamp,
            stamp,
        ),
    )
    await db.commit()
    return await get_quiz(db, quiz_id)  # type: ignore[return-value]


async def get_quiz(db: aiosqlite.Connection, quiz_id: str) -> Quiz | None:
    cursor = await db.execute("SELECT * FROM quizzes WHERE id = ?", (quiz_id,))
    row = await cursor.fetchone()
    return _row_to_quiz(row) if row else None


async def save_quiz(db: aiosqlite.Connection, quiz: Quiz, now: datetime) -> bool:
    """Persist edited quiz content. Attempt statistics are not written here."""
    cursor = await db.execute(
        """UPDATE quizzes
           SET title = ?, description = ?, subject = ?, questions = ?, settings = ?,
               difficulty = ?, topics = ?, updated_at = ?
           WHERE id = ? AND is_active = 1""",
        (
            quiz.title,
            quiz.description,
            quiz.subject,
            _dump([q.model_dump() for q in quiz.questions]),
            quiz.settings.model_dump_json(),
            quiz.difficulty.value,
            _dump(quiz.topics),
            ts(now),
            quiz.id,
        ),
    )
    await db.commit()
    return (cursor.rowcount or 0) > 0


async def list_quizzes(
    db: aiosqlite.Connection,
    subject: str | None = None,
    difficulty: str | None = None,
    offset: int = 0,
    limit: int = 10,
) -> tuple[list[Quiz], int]:
    clauses = ["is_active = 1"]
    params: list[Any] = []
    if subject:
        clauses.append("subject = ?")
        params.append(subject)
    if difficulty:
        clauses.append("difficulty = ?")
        params.append(difficulty)
    where = " AND ".join(clauses)

    cursor = await db.execute(
        f"SELECT COUNT(*) FROM quizzes WHERE {where}", params  # noqa: S608
    )
    total = (await cursor.fetchone())[0]
    cursor = await db.execute(
        f"SELECT * FROM quizzes WHERE {where} "  # noqa: S608
        "ORDER BY created_at DESC LIMIT ? OFFSET ?",
        [*params, limit, offset],
    )
    rows = await cursor.fetchall()
    return [_row_to_quiz(r) for r in rows], total


async def deactivate_quiz(db: aiosqlite.Connection, quiz_id: str, now: datetime) -> bool:
    cursor = await db.execute(
        "UPDATE quizzes SET is_active = 0, updated_at = ? WHERE id = ? AND is_active = 1",
        (ts(now), quiz_id),
    )
    await db.commit()
    return (cursor.rowcount or 0) > 0


async def record_quiz_completion(
    db: aiosqlite.Connection, quiz_id: str, percentage: int, now: datetime
) -> bool:
    """Count one completed attempt and fold its percentage into the running mean.

    Done as one UPDATE so concurrent completions of the same quiz cannot
    lose increments.
    """
    cursor = await db.execute(
        """UPDATE quizzes
           SET total_attempts = total_attempts + 1,
               average_score = (average_score * total_attempts + ?) / (total_attempts + 1),
               updated_at = ?
           WHERE id = ?""",
        (percentage, ts(now), quiz_id),
    )
    await db.commit()
    return (cursor.rowcount or 0) > 0


# --- Quiz attempts ---


def _row_to_attempt(row: aiosqlite.Row) -> QuizAttempt:
    d = dict(row)
    d["answers"] = json.loads(d["answers"])
    d["answer_key"] = json.loads(d["answer_key"])
    d["score"] = {
        "total_points": d.pop("total_points"),
        "earned_points": d.pop("earned_points"),
        "percentage": d.pop("percentage"),
    }
    return QuizAttempt(**d)


async def create_attempt(db: aiosqlite.Connection, attempt: QuizAttempt) -> None:
    await db.execute(
        """INSERT INTO quiz_attempts
           (id, quiz_id, user_id, session_id, answers, answer_key, passing_score,
            total_points, earned_points, percentage, status, started_at,
            completed_at, time_spent, version, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            attempt.id,
            attempt.quiz_id,
            attempt.user_id,
            attempt.session_id,
            _dump([a.model_dump(mode="json") for a in attempt.answers]),
            _dump([k.model_dump(mode="json") for k in attempt.answer_key]),
            attempt.passing_score,
            attempt.score.total_points,
            attempt.score.earned_points,
            attempt.score.percentage,
            attempt.status.value,
            ts(attempt.started_at),
            ts(attempt.completed_at) if attempt.completed_at else None,
            attempt.time_spent,
            attempt.version,
            ts(attempt.updated_at),
        ),
    )
    await db.commit()


async def get_attempt(db: aiosqlite.Connection, attempt_id: str) -> QuizAttempt | None:
    cursor = await db.execute("SELECT * FROM quiz_attempts WHERE id = ?", (attempt_id,))
    row = await cursor.fetchone()
    return _row_to_attempt(row) if row else None


async def save_attempt(db: aiosqlite.Connection, attempt: QuizAttempt) -> bool:
    """Write back answers, score and status of an attempt read as in-progress.

    Compare-and-swap on ``attempt.version``; only in-progress rows can be
    written, so a terminal attempt is never modified again.
    """
    cursor = await db.execute(
        """UPDATE quiz_attempts
           SET answers = ?, total_points = ?, earned_points = ?, percentage = ?,
               status = ?, completed_at = ?, time_spent = ?,
               version = version + 1, updated_at = ?
           WHERE id = ? AND version = ? AND status = 'in-progress'""",
        (
            _dump([a.model_dump(mode="json") for a in attempt.answers]),
            attempt.score.total_points,
            attempt.score.earned_points,
            attempt.score.percentage,
            attempt.status.value,
            ts(attempt.completed_at) if attempt.completed_at else None,
            attempt.time_spent,
            ts(attempt.updated_at),
            attempt.id,
            attempt.version,
        ),
    )
    await db.commit()
    return (cursor.rowcount or 0) > 0


async def find_idle_attempts(
    db: aiosqlite.Connection, inactive_since: datetime
) -> list[QuizAttempt]:
    cursor = await db.execute(
        "SELECT * FROM quiz_attempts WHERE status = 'in-progress' AND updated_at < ?",
        (ts(inactive_since),),
    )
    rows = await cursor.fetchall()
    return [_row_to_attempt(r) for r in rows]


async def get_quiz_performance(
    db: aiosqlite.Connection, since: datetime
) -> list[dict[str, Any]]:
    """Completed attempts since `since`, grouped by UTC day and quiz subject.

    Passing is judged against the passing score each attempt started with.
    """
    cursor = await db.execute(
        """SELECT substr(a.completed_at, 1, 10) AS day,
                  q.subject,
                  COUNT(*),
                  AVG(a.percentage),
                  AVG(a.time_spent),
                  AVG(CASE WHEN a.percentage >= a.passing_score THEN 1.0 ELSE 0.0 END)
           FROM quiz_attempts a JOIN quizzes q ON q.id = a.quiz_id
           WHERE a.status = 'completed' AND a.completed_at >= ?
           GROUP BY day, q.subject
           ORDER BY day, q.subject""",
        (ts(since),),
    )
    return [
        {
            "day": r[0],
            "subject": r[1],
            "attempt_count": r[2],
            "avg_score": float(r[3]),
            "avg_time": float(r[4]),
            "pass_rate": float(r[5]),
        }
        for r in await cursor.fetchall()
    ]
