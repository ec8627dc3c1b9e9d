from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from examprep.db.sqlite import connect, create_question, init_sqlite
from examprep.models.question import QuestionCreate
from examprep.models.quiz import QuizCreate, QuizSettings
from examprep.services.quiz_engine import assemble_quiz

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def db_path(tmp_path):
    """Provide a freshly initialised SQLite database file."""
    return await init_sqlite(tmp_path)


@pytest_asyncio.fixture
async def db(db_path):
    async with connect(db_path) as conn:
        yield conn


QUESTION_DEFAULTS = {
    "multiple-choice": {
        "question_text": "Which gas do plants absorb?",
        "options": [
            {"text": "Oxygen", "is_correct": False},
            {"text": "Carbon dioxide", "is_correct": True},
            {"text": "Nitrogen", "is_correct": False},
        ],
    },
    "true-false": {
        "question_text": "The sun is a star.",
        "correct_answer": "True",
    },
    "short-answer": {
        "question_text": "Name the powerhouse of the cell.",
        "correct_answer": "Mitochondria",
    },
    "essay": {
        "question_text": "Explain osmosis.",
        "correct_answer": "Movement of water across a membrane",
    },
    "fill-blank": {
        "question_text": "Water boils at ___ degrees Celsius.",
        "correct_answer": "100",
    },
}


@pytest.fixture
def add_question(db, clock):
    async def _add(question_type="short-answer", **overrides):
        data = {
            "question_type": question_type,
            "subject": "biology",
            **QUESTION_DEFAULTS[question_type],
            **overrides,
        }
        return await create_question(db, QuestionCreate(**data), clock())

    return _add


@pytest.fixture
def add_quiz(db, clock):
    async def _add(questions, **settings):
        body = QuizCreate(
            title="Biology mock",
            subject="biology",
            question_ids=[q.id for q in questions],
            settings=QuizSettings(**settings),
        )
        return await assemble_quiz(db, body, clock)

    return _add
