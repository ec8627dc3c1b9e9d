from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from examprep.models.flashcard import Difficulty
from examprep.models.question import QuestionType


class QuizDifficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    MIXED = "mixed"


class QuizSettings(BaseModel):
    time_limit: int | None = Field(default=None, ge=1)  # minutes
    randomize_questions: bool = False
    randomize_options: bool = False
    show_correct_answers: bool = True
    allow_retakes: bool = True
    passing_score: float = Field(default=70, ge=0, le=100)  # percent


class QuizQuestionRef(BaseModel):
    question_id: str
    points: int = 1


class QuizCreate(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    subject: str = Field(min_length=1)
    question_ids: list[str] = []
    settings: QuizSettings = Field(default_factory=QuizSettings)
    difficulty: QuizDifficulty = QuizDifficulty.MIXED
    topics: list[str] = []
    created_by: str = "anonymous"


class Quiz(BaseModel):
    id: str
    title: str
    description: str = ""
    subject: str
    questions: list[QuizQuestionRef]
    settings: QuizSettings
    difficulty: QuizDifficulty = QuizDifficulty.MIXED
    topics: list[str] = []
    is_active: bool = True
    created_by: str = "anonymous"
    total_attempts: int = 0
    average_score: float = 0.0
    created_at: datetime
    updated_at: datetime


class QuizList(BaseModel):
    items: list[Quiz]
    total: int
    offset: int
    limit: int


# --- Views handed to quiz takers: never carry the answer key ---


class SafeOption(BaseModel):
    text: str


class SafeQuestion(BaseModel):
    id: str
    question_text: str
    question_type: QuestionType
    options: list[SafeOption] = []
    difficulty: Difficulty
    topics: list[str] = []
    estimated_time: int
    points: int = 1


class QuizView(BaseModel):
    id: str
    title: str
    description: str
    subject: str
    settings: QuizSettings
    questions: list[SafeQuestion]
