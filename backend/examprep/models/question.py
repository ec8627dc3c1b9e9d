from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from examprep.models.flashcard import Difficulty


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple-choice"
    TRUE_FALSE = "true-false"
    SHORT_ANSWER = "short-answer"
    ESSAY = "essay"
    FILL_BLANK = "fill-blank"


class GeneratedBy(str, Enum):
    AI = "ai"
    EXTRACTED = "extracted"
    MANUAL = "manual"


class BloomLevel(str, Enum):
    REMEMBER = "remember"
    UNDERSTAND = "understand"
    APPLY = "apply"
    ANALYZE = "analyze"
    EVALUATE = "evaluate"
    CREATE = "create"


class QuestionOption(BaseModel):
    text: str
    is_correct: bool = False


class QuestionPerformance(BaseModel):
    correct_answers: int = 0
    total_attempts: int = 0
    average_time: float = 0.0  # seconds


def check_answer_key(
    question_type: QuestionType,
    options: list[QuestionOption],
    correct_answer: str | None,
) -> None:
    """Raise ValueError unless the question can be graded.

    Multiple-choice questions are graded against their options and need
    exactly one correct option; every other type is graded against
    correct_answer.
    """
    if question_type is QuestionType.MULTIPLE_CHOICE:
        if len(options) < 2:
            raise ValueError("multiple-choice questions need at least two options")
        correct = sum(1 for opt in options if opt.is_correct)
        if correct != 1:
            raise ValueError(
                f"multiple-choice questions need exactly one correct option, got {correct}"
            )
    elif not correct_answer:
        raise ValueError(f"{question_type.value} questions need a correct_answer")


class QuestionCreate(BaseModel):
    question_text: str = Field(min_length=1)
    question_type: QuestionType
    options: list[QuestionOption] = []
    correct_answer: str | None = None
    explanation: str | None = None
    difficulty: Difficulty = Difficulty.MEDIUM
    subject: str = Field(min_length=1)
    topics: list[str] = []
    keywords: list[str] = []
    generated_by: GeneratedBy = GeneratedBy.MANUAL
    bloom_level: BloomLevel | None = None
    estimated_time: int = Field(default=2, ge=0)  # minutes

    @model_validator(mode="after")
    def _gradable(self) -> QuestionCreate:
        check_answer_key(self.question_type, self.options, self.correct_answer)
        return self


class Question(BaseModel):
    id: str
    question_text: str
    question_type: QuestionType
    options: list[QuestionOption] = []
    correct_answer: str | None = None
    explanation: str | None = None
    difficulty: Difficulty = Difficulty.MEDIUM
    subject: str
    topics: list[str] = []
    keywords: list[str] = []
    generated_by: GeneratedBy = GeneratedBy.MANUAL
    bloom_level: BloomLevel | None = None
    estimated_time: int = 2
    usage_count: int = 0
    performance: QuestionPerformance = Field(default_factory=QuestionPerformance)
    created_at: datetime
    updated_at: datetime


class QuestionList(BaseModel):
    items: list[Question]
    total: int
    offset: int
    limit: int


class QuestionSearch(BaseModel):
    query: str | None = None
    subject: str | None = None
    difficulty: Difficulty | None = None
    question_type: QuestionType | None = None
    limit: int = Field(default=20, ge=1, le=200)


class QuestionSearchResult(BaseModel):
    questions: list[Question]
    count: int


class SubjectQuestionStats(BaseModel):
    total: int = 0
    by_difficulty: dict[str, int] = {}
    by_type: dict[str, int] = {}
    avg_performance: float = 0.0  # mean success rate, 0-1; unattempted count as 0


class SubjectQuestions(BaseModel):
    questions: list[Question]
    statistics: SubjectQuestionStats
