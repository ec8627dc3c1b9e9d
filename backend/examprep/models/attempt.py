from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from examprep.models.question import QuestionType
from examprep.models.quiz import QuizView


class AttemptStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class AttemptAnswer(BaseModel):
    question_id: str
    selected_answer: str | None = None
    is_correct: bool = False
    time_spent: int = 0  # seconds
    points_earned: int = 0


class AttemptScore(BaseModel):
    total_points: int
    earned_points: int = 0
    percentage: int = 0


class AnswerKeyEntry(BaseModel):
    """Grading data for one question, copied from the question bank at start."""

    question_id: str
    question_type: QuestionType
    correct_option: str | None = None  # multiple-choice only
    correct_answer: str | None = None
    explanation: str | None = None


class QuizAttempt(BaseModel):
    id: str
    quiz_id: str
    user_id: str = "anonymous"
    session_id: str
    answers: list[AttemptAnswer]
    score: AttemptScore
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    started_at: datetime
    completed_at: datetime | None = None
    time_spent: int = 0
    answer_key: list[AnswerKeyEntry]
    passing_score: float
    version: int = 0
    updated_at: datetime


class AttemptStartRequest(BaseModel):
    user_id: str | None = None
    session_id: str | None = None


class AttemptStarted(BaseModel):
    attempt_id: str
    quiz: QuizView


class AnswerRequest(BaseModel):
    question_id: str
    answer: str
    time_spent: int = Field(default=0, ge=0)


class AnswerResult(BaseModel):
    is_correct: bool
    points_earned: int


class CompletionResult(BaseModel):
    score: AttemptScore
    time_spent: int
    answers: list[AttemptAnswer]
    passed: bool


class AttemptResults(BaseModel):
    id: str
    quiz_id: str
    status: AttemptStatus
    score: AttemptScore
    answers: list[AttemptAnswer]
    started_at: datetime
    completed_at: datetime | None
    time_spent: int
    passed: bool | None = None  # only for completed attempts
    answer_key: list[AnswerKeyEntry] | None = None
