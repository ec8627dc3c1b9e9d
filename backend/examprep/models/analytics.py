from __future__ import annotations

from pydantic import BaseModel

from examprep.models.flashcard import Difficulty
from examprep.models.question import QuestionType


class QuestionPerformanceEntry(BaseModel):
    id: str
    question_text: str
    difficulty: Difficulty
    question_type: QuestionType
    success_rate: float  # 0-1
    total_attempts: int
    usage_count: int
    topics: list[str] = []


class QuestionPerformanceReport(BaseModel):
    avg_success_rate: float = 0.0
    top_performing: list[QuestionPerformanceEntry] = []
    low_performing: list[QuestionPerformanceEntry] = []
    most_used: list[QuestionPerformanceEntry] = []


class SubjectDayPerformance(BaseModel):
    subject: str
    attempt_count: int
    avg_score: float  # percent
    avg_time: float  # seconds
    pass_rate: float  # 0-1


class QuizPerformanceDay(BaseModel):
    date: str  # YYYY-MM-DD, UTC
    subjects: list[SubjectDayPerformance]
    total_attempts: int
    overall_avg_score: float  # mean of the per-subject averages
