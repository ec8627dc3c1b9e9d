from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class ReviewResponse(str, Enum):
    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"


class SpacedRepetition(BaseModel):
    interval: int = Field(default=1, ge=1)        # days until next review
    repetition: int = Field(default=0, ge=0)      # consecutive non-lapse reviews
    ease_factor: float = Field(default=2.5, ge=1.3)
    next_review: datetime
    last_reviewed: datetime | None = None


class FlashcardPerformance(BaseModel):
    total_reviews: int = Field(default=0, ge=0)
    correct_reviews: int = Field(default=0, ge=0)
    streak_count: int = Field(default=0, ge=0)
    last_response: ReviewResponse | None = None


class Flashcard(BaseModel):
    id: str
    front: str
    back: str
    subject: str
    topics: list[str] = []
    difficulty: Difficulty = Difficulty.MEDIUM
    tags: list[str] = []
    source_question_id: str | None = None
    source_paper_id: str | None = None
    spaced_repetition: SpacedRepetition
    performance: FlashcardPerformance = Field(default_factory=FlashcardPerformance)
    is_active: bool = True
    version: int = 0
    created_at: datetime
    updated_at: datetime


class FlashcardCreate(BaseModel):
    front: str = Field(min_length=1)
    back: str = Field(min_length=1)
    subject: str = Field(min_length=1)
    topics: list[str] = []
    difficulty: Difficulty = Difficulty.MEDIUM
    tags: list[str] = []
    source_question_id: str | None = None
    source_paper_id: str | None = None


class FlashcardUpdate(BaseModel):
    front: str | None = Field(default=None, min_length=1)
    back: str | None = Field(default=None, min_length=1)
    difficulty: Difficulty | None = None
    topics: list[str] | None = None
    tags: list[str] | None = None


class FlashcardList(BaseModel):
    items: list[Flashcard]
    total: int


class StudySession(BaseModel):
    flashcards: list[Flashcard]
    count: int


class FlashcardStats(BaseModel):
    total: int = 0
    due_for_review: int = 0
    total_reviews: int = 0
    correct_reviews: int = 0
    accuracy: int = 0  # percent
    avg_streak: float = 0.0
    by_difficulty: dict[str, int] = {}
    by_subject: dict[str, int] = {}


class ReviewRequest(BaseModel):
    response: str  # again | hard | good | easy; checked by the scheduler


class ReviewResult(BaseModel):
    id: str
    next_review: datetime
    interval: int
    repetition: int
    ease_factor: float
    performance: FlashcardPerformance
