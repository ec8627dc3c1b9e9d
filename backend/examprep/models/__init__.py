from examprep.models.analytics import (
    QuestionPerformanceEntry,
    QuestionPerformanceReport,
    QuizPerformanceDay,
    SubjectDayPerformance,
)
from examprep.models.attempt import (
    AnswerKeyEntry,
    AnswerRequest,
    AnswerResult,
    AttemptAnswer,
    AttemptResults,
    AttemptScore,
    AttemptStarted,
    AttemptStartRequest,
    AttemptStatus,
    CompletionResult,
    QuizAttempt,
)
from examprep.models.flashcard import (
    Difficulty,
    Flashcard,
    FlashcardCreate,
    FlashcardList,
    FlashcardPerformance,
    FlashcardStats,
    FlashcardUpdate,
    ReviewRequest,
    ReviewResponse,
    ReviewResult,
    SpacedRepetition,
    StudySession,
)
from examprep.models.question import (
    BloomLevel,
    GeneratedBy,
    Question,
    QuestionCreate,
    QuestionList,
    QuestionOption,
    QuestionPerformance,
    QuestionSearch,
    QuestionSearchResult,
    QuestionType,
    SubjectQuestions,
    SubjectQuestionStats,
)
from examprep.models.quiz import (
    Quiz,
    QuizCreate,
    QuizDifficulty,
    QuizList,
    QuizQuestionRef,
    QuizSettings,
    QuizView,
    SafeOption,
    SafeQuestion,
)

__all__ = [
    "AnswerKeyEntry",
    "AnswerRequest",
    "AnswerResult",
    "AttemptAnswer",
    "AttemptResults",
    "AttemptScore",
    "AttemptStarted",
    "AttemptStartRequest",
    "AttemptStatus",
    "BloomLevel",
    "CompletionResult",
    "Difficulty",
    "Flashcard",
    "FlashcardCreate",
    "FlashcardList",
    "FlashcardPerformance",
    "FlashcardStats",
    "FlashcardUpdate",
    "GeneratedBy",
    "Question",
    "QuestionCreate",
    "QuestionList",
    "QuestionOption",
    "QuestionPerformance",
    "QuestionPerformanceEntry",
    "QuestionPerformanceReport",
    "QuestionSearch",
    "QuestionSearchResult",
    "QuestionType",
    "Quiz",
    "QuizAttempt",
    "QuizCreate",
    "QuizDifficulty",
    "QuizList",
    "QuizPerformanceDay",
    "QuizQuestionRef",
    "QuizSettings",
    "QuizView",
    "ReviewRequest",
    "ReviewResponse",
    "ReviewResult",
    "SafeOption",
    "SafeQuestion",
    "SpacedRepetition",
    "StudySession",
    "SubjectDayPerformance",
    "SubjectQuestions",
    "SubjectQuestionStats",
]
