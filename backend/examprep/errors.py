"""
Typed failures raised by the scheduling and quiz services.

Each kind carries the HTTP status the routers answer with. All of them are
validation failures: retrying the same call cannot succeed, except
ConcurrentUpdate, which means another writer won a race on the same record.
"""
from __future__ import annotations


class ExamPrepError(Exception):
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class InvalidResponse(ExamPrepError):
    status_code = 422
    default_message = "Invalid response. Must be: again, hard, good, or easy"


class EmptyQuiz(ExamPrepError):
    status_code = 422
    default_message = "Quiz has no questions"


class AttemptNotFound(ExamPrepError):
    status_code = 404
    default_message = "Quiz attempt not found"


class AttemptNotActive(ExamPrepError):
    """Raised when answering, completing or abandoning a terminal attempt."""

    status_code = 409
    default_message = "Quiz attempt is not active"


class QuestionNotInAttempt(ExamPrepError):
    status_code = 400
    default_message = "Question not part of this quiz"


class RecordNotFound(ExamPrepError):
    status_code = 404
    default_message = "Record not found"


class ConcurrentUpdate(ExamPrepError):
    status_code = 409
    default_message = "Record was modified concurrently, please retry"


class DuplicateQuestion(ExamPrepError):
    status_code = 422
    default_message = "A question can appear in a quiz only once"
