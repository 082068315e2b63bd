"""Exception hierarchy for the assessment session engine.

Only NoQuestionsError and SubmissionError end up in front of the student as
failures needing an explicit action (abort or retry). ValidationError is
raised inside the answer layer and handed back to the caller as a value by
SessionController, so a bad write never unwinds the session.
"""

from __future__ import annotations


class QuizEngineError(Exception):
    """Base class for every error raised by the engine."""


class NoQuestionsError(QuizEngineError):
    def __init__(self, quiz_id: int | None = None) -> None:
        self.quiz_id = quiz_id
        suffix = f" {quiz_id}" if quiz_id is not None else ""
        super().__init__(f"Quiz{suffix} has no questions")


class ValidationError(QuizEngineError):
    """An answer write was rejected; session state is unchanged."""

    def __init__(self, message: str, *, question_id: int | None = None) -> None:
        self.question_id = question_id
        super().__init__(message)


class SubmissionError(QuizEngineError):
    """The Grading Service did not accept the submission."""

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = True,
        status_code: int | None = None,
    ) -> None:
        self.retryable = retryable
        self.status_code = status_code
        super().__init__(message)


class SessionConflictError(QuizEngineError):
    def __init__(self, quiz_id: int, user_id: str) -> None:
        self.quiz_id = quiz_id
        self.user_id = user_id
        super().__init__(
            f"User {user_id!r} already has an attempt in progress for quiz {quiz_id}"
        )


class AttemptLimitError(QuizEngineError):
    def __init__(self, quiz_id: int, max_attempts: int) -> None:
        self.quiz_id = quiz_id
        self.max_attempts = max_attempts
        super().__init__(
            f"All {max_attempts} attempts for quiz {quiz_id} have been used"
        )


class ContentNotFoundError(QuizEngineError):
    def __init__(self, quiz_id: int) -> None:
        self.quiz_id = quiz_id
        super().__init__(f"Quiz {quiz_id} not found")


class SessionNotFoundError(QuizEngineError):
    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")


class ContentUnavailableError(QuizEngineError):
    """The Content Provider failed or returned something unusable."""

    def __init__(self, quiz_id: int, message: str, *, status_code: int | None = None) -> None:
        self.quiz_id = quiz_id
        self.status_code = status_code
        super().__init__(message)
