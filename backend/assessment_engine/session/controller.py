"""
Session controller: the state machine behind one quiz attempt.

State lifecycle:
    not_started ──start()──▶ in_progress
    in_progress ──tick() past deadline──▶ expired ──▶ submitting
    in_progress ──submit()──▶ submitting
    submitting  ──grade ok──▶ completed
    submitting  ──grade failed──▶ error ──submit() retry──▶ submitting
    in_progress ──abandon()──▶ abandoned

Once the session leaves in_progress every mutation (answers, flags,
navigation) and every tick() is a no-op. The timer is released on every
exit from in_progress, and again (harmlessly) on dispose().

The controller never prompts: callers read unanswered_count() or pass a
``confirm`` predicate to submit(). Validation problems come back as a
MutationResult rather than an exception.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any
from uuid import uuid4

from assessment_engine.core.config import settings
from assessment_engine.core.errors import NoQuestionsError, SubmissionError, ValidationError
from assessment_engine.domain.models import (
    AnswerValue,
    GradedResult,
    Question,
    Quiz,
    SessionStatus,
    SubmissionPayload,
)
from assessment_engine.services.grading_client import GradingService
from assessment_engine.session.answer_store import AnswerStore
from assessment_engine.session.navigator import Navigator
from assessment_engine.session.submitter import Submitter
from assessment_engine.session.timer import Clock, Timer

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[int], bool]

_ACTIVE = frozenset({
    SessionStatus.in_progress,
    SessionStatus.expired,
    SessionStatus.submitting,
})


# ---------------------------------------------------------------------------
# Session data
# ---------------------------------------------------------------------------

@dataclass
class QuizSession:
    id: str
    quiz: Quiz
    questions: tuple[Question, ...] = ()
    status: SessionStatus = SessionStatus.not_started
    deadline: float | None = None
    started_at: float = 0.0
    ended_at: float | None = None


@dataclass(frozen=True, slots=True)
class MutationResult:
    """Outcome of an answer/flag write."""

    accepted: bool
    value: Any = None
    error: ValidationError | None = None

    @classmethod
    def ok(cls, value: Any = None) -> "MutationResult":
        return cls(accepted=True, value=value)

    @classmethod
    def rejected(cls, error: ValidationError) -> "MutationResult":
        return cls(accepted=False, error=error)


@dataclass(frozen=True, slots=True)
class SessionOutcome:
    """Terminal output of a completed attempt."""

    payload: SubmissionPayload
    result: GradedResult


@dataclass(frozen=True)
class SessionSnapshot:
    session_id: str
    quiz_id: int
    status: SessionStatus
    current_index: int
    total_questions: int
    current_question_id: int | None
    remaining_seconds: float | None
    answered_count: int
    unanswered_count: int
    flagged: frozenset[int] = field(default_factory=frozenset)


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class SessionController:
    """Drives one attempt. Construct, start(), then talk only to this object."""

    def __init__(
        self,
        grading: GradingService,
        *,
        session_id: str | None = None,
        clock: Clock = time.time,
        tick_interval: float | None = None,
    ) -> None:
        interval = settings.tick_interval_seconds if tick_interval is None else tick_interval
        self._clock = clock
        self._timer = Timer(self.tick, clock=clock, interval=interval)
        self._submitter = Submitter(grading)
        self._session_id = session_id or uuid4().hex
        self._session: QuizSession | None = None
        self._answers: AnswerStore | None = None
        self._navigator: Navigator | None = None
        self._outcome: SessionOutcome | None = None
        self.last_error: SubmissionError | None = None

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def status(self) -> SessionStatus:
        return self._session.status if self._session else SessionStatus.not_started

    @property
    def session(self) -> QuizSession | None:
        return self._session

    @property
    def quiz(self) -> Quiz | None:
        return self._session.quiz if self._session else None

    @property
    def questions(self) -> tuple[Question, ...]:
        return self._session.questions if self._session else ()

    @property
    def outcome(self) -> SessionOutcome | None:
        return self._outcome

    @property
    def timer(self) -> Timer:
        return self._timer

    def is_active(self) -> bool:
        return self.status in _ACTIVE

    def remaining(self) -> float | None:
        return self._timer.remaining()

    def answered_count(self) -> int:
        return self._answers.answered_count() if self._answers else 0

    def unanswered_count(self) -> int:
        return self._answers.unanswered_count() if self._answers else 0

    def progress_pct(self) -> float:
        total = len(self.questions)
        if not total:
            return 0.0
        return round(self.answered_count() / total * 100, 1)

    def get_answer(self, question_id: int) -> AnswerValue | None:
        if self._answers is None:
            return None
        try:
            return self._answers.get_answer(question_id)
        except ValidationError:
            return None

    def is_flagged(self, question_id: int) -> bool:
        return self._answers.is_flagged(question_id) if self._answers else False

    def current_index(self) -> int:
        return self._navigator.current() if self._navigator else 0

    def current_question(self) -> Question | None:
        if self._navigator is None:
            return None
        return self.questions[self._navigator.current()]

    def snapshot(self) -> SessionSnapshot:
        current = self.current_question()
        return SessionSnapshot(
            session_id=self._session_id,
            quiz_id=self.quiz.id if self.quiz else 0,
            status=self.status,
            current_index=self.current_index(),
            total_questions=len(self.questions),
            current_question_id=current.id if current else None,
            remaining_seconds=self.remaining(),
            answered_count=self.answered_count(),
            unanswered_count=self.unanswered_count(),
            flagged=self._answers.flagged() if self._answers else frozenset(),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, quiz: Quiz, questions: list[Question]) -> None:
        """Begin the attempt. Raises NoQuestionsError when *questions* is empty."""
        if self._session is not None:
            raise RuntimeError(f"Session {self._session_id} was already started")
        if not questions:
            raise NoQuestionsError(quiz.id)

        ordered = tuple(sorted(questions, key=lambda q: (q.order, q.id)))
        now = self._clock()
        self._answers = AnswerStore(list(ordered))
        self._navigator = Navigator(len(ordered))
        self._session = QuizSession(
            id=self._session_id,
            quiz=quiz,
            questions=ordered,
            status=SessionStatus.in_progress,
            started_at=now,
        )

        if quiz.time_limit_seconds is not None:
            self._session.deadline = now + quiz.time_limit_seconds
            self._timer.start(self._session.deadline)

        logger.info(
            "Started session=%s quiz=%d questions=%d time_limit=%s",
            self._session_id, quiz.id, len(ordered), quiz.time_limit_seconds,
        )

    async def tick(self) -> None:
        """Check the deadline; auto-submits once time is up. Safe to call at any rate."""
        if self.status != SessionStatus.in_progress or self._session.deadline is None:
            return
        if not self._timer.expired():
            return

        self._session.status = SessionStatus.expired
        logger.info("Session=%s expired; auto-submitting", self._session_id)
        try:
            await self.submit(auto_submitted=True)
        except SubmissionError as exc:
            logger.warning(
                "Auto-submit failed session=%s retryable=%s: %s",
                self._session_id, exc.retryable, exc,
            )

    async def submit(
        self,
        auto_submitted: bool = False,
        *,
        confirm: ConfirmCallback | None = None,
    ) -> GradedResult | None:
        """Send the attempt for grading.

        A call while a submission is in flight or after it succeeded does
        nothing and returns the existing result (None while in flight).
        From ``error`` the same payload is re-sent.

        Args:
            auto_submitted: True when fired by timer expiry; skips ``confirm``.
            confirm:        Called with the unanswered count when some questions
                            are unanswered; returning False cancels the submit
                            and leaves the session in progress.

        Raises:
            SubmissionError: grading failed; the session is now ``error``.
        """
        status = self.status
        if status in (SessionStatus.submitting, SessionStatus.completed):
            logger.debug("submit() ignored session=%s status=%s", self._session_id, status.value)
            return self._outcome.result if self._outcome else None
        if status not in (SessionStatus.in_progress, SessionStatus.expired, SessionStatus.error):
            logger.debug("submit() ignored session=%s status=%s", self._session_id, status.value)
            return None

        if status == SessionStatus.in_progress and not auto_submitted and confirm is not None:
            unanswered = self.unanswered_count()
            if unanswered and not confirm(unanswered):
                logger.info(
                    "Submit declined session=%s unanswered=%d", self._session_id, unanswered,
                )
                return None

        self._timer.stop()
        payload = self._submitter.build_payload(
            self._session, self._answers, self._timer, auto_submitted=auto_submitted,
        )
        self._session.status = SessionStatus.submitting

        try:
            result = await self._submitter.send(self._session.quiz.id)
        except SubmissionError as exc:
            self._session.status = SessionStatus.error
            self._session.ended_at = self._clock()
            self.last_error = exc
            logger.warning(
                "Submission failed session=%s attempt=%d: %s",
                self._session_id, self._submitter.attempts, exc,
            )
            raise

        self._outcome = SessionOutcome(payload=payload, result=result)
        self._session.status = SessionStatus.completed
        self._session.ended_at = self._clock()
        self.last_error = None
        logger.info(
            "Completed session=%s score=%s/%s auto=%s",
            self._session_id, result.score, result.max_score, payload.auto_submitted,
        )
        return result

    def abandon(self) -> bool:
        """Give up the attempt without submitting. Only valid while in progress."""
        if self.status != SessionStatus.in_progress:
            return False
        self._timer.stop()
        self._session.status = SessionStatus.abandoned
        self._session.ended_at = self._clock()
        logger.info("Abandoned session=%s", self._session_id)
        return True

    def dispose(self) -> None:
        """Tear-down path for the owner: abandons a live attempt, always frees the timer."""
        if not self.abandon():
            self._timer.stop()

    async def __aenter__(self) -> "SessionController":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.dispose()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _locked_reason(self) -> str | None:
        if self.status != SessionStatus.in_progress:
            return f"Session is {self.status.value}; answers are locked"
        if self._timer.expired():
            return "Time is up; answers are locked"
        return None

    def set_answer(self, question_id: int, value: Any) -> MutationResult:
        reason = self._locked_reason()
        if reason:
            return MutationResult.rejected(ValidationError(reason, question_id=question_id))
        try:
            stored = self._answers.set_answer(question_id, value)
        except ValidationError as exc:
            logger.debug("Rejected answer session=%s: %s", self._session_id, exc)
            return MutationResult.rejected(exc)
        return MutationResult.ok(stored)

    def toggle_flag(self, question_id: int) -> MutationResult:
        reason = self._locked_reason()
        if reason:
            return MutationResult.rejected(ValidationError(reason, question_id=question_id))
        try:
            flagged = self._answers.toggle_flag(question_id)
        except ValidationError as exc:
            return MutationResult.rejected(exc)
        return MutationResult.ok(flagged)

    def go_to(self, index: int) -> bool:
        if self.status != SessionStatus.in_progress:
            return False
        return self._navigator.go_to(index)

    def next(self) -> bool:
        if self.status != SessionStatus.in_progress:
            return False
        return self._navigator.next()

    def previous(self) -> bool:
        if self.status != SessionStatus.in_progress:
            return False
        return self._navigator.previous()
