import logging
import os
from abc import ABC, abstractmethod
from typing import Any

import httpx

from assessment_engine.core.config import settings
from assessment_engine.core.errors import SubmissionError
from assessment_engine.domain.models import (
    GradedAnswer,
    GradedResult,
    Question,
    QuestionType,
    SubmissionPayload,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------

class GradingService(ABC):
    """Scores a submitted attempt.

    Implementations must treat ``payload.session_id`` as an idempotency key:
    re-sending the same session returns the first grade instead of creating
    a second one.
    """

    @abstractmethod
    async def submit(self, quiz_id: int, payload: SubmissionPayload) -> GradedResult:
        """Grade *payload* for *quiz_id*.

        Raises:
            SubmissionError: the service could not be reached or refused the
                             payload. ``retryable`` tells the caller whether
                             sending the same payload again can succeed.
        """

    async def aclose(self) -> None:
        """Release network resources. Nothing to do for local graders."""


# ---------------------------------------------------------------------------
# DummyGradingService: deterministic, no network, safe for tests and CI
# ---------------------------------------------------------------------------

class DummyGradingService(GradingService):
    """Grades locally against an answer key registered per quiz.

    short_answer is compared case-insensitively after trimming; essay
    questions are never auto-graded and earn no points. Questions without a
    key entry are scored as incorrect.
    """

    def __init__(self) -> None:
        # { quiz_id: (questions, {question_id: correct wire value}) }
        self._quizzes: dict[int, tuple[list[Question], dict[int, Any]]] = {}
        self._graded: dict[str, GradedResult] = {}
        self.calls: int = 0

    def register_quiz(
        self,
        quiz_id: int,
        questions: list[Question],
        answer_key: dict[int, Any],
    ) -> None:
        self._quizzes[quiz_id] = (list(questions), dict(answer_key))

    @staticmethod
    def _is_correct(question: Question, given: Any, expected: Any) -> bool:
        if given is None or expected is None:
            return False
        if question.type == QuestionType.essay:
            return False
        if question.type == QuestionType.multi_select:
            return set(given) == set(expected)
        if question.type == QuestionType.short_answer:
            return str(given).strip().lower() == str(expected).strip().lower()
        return given == expected

    async def submit(self, quiz_id: int, payload: SubmissionPayload) -> GradedResult:
        self.calls += 1
        if payload.session_id in self._graded:
            logger.info("DummyGradingService: replaying grade for session=%s", payload.session_id)
            return self._graded[payload.session_id]

        if quiz_id not in self._quizzes:
            raise SubmissionError(
                f"Quiz {quiz_id} is not registered with the grading service",
                retryable=False,
                status_code=404,
            )
        questions, key = self._quizzes[quiz_id]

        graded: list[GradedAnswer] = []
        score = 0.0
        max_score = 0.0
        for question in sorted(questions, key=lambda q: q.order):
            given = payload.answers.get(question.id)
            expected = key.get(question.id)
            correct = self._is_correct(question, given, expected)
            earned = float(question.points) if correct else 0.0
            score += earned
            max_score += question.points
            graded.append(GradedAnswer(
                question_id=question.id,
                answer=given,
                is_correct=correct,
                points_earned=earned,
                max_points=question.points,
                correct_answer=expected,
            ))

        percentage = round(score / max_score * 100, 1) if max_score else 0.0
        result = GradedResult(
            score=score,
            max_score=max_score,
            percentage=percentage,
            graded_answers=graded,
        )
        self._graded[payload.session_id] = result
        logger.debug(
            "DummyGradingService graded session=%s score=%s/%s",
            payload.session_id, score, max_score,
        )
        return result


# ---------------------------------------------------------------------------
# HttpGradingService: real Grading Service over HTTP
# ---------------------------------------------------------------------------

class HttpGradingService(GradingService):
    """POSTs submissions to the Grading Service.

    Config via env vars:
        GRADING_BASE_URL        required, e.g. https://lms.example.com/api
        GRADING_API_TOKEN       optional bearer token

    The session id is sent as ``Idempotency-Key`` so a retry after a lost
    response is recognised server-side instead of being graded twice.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        base_url = base_url or os.environ.get("GRADING_BASE_URL", "")
        if not base_url:
            raise ValueError("GRADING_BASE_URL must be set for HttpGradingService")
        token = token if token is not None else os.environ.get("GRADING_API_TOKEN", "")

        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout if timeout is not None else settings.http_timeout_seconds,
            transport=transport,
        )

    async def submit(self, quiz_id: int, payload: SubmissionPayload) -> GradedResult:
        try:
            response = await self._client.post(
                f"/quizzes/{quiz_id}/submissions",
                content=payload.model_dump_json(by_alias=True),
                headers={
                    "Content-Type": "application/json",
                    "Idempotency-Key": payload.session_id,
                },
            )
        except httpx.HTTPError as exc:
            logger.warning("Grading request failed quiz=%d: %s", quiz_id, exc)
            raise SubmissionError(f"Grading Service unreachable: {exc}") from exc

        if response.status_code >= 500:
            raise SubmissionError(
                f"Grading Service error {response.status_code}",
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise SubmissionError(
                f"Grading Service rejected submission ({response.status_code}): "
                f"{response.text[:200]}",
                retryable=False,
                status_code=response.status_code,
            )

        try:
            return GradedResult.model_validate_json(response.content)
        except ValueError as exc:
            raise SubmissionError(
                f"Grading Service returned an unreadable result: {exc}",
                retryable=False,
                status_code=response.status_code,
            ) from exc

    async def aclose(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def get_grading_service() -> GradingService:
    """Return the grading backend selected by env vars.

    GRADING_PROVIDER controls which backend is used:
        "dummy" → DummyGradingService  (local answer keys, no network)
        "http"  → HttpGradingService   (default when GRADING_BASE_URL is set)

    Falls back to DummyGradingService when nothing is configured.
    """
    provider = os.environ.get("GRADING_PROVIDER", "").lower()

    if provider == "dummy":
        logger.info("Using DummyGradingService")
        return DummyGradingService()

    if provider == "http" or (not provider and os.environ.get("GRADING_BASE_URL")):
        logger.info("Using HttpGradingService (base_url=%s)", os.environ.get("GRADING_BASE_URL"))
        return HttpGradingService()

    logger.warning("No GRADING_PROVIDER or GRADING_BASE_URL configured; falling back to DummyGradingService")
    return DummyGradingService()
