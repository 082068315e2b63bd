"""Builds the one SubmissionPayload of an attempt and hands it to grading.

The payload is frozen the first time it is built: a retry after a failed
send re-sends the exact same answers, time and session id, so the Grading
Service can de-duplicate on session id. Retrying is the controller's call;
nothing here retries on its own.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from assessment_engine.core.errors import SubmissionError
from assessment_engine.domain.models import GradedResult, SubmissionPayload
from assessment_engine.services.grading_client import GradingService
from assessment_engine.session.answer_store import AnswerStore
from assessment_engine.session.timer import Timer

if TYPE_CHECKING:
    from assessment_engine.session.controller import QuizSession

logger = logging.getLogger(__name__)


class Submitter:
    def __init__(self, grading: GradingService) -> None:
        self._grading = grading
        self._payload: SubmissionPayload | None = None
        self._result: GradedResult | None = None
        self.attempts: int = 0

    @property
    def payload(self) -> SubmissionPayload | None:
        return self._payload

    @property
    def delivered(self) -> bool:
        return self._result is not None

    @staticmethod
    def time_spent(session: "QuizSession", timer: Timer) -> int:
        limit = session.quiz.time_limit_seconds
        remaining = timer.remaining()
        if limit is not None and remaining is not None:
            spent = limit - remaining
            return int(round(min(max(spent, 0.0), limit)))
        return int(round(max(timer.now() - session.started_at, 0.0)))

    def build_payload(
        self,
        session: "QuizSession",
        answers: AnswerStore,
        timer: Timer,
        *,
        auto_submitted: bool = False,
    ) -> SubmissionPayload:
        """Return the attempt's payload, building it on the first call only."""
        if self._payload is None:
            self._payload = SubmissionPayload(
                session_id=session.id,
                answers=answers.wire_answers(),
                time_spent_seconds=self.time_spent(session, timer),
                auto_submitted=auto_submitted,
            )
            logger.info(
                "Built payload session=%s answers=%d time_spent=%ds auto=%s",
                session.id, len(self._payload.answers),
                self._payload.time_spent_seconds, auto_submitted,
            )
        return self._payload

    async def send(self, quiz_id: int) -> GradedResult:
        """Deliver the built payload; a delivered payload is never sent again."""
        if self._payload is None:
            raise RuntimeError("build_payload() must run before send()")
        if self._result is not None:
            return self._result

        self.attempts += 1
        try:
            result = await self._grading.submit(quiz_id, self._payload)
        except SubmissionError:
            raise
        except Exception as exc:
            # anything else out of a grading backend counts as a transport fault
            raise SubmissionError(f"Grading failed: {exc}") from exc

        self._result = result
        return result
