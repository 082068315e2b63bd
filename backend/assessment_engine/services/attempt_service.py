"""
Attempt service: wires Content Provider, Grading Service and the registry
around SessionController.

Caching policy: quiz metadata and questions are fetched exactly once, when
the attempt starts, and frozen into the session. Nothing is re-fetched or
invalidated while the attempt runs.
"""

from __future__ import annotations

import logging
import time

from assessment_engine.core.errors import QuizEngineError
from assessment_engine.services.content_client import ContentProvider
from assessment_engine.services.grading_client import GradingService
from assessment_engine.services.results_projector import ResultSummary, project
from assessment_engine.session.controller import ConfirmCallback, SessionController
from assessment_engine.session.registry import SessionRegistry
from assessment_engine.session.timer import Clock

logger = logging.getLogger(__name__)


class SessionNotCompletedError(QuizEngineError):
    def __init__(self, session_id: str, status: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session {session_id} has no results yet (status={status})")


class AttemptService:
    def __init__(
        self,
        content: ContentProvider,
        grading: GradingService,
        registry: SessionRegistry | None = None,
        *,
        clock: Clock = time.time,
        tick_interval: float | None = None,
    ) -> None:
        self._content = content
        self._grading = grading
        self._registry = registry or SessionRegistry(clock=clock)
        self._clock = clock
        self._tick_interval = tick_interval

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    async def start_attempt(self, quiz_id: int, user_id: str) -> SessionController:
        """Start a new attempt of *quiz_id* for *user_id*.

        Raises:
            ContentNotFoundError:  unknown quiz.
            SessionConflictError:  the user already has this quiz in progress.
            AttemptLimitError:     max_attempts used up.
            NoQuestionsError:      the quiz has no questions.
        """
        quiz = await self._content.get_quiz(quiz_id)
        self._registry.ensure_can_start(quiz, user_id)
        questions = await self._content.get_questions(quiz_id)

        # re-check: another start for the same user may have landed while fetching
        self._registry.ensure_can_start(quiz, user_id)
        controller = SessionController(
            self._grading, clock=self._clock, tick_interval=self._tick_interval,
        )
        controller.start(quiz, questions)
        self._registry.add(controller, user_id)
        logger.info(
            "Attempt %d started quiz=%d user=%s session=%s",
            self._registry.attempts_used(quiz_id, user_id), quiz_id, user_id,
            controller.session_id,
        )
        return controller

    def get(self, session_id: str) -> SessionController:
        return self._registry.get(session_id)

    async def submit(self, session_id: str, *, confirm: ConfirmCallback | None = None):
        return await self.get(session_id).submit(confirm=confirm)

    def abandon(self, session_id: str) -> bool:
        return self.get(session_id).abandon()

    def results(self, session_id: str) -> ResultSummary:
        controller = self.get(session_id)
        outcome = controller.outcome
        if outcome is None:
            raise SessionNotCompletedError(session_id, controller.status.value)
        quiz_id, user_id = self._registry.owner(session_id)
        return project(
            outcome.result,
            controller.quiz,
            time_spent_seconds=outcome.payload.time_spent_seconds,
            attempts_used=self._registry.attempts_used(quiz_id, user_id),
        )

    def shutdown(self) -> None:
        """Dispose every controller and empty the registry; live attempts are abandoned."""
        for controller in self._registry.all():
            controller.dispose()
        self._registry.clear()

    async def aclose(self) -> None:
        """Close the Content Provider and Grading Service clients."""
        await self._content.aclose()
        await self._grading.aclose()
