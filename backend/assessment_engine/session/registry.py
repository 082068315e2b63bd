from __future__ import annotations

import logging
import time
from collections import Counter

from assessment_engine.core.config import settings
from assessment_engine.core.errors import (
    AttemptLimitError,
    SessionConflictError,
    SessionNotFoundError,
)
from assessment_engine.domain.models import Quiz
from assessment_engine.session.controller import SessionController
from assessment_engine.session.timer import Clock

logger = logging.getLogger(__name__)


class SessionRegistry:
    """In-process index of attempts.

    Enforces one live attempt per (quiz, user) and counts started attempts
    so ``Quiz.max_attempts`` can be honoured. Abandoned attempts count.

    Attempts that have left the active states (completed, abandoned, error)
    are dropped *retention_seconds* after they ended. The per-(quiz, user)
    attempt counters are never dropped.
    """

    def __init__(
        self,
        *,
        retention_seconds: float | None = None,
        clock: Clock = time.time,
    ) -> None:
        self._retention = (
            settings.session_retention_seconds if retention_seconds is None else retention_seconds
        )
        self._clock = clock
        self._sessions: dict[str, SessionController] = {}
        self._owners: dict[str, tuple[int, str]] = {}
        self._latest: dict[tuple[int, str], str] = {}
        self._started: Counter[tuple[int, str]] = Counter()

    def active_for(self, quiz_id: int, user_id: str) -> SessionController | None:
        session_id = self._latest.get((quiz_id, user_id))
        controller = self._sessions.get(session_id) if session_id else None
        if controller is None:
            return None
        return controller if controller.is_active() else None

    def attempts_used(self, quiz_id: int, user_id: str) -> int:
        return self._started[(quiz_id, user_id)]

    def ensure_can_start(self, quiz: Quiz, user_id: str) -> None:
        if self.active_for(quiz.id, user_id) is not None:
            raise SessionConflictError(quiz.id, user_id)
        if quiz.max_attempts is not None and self.attempts_used(quiz.id, user_id) >= quiz.max_attempts:
            raise AttemptLimitError(quiz.id, quiz.max_attempts)

    def add(self, controller: SessionController, user_id: str) -> None:
        quiz = controller.quiz
        if quiz is None:
            raise ValueError("Only started sessions can be registered")
        self.prune()
        key = (quiz.id, user_id)
        self._sessions[controller.session_id] = controller
        self._owners[controller.session_id] = key
        self._latest[key] = controller.session_id
        self._started[key] += 1
        logger.debug(
            "Registered session=%s quiz=%d user=%s attempt=%d",
            controller.session_id, quiz.id, user_id, self._started[key],
        )

    def get(self, session_id: str) -> SessionController:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    def owner(self, session_id: str) -> tuple[int, str]:
        self.get(session_id)
        return self._owners[session_id]

    def all(self) -> list[SessionController]:
        return list(self._sessions.values())

    def evict(self, session_id: str) -> None:
        """Forget one session. Its attempt still counts toward max_attempts."""
        self._sessions.pop(session_id, None)
        key = self._owners.pop(session_id, None)
        if key is not None and self._latest.get(key) == session_id:
            del self._latest[key]

    def prune(self) -> int:
        """Drop finished sessions older than the retention window; returns how many."""
        cutoff = self._clock() - self._retention
        expired = [
            session_id
            for session_id, controller in self._sessions.items()
            if not controller.is_active()
            and controller.session is not None
            and controller.session.ended_at is not None
            and controller.session.ended_at <= cutoff
        ]
        for session_id in expired:
            self.evict(session_id)
        if expired:
            logger.info("Pruned %d finished sessions", len(expired))
        return len(expired)

    def clear(self) -> None:
        self._sessions.clear()
        self._owners.clear()
        self._latest.clear()
