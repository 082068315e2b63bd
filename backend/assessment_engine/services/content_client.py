import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TypeVar

import httpx
from pydantic import TypeAdapter

from assessment_engine.core.config import settings
from assessment_engine.core.errors import ContentNotFoundError, ContentUnavailableError
from assessment_engine.domain.models import Question, Quiz

logger = logging.getLogger(__name__)

_QUESTIONS = TypeAdapter(list[Question])

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------

class ContentProvider(ABC):
    """Read-only source of quiz definitions."""

    @abstractmethod
    async def get_quiz(self, quiz_id: int) -> Quiz:
        """Return quiz metadata.

        Raises:
            ContentNotFoundError:    the quiz does not exist.
            ContentUnavailableError: the provider failed or sent bad data.
        """

    @abstractmethod
    async def get_questions(self, quiz_id: int) -> list[Question]:
        """Return the quiz's questions (any order; callers sort by ``order``)."""

    async def aclose(self) -> None:
        """Release network resources. Nothing to do for local providers."""


# ---------------------------------------------------------------------------
# InMemoryContentProvider: no network, for tests and offline dev
# ---------------------------------------------------------------------------

class InMemoryContentProvider(ContentProvider):
    def __init__(self) -> None:
        # { quiz_id: (quiz, questions) }
        self._store: dict[int, tuple[Quiz, list[Question]]] = {}

    def add_quiz(self, quiz: Quiz, questions: list[Question]) -> None:
        self._store[quiz.id] = (quiz, list(questions))
        logger.debug("InMemory content: quiz %d with %d questions", quiz.id, len(questions))

    async def get_quiz(self, quiz_id: int) -> Quiz:
        if quiz_id not in self._store:
            raise ContentNotFoundError(quiz_id)
        return self._store[quiz_id][0]

    async def get_questions(self, quiz_id: int) -> list[Question]:
        if quiz_id not in self._store:
            raise ContentNotFoundError(quiz_id)
        return list(self._store[quiz_id][1])


# ---------------------------------------------------------------------------
# HttpContentProvider: course API over HTTP
# ---------------------------------------------------------------------------

class HttpContentProvider(ContentProvider):
    """Fetches quizzes from the course content API.

    Config via env vars:
        CONTENT_BASE_URL        required, e.g. https://lms.example.com/api
        CONTENT_API_TOKEN       optional bearer token
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        base_url = base_url or os.environ.get("CONTENT_BASE_URL", "")
        if not base_url:
            raise ValueError("CONTENT_BASE_URL must be set for HttpContentProvider")
        token = token if token is not None else os.environ.get("CONTENT_API_TOKEN", "")

        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout if timeout is not None else settings.http_timeout_seconds,
            transport=transport,
        )

    async def _get(self, quiz_id: int, path: str) -> bytes:
        try:
            response = await self._client.get(path)
        except httpx.HTTPError as exc:
            logger.warning("Content request failed quiz=%d path=%s: %s", quiz_id, path, exc)
            raise ContentUnavailableError(
                quiz_id, f"Content Provider unreachable: {exc}",
            ) from exc

        if response.status_code == 404:
            raise ContentNotFoundError(quiz_id)
        if response.status_code >= 400:
            logger.warning(
                "Content Provider error quiz=%d path=%s status=%d",
                quiz_id, path, response.status_code,
            )
            raise ContentUnavailableError(
                quiz_id,
                f"Content Provider error {response.status_code}",
                status_code=response.status_code,
            )
        return response.content

    @staticmethod
    def _parse(quiz_id: int, parse: Callable[[bytes], T], raw: bytes) -> T:
        try:
            return parse(raw)
        except ValueError as exc:
            raise ContentUnavailableError(
                quiz_id, f"Content Provider returned unreadable data: {exc}",
            ) from exc

    async def get_quiz(self, quiz_id: int) -> Quiz:
        raw = await self._get(quiz_id, f"/quizzes/{quiz_id}")
        return self._parse(quiz_id, Quiz.model_validate_json, raw)

    async def get_questions(self, quiz_id: int) -> list[Question]:
        raw = await self._get(quiz_id, f"/quizzes/{quiz_id}/questions")
        questions = self._parse(quiz_id, _QUESTIONS.validate_json, raw)
        logger.debug("Fetched %d questions for quiz %d", len(questions), quiz_id)
        return questions

    async def aclose(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def get_content_provider() -> ContentProvider:
    """Return the content source selected by env vars.

    CONTENT_PROVIDER controls which backend is used:
        "memory" → InMemoryContentProvider (tests / offline dev)
        "http"   → HttpContentProvider     (default when CONTENT_BASE_URL is set)
    """
    provider = os.environ.get("CONTENT_PROVIDER", "").lower()

    if provider == "memory" or (not provider and not os.environ.get("CONTENT_BASE_URL")):
        logger.info("Using InMemoryContentProvider")
        return InMemoryContentProvider()

    logger.info("Using HttpContentProvider (base_url=%s)", os.environ.get("CONTENT_BASE_URL"))
    return HttpContentProvider()
