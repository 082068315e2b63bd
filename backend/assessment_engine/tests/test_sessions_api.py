from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from assessment_engine.api.routes import sessions as sessions_routes
from assessment_engine.api.routes.sessions import get_attempt_service, shutdown_attempt_service
from assessment_engine.core.errors import SubmissionError
from assessment_engine.domain.models import SubmissionPayload
from assessment_engine.main import app as fastapi_app
from assessment_engine.services.attempt_service import AttemptService
from assessment_engine.services.content_client import HttpContentProvider, InMemoryContentProvider
from assessment_engine.services.grading_client import DummyGradingService, HttpGradingService
from assessment_engine.tests.conftest import FakeClock, make_five_questions, make_quiz


class FlakyGradingService(DummyGradingService):
    """Fails the first *failures* submissions, then grades normally."""

    def __init__(self, failures: int = 1) -> None:
        super().__init__()
        self._failures = failures

    async def submit(self, quiz_id: int, payload: SubmissionPayload):
        if self._failures:
            self._failures -= 1
            self.calls += 1
            raise SubmissionError("Grading Service error 503", status_code=503)
        return await super().submit(quiz_id, payload)


def _build_service(clock: FakeClock, grading: DummyGradingService | None = None) -> AttemptService:
    content = InMemoryContentProvider()
    questions = make_five_questions()
    content.add_quiz(make_quiz(max_attempts=2), questions)
    content.add_quiz(make_quiz(id=8, title="Empty"), [])
    grading = grading or DummyGradingService()
    grading.register_quiz(7, questions, {1: 0, 2: True, 3: "mitochondria", 4: [0, 2]})
    return AttemptService(content, grading, clock=clock, tick_interval=0)


@pytest_asyncio.fixture
async def api(clock: FakeClock) -> AsyncIterator[tuple[AsyncClient, AttemptService]]:
    service = _build_service(clock)
    fastapi_app.dependency_overrides[get_attempt_service] = lambda: service
    async with AsyncClient(
        transport=ASGITransport(app=fastapi_app), base_url="http://test"
    ) as client:
        yield client, service
    service.shutdown()
    fastapi_app.dependency_overrides.clear()


async def _start(client: AsyncClient, quiz_id: int = 7, user: str = "alice") -> dict:
    response = await client.post(f"/api/v1/quizzes/{quiz_id}/sessions", json={"user_id": user})
    assert response.status_code == 201, response.text
    return response.json()


# ---------------------------------------------------------------------------
# start / read
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_start_session(api) -> None:
    client, _ = api
    data = await _start(client)
    assert data["status"] == "in_progress"
    assert data["total_questions"] == 5
    assert data["current_index"] == 0
    assert data["current_question"]["id"] == 1
    assert data["remaining_seconds"] == pytest.approx(120)


@pytest.mark.asyncio
async def test_start_conflict_and_unknown_quiz(api) -> None:
    client, _ = api
    await _start(client)
    again = await client.post("/api/v1/quizzes/7/sessions", json={"user_id": "alice"})
    assert again.status_code == 409

    missing = await client.post("/api/v1/quizzes/99/sessions", json={"user_id": "alice"})
    assert missing.status_code == 404

    empty = await client.post("/api/v1/quizzes/8/sessions", json={"user_id": "alice"})
    assert empty.status_code == 422


@pytest.mark.asyncio
async def test_attempt_limit_is_forbidden(api) -> None:
    client, _ = api
    for _ in range(2):
        data = await _start(client)
        await client.post(f"/api/v1/sessions/{data['session_id']}/abandon")
    third = await client.post("/api/v1/quizzes/7/sessions", json={"user_id": "alice"})
    assert third.status_code == 403


@pytest.mark.asyncio
async def test_get_unknown_session(api) -> None:
    client, _ = api
    response = await client.get("/api/v1/sessions/does-not-exist")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_get_session_after_deadline_auto_submits(api, clock: FakeClock) -> None:
    client, _ = api
    sid = (await _start(client))["session_id"]
    await client.put(f"/api/v1/sessions/{sid}/answers/1", json={"value": 0})
    clock.advance(121)

    data = (await client.get(f"/api/v1/sessions/{sid}")).json()
    assert data["status"] == "completed"
    assert data["remaining_seconds"] == 0

    results = (await client.get(f"/api/v1/sessions/{sid}/results")).json()
    assert results["correct_count"] == 1
    assert results["time_spent_seconds"] == 120


# ---------------------------------------------------------------------------
# answers / flags / navigation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_set_answer_and_reject_bad_shape(api) -> None:
    client, _ = api
    sid = (await _start(client))["session_id"]

    ok = await client.put(f"/api/v1/sessions/{sid}/answers/4", json={"value": [2, 0, 2]})
    assert ok.status_code == 200
    assert ok.json() == {"question_id": 4, "value": [0, 2], "answered": True}

    bad = await client.put(f"/api/v1/sessions/{sid}/answers/1", json={"value": [0, 1]})
    assert bad.status_code == 422
    assert "single_choice" in bad.json()["detail"]

    unknown = await client.put(f"/api/v1/sessions/{sid}/answers/42", json={"value": 0})
    assert unknown.status_code == 422

    data = (await client.get(f"/api/v1/sessions/{sid}")).json()
    assert data["answered_count"] == 1


@pytest.mark.asyncio
async def test_toggle_flag(api) -> None:
    client, _ = api
    sid = (await _start(client))["session_id"]
    first = await client.post(f"/api/v1/sessions/{sid}/flags/3")
    assert first.json() == {"question_id": 3, "flagged": True}
    data = (await client.get(f"/api/v1/sessions/{sid}")).json()
    assert data["flagged"] == [3]
    second = await client.post(f"/api/v1/sessions/{sid}/flags/3")
    assert second.json()["flagged"] is False


@pytest.mark.asyncio
async def test_navigation(api) -> None:
    client, _ = api
    sid = (await _start(client))["session_id"]

    moved = await client.post(f"/api/v1/sessions/{sid}/navigate", json={"direction": "next"})
    assert moved.json()["moved"] is True
    assert moved.json()["current_index"] == 1

    jump = await client.post(f"/api/v1/sessions/{sid}/navigate", json={"index": 4})
    assert jump.json()["current_question"]["type"] == "essay"

    past_end = await client.post(f"/api/v1/sessions/{sid}/navigate", json={"index": 5})
    assert past_end.json()["moved"] is False
    assert past_end.json()["current_index"] == 4

    nothing = await client.post(f"/api/v1/sessions/{sid}/navigate", json={})
    assert nothing.status_code == 422


# ---------------------------------------------------------------------------
# submit / results / abandon
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_submit_declined_with_unanswered(api) -> None:
    client, service = api
    sid = (await _start(client))["session_id"]
    await client.put(f"/api/v1/sessions/{sid}/answers/1", json={"value": 0})

    response = await client.post(
        f"/api/v1/sessions/{sid}/submit", json={"confirm_unanswered": False}
    )
    body = response.json()
    assert response.status_code == 200
    assert body["submitted"] is False
    assert body["status"] == "in_progress"
    assert body["unanswered_count"] == 4
    assert service.get(sid).outcome is None


@pytest.mark.asyncio
async def test_submit_and_results(api) -> None:
    client, _ = api
    sid = (await _start(client))["session_id"]
    for qid, value in ((1, 0), (2, True), (3, "Mitochondria"), (4, [0, 2]), (5, "They divide.")):
        await client.put(f"/api/v1/sessions/{sid}/answers/{qid}", json={"value": value})

    response = await client.post(f"/api/v1/sessions/{sid}/submit")
    body = response.json()
    assert body["submitted"] is True
    assert body["status"] == "completed"
    assert body["results"]["score"] == 5
    assert body["results"]["max_score"] == 10
    assert body["results"]["passed"] is False
    assert body["results"]["tier"] == "fail"

    again = await client.post(f"/api/v1/sessions/{sid}/submit")
    assert again.json()["results"] == body["results"]

    results = await client.get(f"/api/v1/sessions/{sid}/results")
    assert results.status_code == 200
    assert results.json()["incorrect_count"] == 1


@pytest.mark.asyncio
async def test_results_before_submit_conflict(api) -> None:
    client, _ = api
    sid = (await _start(client))["session_id"]
    response = await client.get(f"/api/v1/sessions/{sid}/results")
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_submit_failure_then_retry(clock: FakeClock) -> None:
    grading = FlakyGradingService(failures=1)
    service = _build_service(clock, grading)
    fastapi_app.dependency_overrides[get_attempt_service] = lambda: service
    try:
        async with AsyncClient(
            transport=ASGITransport(app=fastapi_app), base_url="http://test"
        ) as client:
            sid = (await _start(client))["session_id"]
            failed = await client.post(f"/api/v1/sessions/{sid}/submit")
            assert failed.status_code == 502

            state = (await client.get(f"/api/v1/sessions/{sid}")).json()
            assert state["status"] == "error"

            retried = await client.post(f"/api/v1/sessions/{sid}/submit")
            assert retried.status_code == 200
            assert retried.json()["status"] == "completed"
            assert grading.calls == 2
    finally:
        service.shutdown()
        fastapi_app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_abandon(api) -> None:
    client, _ = api
    sid = (await _start(client))["session_id"]
    response = await client.post(f"/api/v1/sessions/{sid}/abandon")
    assert response.status_code == 200
    assert response.json()["status"] == "abandoned"

    again = await client.post(f"/api/v1/sessions/{sid}/abandon")
    assert again.status_code == 409

    locked = await client.put(f"/api/v1/sessions/{sid}/answers/1", json={"value": 0})
    assert locked.status_code == 422


@pytest.mark.asyncio
async def test_start_with_content_provider_down_is_bad_gateway(clock: FakeClock) -> None:
    content = HttpContentProvider(
        "https://content.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(503)),
    )
    service = AttemptService(content, DummyGradingService(), clock=clock, tick_interval=0)
    fastapi_app.dependency_overrides[get_attempt_service] = lambda: service
    try:
        async with AsyncClient(
            transport=ASGITransport(app=fastapi_app), base_url="http://test"
        ) as client:
            response = await client.post("/api/v1/quizzes/7/sessions", json={"user_id": "alice"})
        assert response.status_code == 502
        assert "Content Provider" in response.json()["detail"]
        assert service.registry.attempts_used(7, "alice") == 0
    finally:
        await service.aclose()
        fastapi_app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_shutdown_closes_service_clients(clock: FakeClock, monkeypatch: pytest.MonkeyPatch) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(503))
    content = HttpContentProvider("https://content.test", transport=transport)
    grading = HttpGradingService("https://grading.test", transport=transport)
    service = AttemptService(content, grading, clock=clock, tick_interval=0)
    monkeypatch.setattr(sessions_routes, "_service", service)

    await shutdown_attempt_service()

    assert sessions_routes._service is None
    assert content._client.is_closed
    assert grading._client.is_closed
