import logging
from typing import Annotated

from fastapi import APIRouter, Body, Depends, HTTPException, Path, status

from assessment_engine.api.schemas import (
    AnswerOut,
    AnswerRequest,
    FlagOut,
    NavigateOut,
    NavigateRequest,
    SessionOut,
    StartSessionRequest,
    SubmitOut,
    SubmitRequest,
)
from assessment_engine.core.errors import (
    AttemptLimitError,
    ContentNotFoundError,
    ContentUnavailableError,
    NoQuestionsError,
    SessionConflictError,
    SessionNotFoundError,
    SubmissionError,
)
from assessment_engine.services.attempt_service import AttemptService, SessionNotCompletedError
from assessment_engine.services.content_client import get_content_provider
from assessment_engine.services.grading_client import get_grading_service
from assessment_engine.services.results_projector import ResultSummary
from assessment_engine.session.controller import SessionController

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sessions"])

_service: AttemptService | None = None


# ---------------------------------------------------------------------------
# Injectable dependency providers
# ---------------------------------------------------------------------------

def get_attempt_service() -> AttemptService:
    global _service
    if _service is None:
        _service = AttemptService(get_content_provider(), get_grading_service())
    return _service


async def shutdown_attempt_service() -> None:
    global _service
    if _service is not None:
        service, _service = _service, None
        service.shutdown()
        await service.aclose()


ServiceDep = Annotated[AttemptService, Depends(get_attempt_service)]


def _controller(service: AttemptService, session_id: str) -> SessionController:
    try:
        return service.get(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


def _session_out(controller: SessionController) -> SessionOut:
    snap = controller.snapshot()
    return SessionOut(
        session_id=snap.session_id,
        quiz_id=snap.quiz_id,
        status=snap.status,
        current_index=snap.current_index,
        total_questions=snap.total_questions,
        current_question=controller.current_question(),
        remaining_seconds=snap.remaining_seconds,
        answered_count=snap.answered_count,
        unanswered_count=snap.unanswered_count,
        progress_pct=controller.progress_pct(),
        flagged=sorted(snap.flagged),
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/quizzes/{quiz_id}/sessions",
    response_model=SessionOut,
    status_code=status.HTTP_201_CREATED,
    summary="Start a timed attempt",
)
async def start_session_endpoint(
    quiz_id: Annotated[int, Path()],
    request: Annotated[StartSessionRequest, Body()],
    service: ServiceDep,
) -> SessionOut:
    try:
        controller = await service.start_attempt(quiz_id, request.user_id)
    except ContentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except SessionConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except AttemptLimitError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    except NoQuestionsError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    except ContentUnavailableError as exc:
        logger.error("start failed quiz=%d: %s", quiz_id, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Content Provider error: {exc}",
        )
    return _session_out(controller)


@router.get("/sessions/{session_id}", response_model=SessionOut)
async def get_session_endpoint(session_id: str, service: ServiceDep) -> SessionOut:
    controller = _controller(service, session_id)
    await controller.tick()
    return _session_out(controller)


@router.put("/sessions/{session_id}/answers/{question_id}", response_model=AnswerOut)
async def set_answer_endpoint(
    session_id: str,
    question_id: int,
    request: AnswerRequest,
    service: ServiceDep,
) -> AnswerOut:
    controller = _controller(service, session_id)
    outcome = controller.set_answer(question_id, request.value)
    if not outcome.accepted:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(outcome.error),
        )
    return AnswerOut(
        question_id=question_id,
        value=outcome.value.to_wire(),
        answered=outcome.value.is_answered,
    )


@router.post("/sessions/{session_id}/flags/{question_id}", response_model=FlagOut)
async def toggle_flag_endpoint(
    session_id: str,
    question_id: int,
    service: ServiceDep,
) -> FlagOut:
    controller = _controller(service, session_id)
    outcome = controller.toggle_flag(question_id)
    if not outcome.accepted:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(outcome.error),
        )
    return FlagOut(question_id=question_id, flagged=outcome.value)


@router.post("/sessions/{session_id}/navigate", response_model=NavigateOut)
async def navigate_endpoint(
    session_id: str,
    request: NavigateRequest,
    service: ServiceDep,
) -> NavigateOut:
    controller = _controller(service, session_id)
    if request.index is not None:
        moved = controller.go_to(request.index)
    elif request.direction == "next":
        moved = controller.next()
    elif request.direction == "previous":
        moved = controller.previous()
    else:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Provide either index or direction",
        )
    return NavigateOut(
        moved=moved,
        current_index=controller.current_index(),
        current_question=controller.current_question(),
    )


@router.post("/sessions/{session_id}/submit", response_model=SubmitOut)
async def submit_endpoint(
    session_id: str,
    service: ServiceDep,
    request: Annotated[SubmitRequest, Body()] = SubmitRequest(),
) -> SubmitOut:
    controller = _controller(service, session_id)
    try:
        await controller.submit(confirm=lambda _unanswered: request.confirm_unanswered)
    except SubmissionError as exc:
        logger.error("submit failed session=%s: %s", session_id, exc, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Grading Service error: {exc}",
        )

    results = service.results(session_id) if controller.outcome else None
    return SubmitOut(
        submitted=controller.outcome is not None,
        status=controller.status,
        unanswered_count=controller.unanswered_count(),
        results=results,
    )


@router.post("/sessions/{session_id}/abandon", response_model=SessionOut)
async def abandon_endpoint(session_id: str, service: ServiceDep) -> SessionOut:
    controller = _controller(service, session_id)
    if not controller.abandon():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Session {session_id} is {controller.status.value}; only in-progress attempts can be abandoned",
        )
    return _session_out(controller)


@router.get("/sessions/{session_id}/results", response_model=ResultSummary)
async def results_endpoint(session_id: str, service: ServiceDep) -> ResultSummary:
    _controller(service, session_id)
    try:
        return service.results(session_id)
    except SessionNotCompletedError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
