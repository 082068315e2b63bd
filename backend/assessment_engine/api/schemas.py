from typing import Any, Literal

from pydantic import BaseModel, Field

from assessment_engine.domain.models import Question, SessionStatus
from assessment_engine.services.results_projector import ResultSummary


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class StartSessionRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=255, examples=["student-42"])


class SessionOut(BaseModel):
    session_id: str
    quiz_id: int
    status: SessionStatus
    current_index: int
    total_questions: int
    current_question: Question | None = None
    remaining_seconds: float | None = None
    answered_count: int
    unanswered_count: int
    progress_pct: float
    flagged: list[int] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Answers / flags / navigation
# ---------------------------------------------------------------------------

class AnswerRequest(BaseModel):
    value: Any = Field(
        ...,
        description=(
            "Option index (single_choice), boolean (true_false), list of option "
            "indices (multi_select) or text (short_answer / essay)"
        ),
    )


class AnswerOut(BaseModel):
    question_id: int
    value: Any
    answered: bool


class FlagOut(BaseModel):
    question_id: int
    flagged: bool


class NavigateRequest(BaseModel):
    index: int | None = Field(default=None, description="Jump to a 0-based question index")
    direction: Literal["next", "previous"] | None = None


class NavigateOut(BaseModel):
    moved: bool
    current_index: int
    current_question: Question | None = None


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

class SubmitRequest(BaseModel):
    confirm_unanswered: bool = Field(
        default=True,
        description="False cancels the submit when any question is unanswered",
    )


class SubmitOut(BaseModel):
    submitted: bool
    status: SessionStatus
    unanswered_count: int
    results: ResultSummary | None = None
