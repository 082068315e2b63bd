"""Domain types for quiz attempts.

Quiz, Question, SubmissionPayload and GradedResult cross the wire to the
Content Provider and Grading Service, so they are pydantic models that
speak camelCase on the wire and snake_case in Python. Answer values are a
tagged union of small frozen dataclasses, one per question shape.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    model_validator,
)
from pydantic.alias_generators import to_camel


class QuestionType(str, enum.Enum):
    single_choice = "single_choice"
    multi_select  = "multi_select"
    short_answer  = "short_answer"
    essay         = "essay"
    true_false    = "true_false"


CHOICE_TYPES = frozenset({QuestionType.single_choice, QuestionType.multi_select})


class SessionStatus(str, enum.Enum):
    not_started = "not_started"
    in_progress = "in_progress"
    submitting  = "submitting"
    completed   = "completed"
    expired     = "expired"
    error       = "error"
    abandoned   = "abandoned"


# ---------------------------------------------------------------------------
# Wire models
# ---------------------------------------------------------------------------

class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Quiz(_WireModel):
    id: int
    title: str
    time_limit_seconds: int | None = Field(default=None, gt=0)
    passing_score_pct: float = Field(default=70, ge=0, le=100)
    max_attempts: int | None = Field(default=None, ge=1)
    total_points: int = Field(default=0, ge=0)


class Question(_WireModel):
    id: int
    order: int = 0
    type: QuestionType
    text: str = ""
    options: list[str] = Field(default_factory=list)
    points: int = Field(default=1, ge=0)

    @model_validator(mode="after")
    def _choice_types_need_options(self) -> "Question":
        if self.type in CHOICE_TYPES and not self.options:
            raise ValueError(f"{self.type.value} question {self.id} has no options")
        return self


AnswerWireValue = Union[StrictBool, StrictInt, list[StrictInt], StrictStr]


class SubmissionPayload(_WireModel):
    session_id: str
    answers: dict[int, AnswerWireValue] = Field(default_factory=dict)
    time_spent_seconds: int = Field(..., ge=0)
    auto_submitted: bool = False


class GradedAnswer(_WireModel):
    question_id: int
    answer: Any = None
    is_correct: bool
    points_earned: float = 0
    max_points: float = 0
    correct_answer: Any = None
    explanation: str | None = None


class GradedResult(_WireModel):
    score: float
    max_score: float
    percentage: float | None = None
    passed: bool | None = None
    graded_answers: list[GradedAnswer] = Field(default_factory=list)

    def resolved_percentage(self) -> float:
        """Percentage reported by the grader, or score / max_score when absent."""
        if self.percentage is not None:
            return self.percentage
        if self.max_score <= 0:
            return 0.0
        return round(self.score / self.max_score * 100, 1)


# ---------------------------------------------------------------------------
# Answer values: one variant per question shape
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ChoiceAnswer:
    """single_choice: index into Question.options."""

    index: int

    @property
    def is_answered(self) -> bool:
        return True

    def to_wire(self) -> int:
        return self.index


@dataclass(frozen=True, slots=True)
class BooleanAnswer:
    value: bool

    @property
    def is_answered(self) -> bool:
        return True

    def to_wire(self) -> bool:
        return self.value


@dataclass(frozen=True, slots=True)
class MultiSelectAnswer:
    indices: frozenset[int]

    @property
    def is_answered(self) -> bool:
        return bool(self.indices)

    def to_wire(self) -> list[int]:
        return sorted(self.indices)


@dataclass(frozen=True, slots=True)
class TextAnswer:
    """short_answer and essay. Blank text does not count as answered."""

    text: str

    @property
    def is_answered(self) -> bool:
        return bool(self.text.strip())

    def to_wire(self) -> str:
        return self.text


AnswerValue = Union[ChoiceAnswer, BooleanAnswer, MultiSelectAnswer, TextAnswer]

ANSWER_VARIANTS: dict[QuestionType, type] = {
    QuestionType.single_choice: ChoiceAnswer,
    QuestionType.true_false:    BooleanAnswer,
    QuestionType.multi_select:  MultiSelectAnswer,
    QuestionType.short_answer:  TextAnswer,
    QuestionType.essay:         TextAnswer,
}
