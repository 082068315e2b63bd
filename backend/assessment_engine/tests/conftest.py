from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from assessment_engine.domain.models import GradedAnswer, GradedResult, Question, Quiz


class FakeClock:
    """Manually advanced epoch clock for deterministic timing tests."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_quiz(**overrides: Any) -> Quiz:
    fields: dict[str, Any] = {
        "id": 7,
        "title": "Cell Biology",
        "time_limit_seconds": 120,
        "passing_score_pct": 70,
        "max_attempts": None,
        "total_points": 3,
    }
    fields.update(overrides)
    return Quiz(**fields)


def make_questions() -> list[Question]:
    """Three questions: single_choice, true_false, short_answer."""
    return [
        Question(id=1, order=1, type="single_choice", text="Where is DNA stored?",
                 options=["Nucleus", "Ribosome", "Membrane", "Vacuole"]),
        Question(id=2, order=2, type="true_false", text="Mitochondria make ATP."),
        Question(id=3, order=3, type="short_answer", text="Name the powerhouse of the cell."),
    ]


def make_five_questions() -> list[Question]:
    return make_questions() + [
        Question(id=4, order=4, type="multi_select", text="Which are organelles?",
                 options=["Nucleus", "Protein", "Golgi body", "Glucose"], points=2),
        Question(id=5, order=5, type="essay", text="Describe mitosis.", points=5),
    ]


def make_result(percentage: float = 75.0, correct: int = 3, total: int = 4) -> GradedResult:
    return GradedResult(
        score=correct,
        max_score=total,
        percentage=percentage,
        graded_answers=[
            GradedAnswer(question_id=i + 1, is_correct=i < correct,
                         points_earned=1 if i < correct else 0, max_points=1)
            for i in range(total)
        ],
    )


def make_grading(result: GradedResult | None = None, side_effect: Any = None) -> MagicMock:
    mock = MagicMock()
    mock.submit = AsyncMock(return_value=result or make_result(), side_effect=side_effect)
    return mock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
