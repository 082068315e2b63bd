"""Per-attempt answers and flags.

Raw values coming from the UI are coerced into the AnswerValue variant that
matches the question's type. Anything that does not fit is rejected with
ValidationError before the store is touched.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from assessment_engine.core.errors import ValidationError
from assessment_engine.domain.models import (
    ANSWER_VARIANTS,
    AnswerValue,
    AnswerWireValue,
    BooleanAnswer,
    ChoiceAnswer,
    MultiSelectAnswer,
    Question,
    QuestionType,
    TextAnswer,
)

logger = logging.getLogger(__name__)


def _is_index(value: Any) -> bool:
    # bool is an int subclass; True must not pass as option 1
    return isinstance(value, int) and not isinstance(value, bool)


def _check_index(question: Question, index: int) -> None:
    if not 0 <= index < len(question.options):
        raise ValidationError(
            f"Option {index} out of range for question {question.id} "
            f"({len(question.options)} options)",
            question_id=question.id,
        )


def coerce_answer(question: Question, raw: Any) -> AnswerValue:
    """Build the AnswerValue for *question* from *raw* or raise ValidationError."""
    expected = ANSWER_VARIANTS[question.type]
    if isinstance(raw, (ChoiceAnswer, BooleanAnswer, MultiSelectAnswer, TextAnswer)):
        if not isinstance(raw, expected):
            raise ValidationError(
                f"{type(raw).__name__} does not fit {question.type.value} "
                f"question {question.id}",
                question_id=question.id,
            )
        raw = raw.to_wire()

    qtype = question.type

    if qtype == QuestionType.single_choice:
        if not _is_index(raw):
            raise ValidationError(
                f"single_choice question {question.id} expects one option index, "
                f"got {type(raw).__name__}",
                question_id=question.id,
            )
        _check_index(question, raw)
        return ChoiceAnswer(raw)

    if qtype == QuestionType.true_false:
        if not isinstance(raw, bool):
            raise ValidationError(
                f"true_false question {question.id} expects a boolean, "
                f"got {type(raw).__name__}",
                question_id=question.id,
            )
        return BooleanAnswer(raw)

    if qtype == QuestionType.multi_select:
        if isinstance(raw, (str, bytes)) or not isinstance(raw, Iterable):
            raise ValidationError(
                f"multi_select question {question.id} expects a collection of "
                f"option indices, got {type(raw).__name__}",
                question_id=question.id,
            )
        indices = list(raw)
        for index in indices:
            if not _is_index(index):
                raise ValidationError(
                    f"multi_select question {question.id} got non-integer "
                    f"option {index!r}",
                    question_id=question.id,
                )
            _check_index(question, index)
        return MultiSelectAnswer(frozenset(indices))

    # short_answer / essay
    if not isinstance(raw, str):
        raise ValidationError(
            f"{qtype.value} question {question.id} expects text, "
            f"got {type(raw).__name__}",
            question_id=question.id,
        )
    return TextAnswer(raw)


class AnswerStore:
    """question id → current answer, plus the set of flagged question ids."""

    def __init__(self, questions: list[Question]) -> None:
        self._questions: dict[int, Question] = {q.id: q for q in questions}
        self._answers: dict[int, AnswerValue] = {}
        self._flagged: set[int] = set()

    def _question(self, question_id: int) -> Question:
        question = self._questions.get(question_id)
        if question is None:
            raise ValidationError(
                f"Question {question_id} is not part of this quiz",
                question_id=question_id,
            )
        return question

    # ------------------------------------------------------------------
    def set_answer(self, question_id: int, raw: Any) -> AnswerValue:
        """Validate and store; last write wins."""
        value = coerce_answer(self._question(question_id), raw)
        self._answers[question_id] = value
        logger.debug("Answer stored question=%d value=%r", question_id, value)
        return value

    def get_answer(self, question_id: int) -> AnswerValue | None:
        self._question(question_id)
        return self._answers.get(question_id)

    def all_answers(self) -> dict[int, AnswerValue]:
        return dict(self._answers)

    def wire_answers(self) -> dict[int, AnswerWireValue]:
        """Answers in the shape the Grading Service expects, unanswered ones dropped."""
        return {
            qid: value.to_wire()
            for qid, value in self._answers.items()
            if value.is_answered
        }

    def is_answered(self, question_id: int) -> bool:
        value = self._answers.get(question_id)
        return value is not None and value.is_answered

    def answered_count(self) -> int:
        return sum(1 for value in self._answers.values() if value.is_answered)

    def unanswered_count(self) -> int:
        return len(self._questions) - self.answered_count()

    # ------------------------------------------------------------------
    def toggle_flag(self, question_id: int) -> bool:
        """Flip the flag for *question_id*; returns the new state."""
        self._question(question_id)
        if question_id in self._flagged:
            self._flagged.discard(question_id)
            return False
        self._flagged.add(question_id)
        return True

    def is_flagged(self, question_id: int) -> bool:
        return question_id in self._flagged

    def flagged(self) -> frozenset[int]:
        return frozenset(self._flagged)
