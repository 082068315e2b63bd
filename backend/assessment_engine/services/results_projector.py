"""
Results projector: GradedResult + Quiz → display-ready ResultSummary.

Pure: no I/O, no clock, same input gives the same summary.
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, Field

from assessment_engine.core.config import settings
from assessment_engine.domain.models import GradedResult, Quiz


class PerformanceTier(str, enum.Enum):
    excellent = "excellent"
    great     = "great"
    good      = "good"
    fail      = "fail"


_MESSAGES: dict[PerformanceTier, str] = {
    PerformanceTier.excellent: "Excellent work! Outstanding performance.",
    PerformanceTier.great:     "Great job! You performed very well.",
    PerformanceTier.good:      "Good work! You passed the quiz.",
    PerformanceTier.fail: (
        "You didn't reach the passing score. "
        "Consider reviewing the material and trying again."
    ),
}


class ResultSummary(BaseModel):
    score: float
    max_score: float
    percentage: float
    passed: bool
    passing_score_pct: float
    tier: PerformanceTier
    message: str
    correct_count: int
    incorrect_count: int
    total_questions: int
    time_spent_seconds: int | None = None
    time_spent_display: str | None = None
    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    can_retake: bool = False


def format_duration(seconds: int) -> str:
    """``3725`` → ``"1h 2m 5s"``; ``125`` → ``"2m 5s"``; ``5`` → ``"5s"``."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def performance_tier(percentage: float, passing_score_pct: float) -> PerformanceTier:
    if percentage < passing_score_pct:
        return PerformanceTier.fail
    if percentage >= 90:
        return PerformanceTier.excellent
    if percentage >= 80:
        return PerformanceTier.great
    return PerformanceTier.good


def _strengths(
    correct: int,
    total: int,
    time_spent: int | None,
    efficient_time_seconds: int,
) -> list[str]:
    out: list[str] = []
    if total and correct > total * 0.8:
        out.append("Excellent overall understanding")
    if time_spent is not None and time_spent < efficient_time_seconds:
        out.append("Efficient time management")
    if correct > 0:
        out.append(f"Correctly answered {correct} questions")
    return out


def _improvements(
    passed: bool,
    missed: int,
    time_spent: int | None,
    slow_time_seconds: int,
) -> list[str]:
    out: list[str] = []
    if not passed:
        out.append("Review material to reach passing score")
    if missed > 0:
        out.append(f"Focus on {missed} missed questions")
    if time_spent is not None and time_spent > slow_time_seconds:
        out.append("Consider reviewing for faster completion")
    return out


def _can_retake(quiz: Quiz, passed: bool, attempts_used: int | None) -> bool:
    if passed:
        return False
    if quiz.max_attempts is None:
        return True
    if attempts_used is None:
        return quiz.max_attempts > 1
    return attempts_used < quiz.max_attempts


def project(
    result: GradedResult,
    quiz: Quiz,
    *,
    time_spent_seconds: int | None = None,
    attempts_used: int | None = None,
    efficient_time_seconds: int | None = None,
    slow_time_seconds: int | None = None,
) -> ResultSummary:
    """Build the summary shown after an attempt.

    Args:
        result:             Grading Service response.
        quiz:               The quiz that was taken (passing score, attempts).
        time_spent_seconds: From the submitted payload; time insights are
                            skipped when None.
        attempts_used:      Attempts the student has started, for ``can_retake``.
    """
    efficient = settings.efficient_time_seconds if efficient_time_seconds is None else efficient_time_seconds
    slow = settings.slow_time_seconds if slow_time_seconds is None else slow_time_seconds

    percentage = result.resolved_percentage()
    passed = percentage >= quiz.passing_score_pct
    tier = performance_tier(percentage, quiz.passing_score_pct)

    total = len(result.graded_answers)
    correct = sum(1 for a in result.graded_answers if a.is_correct)
    missed = total - correct

    return ResultSummary(
        score=result.score,
        max_score=result.max_score,
        percentage=percentage,
        passed=passed,
        passing_score_pct=quiz.passing_score_pct,
        tier=tier,
        message=_MESSAGES[tier],
        correct_count=correct,
        incorrect_count=missed,
        total_questions=total,
        time_spent_seconds=time_spent_seconds,
        time_spent_display=(
            format_duration(time_spent_seconds) if time_spent_seconds is not None else None
        ),
        strengths=_strengths(correct, total, time_spent_seconds, efficient),
        improvements=_improvements(passed, missed, time_spent_seconds, slow),
        can_retake=_can_retake(quiz, passed, attempts_used),
    )
