"""
Domain models for quiz grading and lesson completion.

Plain dataclasses so the grading functions stay free of persistence and
HTTP concerns.
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Question:
    """A quiz question as seen by the grader; only the answer key matters."""

    correct_option_index: int
    id: str | None = None
    sort_order: int = 0


@dataclass(frozen=True, slots=True)
class GradeResult:
    score: int  # percentage, 0-100
    total: int  # number of questions evaluated


@dataclass(frozen=True, slots=True)
class LessonCompletionInput:
    """Composed at read time from the video-progress row and the best quiz score."""

    video_completed: bool
    best_score: int
    passing_score: int
