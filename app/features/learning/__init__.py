"""
Learning feature package: quiz grading, video progress and lesson completion.
"""

from .api.router import router as learning_router  # noqa: F401
from .grading import grade_quiz, is_lesson_complete  # noqa: F401
