"""
Domain subpackage for the learning feature.
"""

from .models import GradeResult, LessonCompletionInput, Question

__all__ = ["GradeResult", "LessonCompletionInput", "Question"]
