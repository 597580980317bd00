"""
Quiz grading and lesson-completion rules.

Both functions are pure: no I/O, no shared state, same output for the same
input. They run inline in the quiz-submission request path.
"""

from collections.abc import Sequence

from app.features.learning.domain import GradeResult, LessonCompletionInput, Question
from app.utils.percentages import rounded_percentage


def grade_quiz(answers: Sequence[int], questions: Sequence[Question]) -> GradeResult:
    """
    Grade answers positionally against the answer key.

    `questions` must already be in presentation order (sort_order ascending).
    A missing answer counts as a miss; answers past the last question are
    ignored. The percentage is rounded half-up, so 2/3 -> 67 and 1/8 -> 13.
    """
    total = len(questions)
    if total == 0:
        return GradeResult(score=0, total=0)

    correct = sum(
        1
        for idx, question in enumerate(questions)
        if idx < len(answers) and answers[idx] == question.correct_option_index
    )

    return GradeResult(score=rounded_percentage(correct, total), total=total)


def is_lesson_complete(completion: LessonCompletionInput) -> bool:
    """A lesson is complete once the video is finished and the best score passes."""
    return completion.video_completed and completion.best_score >= completion.passing_score
