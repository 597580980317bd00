"""
Learner-facing routes: quiz submission, video progress and lesson completion.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.auth.roles import require_parish_role
from app.auth.verify import current_user_id
from app.db.helpers import DatabaseError
from app.db.pool import DatabasePoolManager, get_db
from app.features.learning.api.schemas import (
    LessonCompletionResponse,
    QuizAttemptResponse,
    QuizSubmission,
    VideoProgressUpdate,
)
from app.features.learning.domain import LessonCompletionInput
from app.features.learning.grading import grade_quiz, is_lesson_complete
from app.features.learning.repository import LearningRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["learning"])


def get_learning_repository(db: DatabasePoolManager = Depends(get_db)) -> LearningRepository:
    return LearningRepository(db)


@router.post("/quiz-attempt", response_model=QuizAttemptResponse)
async def submit_quiz_attempt(
    payload: QuizSubmission,
    user_id: str = Depends(current_user_id),
    db: DatabasePoolManager = Depends(get_db),
    repository: LearningRepository = Depends(get_learning_repository),
):
    """Grade a submission against the lesson's answer key and store the score."""
    lesson_id = str(payload.lesson_id)
    parish_id = str(payload.parish_id)
    await require_parish_role(db, user_id, parish_id, "student")

    try:
        questions = await repository.fetch_questions(lesson_id)
    except DatabaseError as e:
        logger.warning("Question fetch failed", lesson_id=lesson_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Could not fetch questions"
        ) from e

    grade = grade_quiz(payload.answers, questions)

    try:
        await repository.record_quiz_attempt(
            parish_id, user_id, lesson_id, payload.answers, grade.score
        )
    except DatabaseError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return QuizAttemptResponse(score=grade.score, total=grade.total)


@router.post("/progress")
async def record_video_progress(
    payload: VideoProgressUpdate,
    user_id: str = Depends(current_user_id),
    db: DatabasePoolManager = Depends(get_db),
    repository: LearningRepository = Depends(get_learning_repository),
):
    lesson_id = str(payload.lesson_id)
    parish_id = str(payload.parish_id)
    await require_parish_role(db, user_id, parish_id, "student")

    if not await repository.is_enrolled_for_lesson(lesson_id, parish_id, user_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Enrollment required for this lesson"
        )

    try:
        await repository.upsert_video_progress(
            parish_id,
            user_id,
            lesson_id,
            payload.percent_watched,
            payload.last_position_seconds,
            payload.completed,
        )
    except DatabaseError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return {"ok": True}


@router.get("/lessons/{lesson_id}/completion", response_model=LessonCompletionResponse)
async def get_lesson_completion(
    lesson_id: UUID,
    parish_id: UUID = Query(..., alias="parishId"),
    user_id: str = Depends(current_user_id),
    db: DatabasePoolManager = Depends(get_db),
    repository: LearningRepository = Depends(get_learning_repository),
):
    """Recompute completion from the stored facts; completion itself is never stored."""
    lesson_key = str(lesson_id)
    parish_key = str(parish_id)
    await require_parish_role(db, user_id, parish_key, "student")

    try:
        passing_score = await repository.get_passing_score(lesson_key)
        if passing_score is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lesson not found")

        completion = LessonCompletionInput(
            video_completed=await repository.is_video_completed(lesson_key, parish_key, user_id),
            best_score=await repository.get_best_score(lesson_key, parish_key, user_id),
            passing_score=passing_score,
        )
    except DatabaseError as e:
        logger.warning("Lesson completion lookup failed", lesson_id=lesson_key, error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return LessonCompletionResponse(
        lesson_id=lesson_key,
        completed=is_lesson_complete(completion),
        video_completed=completion.video_completed,
        best_score=completion.best_score,
        passing_score=completion.passing_score,
    )
