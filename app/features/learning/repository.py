"""
Persistence helpers for quizzes, quiz attempts and video progress.
"""

from app.db.helpers import execute_query, fetch_all, fetch_one, fetch_val
from app.db.pool import DatabasePoolManager
from app.features.learning.domain import Question
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class LearningRepository:
    """Raw SQL helpers backing the quiz and progress routes."""

    def __init__(self, db: DatabasePoolManager):
        self.db = db

    async def fetch_questions(self, lesson_id: str) -> list[Question]:
        query = """
            SELECT id, correct_option_index, sort_order
            FROM questions
            WHERE lesson_id = %s
            ORDER BY sort_order ASC
        """

        rows = await fetch_all(self.db, query, (lesson_id,))
        return [
            Question(
                id=str(row["id"]),
                correct_option_index=row["correct_option_index"],
                sort_order=row["sort_order"],
            )
            for row in rows
        ]

    async def record_quiz_attempt(
        self, parish_id: str, clerk_user_id: str, lesson_id: str, answers: list[int], score: int
    ) -> None:
        query = """
            INSERT INTO quiz_attempts (parish_id, clerk_user_id, lesson_id, answers, score)
            VALUES (%s, %s, %s, %s, %s)
        """

        await execute_query(self.db, query, (parish_id, clerk_user_id, lesson_id, answers, score))
        logger.info(
            "Quiz attempt recorded",
            parish_id=parish_id,
            lesson_id=lesson_id,
            score=score,
        )

    async def get_best_score(self, lesson_id: str, parish_id: str, clerk_user_id: str) -> int:
        query = """
            SELECT MAX(score)
            FROM quiz_attempts
            WHERE lesson_id = %s AND parish_id = %s AND clerk_user_id = %s
        """

        best = await fetch_val(self.db, query, (lesson_id, parish_id, clerk_user_id))
        return best or 0

    async def get_passing_score(self, lesson_id: str) -> int | None:
        return await fetch_val(
            self.db, "SELECT passing_score FROM lessons WHERE id = %s", (lesson_id,)
        )

    async def is_video_completed(self, lesson_id: str, parish_id: str, clerk_user_id: str) -> bool:
        query = """
            SELECT completed
            FROM video_progress
            WHERE lesson_id = %s AND parish_id = %s AND clerk_user_id = %s
        """

        row = await fetch_one(self.db, query, (lesson_id, parish_id, clerk_user_id))
        return bool(row and row["completed"])

    async def is_enrolled_for_lesson(self, lesson_id: str, parish_id: str, clerk_user_id: str) -> bool:
        query = """
            SELECT 1
            FROM lessons l
            JOIN modules m ON m.id = l.module_id
            JOIN enrollments e ON e.course_id = m.course_id
            WHERE l.id = %s AND e.parish_id = %s AND e.clerk_user_id = %s
            LIMIT 1
        """

        row = await fetch_one(self.db, query, (lesson_id, parish_id, clerk_user_id))
        return row is not None

    async def upsert_video_progress(
        self,
        parish_id: str,
        clerk_user_id: str,
        lesson_id: str,
        percent_watched: int,
        last_position_seconds: int,
        completed: bool,
    ) -> None:
        query = """
            INSERT INTO video_progress (
                parish_id, clerk_user_id, lesson_id,
                percent_watched, last_position_seconds, completed, updated_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, NOW())
            ON CONFLICT (parish_id, clerk_user_id, lesson_id)
            DO UPDATE SET
                percent_watched = EXCLUDED.percent_watched,
                last_position_seconds = EXCLUDED.last_position_seconds,
                completed = EXCLUDED.completed,
                updated_at = NOW()
        """

        await execute_query(
            self.db,
            query,
            (parish_id, clerk_user_id, lesson_id, percent_watched, last_position_seconds, completed),
        )
