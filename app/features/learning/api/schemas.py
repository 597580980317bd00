from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

OptionIndex = Annotated[int, Field(ge=0)]


class QuizSubmission(BaseModel):
    """Body for POST /quiz-attempt. Never persisted; only the score is."""

    model_config = ConfigDict(populate_by_name=True)

    lesson_id: UUID = Field(..., alias="lessonId")
    parish_id: UUID = Field(..., alias="parishId")
    answers: list[OptionIndex] = Field(
        ..., description="Selected option index per question, in presentation order"
    )


class QuizAttemptResponse(BaseModel):
    ok: bool = True
    score: int
    total: int


class VideoProgressUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    lesson_id: UUID = Field(..., alias="lessonId")
    parish_id: UUID = Field(..., alias="parishId")
    percent_watched: int = Field(..., ge=0, le=100, alias="percentWatched")
    last_position_seconds: int = Field(..., ge=0, alias="lastPositionSeconds")
    completed: bool


class LessonCompletionResponse(BaseModel):
    lesson_id: str
    completed: bool
    video_completed: bool
    best_score: int
    passing_score: int
