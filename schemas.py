"""
Request/response schemas for the Kannada learning API.

Each ORM-backed response model reads straight from the SQLAlchemy row
(``from_attributes``), so endpoints can return model instances directly.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


class ActionState(BaseModel):
    """Outcome of a business operation: either data or a human-readable failure."""
    is_success: bool
    message: str
    data: Optional[Any] = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> "ActionState":
        return cls(is_success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str) -> "ActionState":
        return cls(is_success=False, message=message)


# --------- Progress ---------
class ProgressOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    lesson_id: Optional[str] = None
    xp: int
    streak: int
    badges: List[str]
    created_at: datetime
    updated_at: datetime


class ActivityInput(BaseModel):
    lesson_id: Optional[str] = Field(None, examples=["3f1c0a2e-7b0d-4d7e-9a51-2c5e0f4b8d11"])


# XP, streak and badges only change through recorded activities
class ProgressCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    lesson_id: Optional[str] = None


class ProgressUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    lesson_id: Optional[str] = None


# --------- Lessons ---------
Level = Literal["beginner", "intermediate", "advanced"]


class LessonCreate(BaseModel):
    level: Level
    title: str = Field(..., min_length=1, examples=["Greetings"])
    content: Dict[str, Any] = Field(..., examples=[{"vocab": [{"kn": "ನಮಸ್ಕಾರ", "en": "Hello"}]}])


class LessonUpdate(BaseModel):
    level: Optional[Level] = None
    title: Optional[str] = None
    content: Optional[Dict[str, Any]] = None


class LessonOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    level: Level
    title: str
    content: Dict[str, Any]
    created_at: datetime
    updated_at: datetime
    locked: bool = False


# --------- Exercises ---------
ExerciseType = Literal["quiz", "writing", "speaking"]


class ExerciseCreate(BaseModel):
    lesson_id: Optional[str] = None
    type: Optional[ExerciseType] = None
    content: Optional[Dict[str, Any]] = None


class ExerciseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    lesson_id: str
    type: ExerciseType
    content: Dict[str, Any]
    created_at: datetime


class SubmissionInput(BaseModel):
    response: str = Field("", examples=["ನಮಸ್ಕಾರ"])


class SubmissionResult(BaseModel):
    score: int
    feedback: str
    progress: Optional[ProgressOut] = None


# --------- Chat ---------
class ChatMessageInput(BaseModel):
    content: str = ""


class ChatMessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    content: str
    created_at: datetime


# --------- Profiles ---------
class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    membership: Literal["free", "pro"]
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None


# --------- AI ---------
class GrammarInput(BaseModel):
    text: str = Field("", examples=["ನಾನು ಶಾಲೆಗೆ ಹೋಗುತ್ತೇನೆ"])
