"""Pydantic request schemas used by the API.

Schemas keep API input shapes stable and provide validation for
controller handlers and tests. Update payloads are patch models: every
field is optional and only the fields a client actually sent are
applied (`model_dump(exclude_unset=True)`).
"""

from datetime import date
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class RegisterIn(BaseModel):
    """Payload for user registration."""
    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(min_length=8)
    phone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class ChangePasswordIn(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8)


class MilestoneDraft(BaseModel):
    """Milestone supplied inline when creating a goal; blank titles are skipped."""
    title: Optional[str] = None
    description: Optional[str] = None
    target_date: Optional[date] = None


class GoalCreateIn(BaseModel):
    title: str = Field(min_length=3, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = None
    target_date: Optional[date] = None
    reminder_frequency: str = "weekly"
    is_private: bool = True
    milestones: List[MilestoneDraft] = Field(default_factory=list)


class GoalUpdateIn(BaseModel):
    title: Optional[str] = Field(default=None, min_length=3, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = None
    target_date: Optional[date] = None
    reminder_frequency: Optional[str] = None
    is_private: Optional[bool] = None
    status: Optional[Literal["active", "paused", "completed", "abandoned"]] = None
    progress_percent: Optional[float] = None


class CheckinIn(BaseModel):
    note: Optional[str] = None
    mood: Optional[str] = None
    progress_update: Optional[float] = None


class MilestoneIn(BaseModel):
    title: str = Field(min_length=3, max_length=255)
    description: Optional[str] = None
    target_date: Optional[date] = None


class MilestoneUpdateIn(BaseModel):
    title: Optional[str] = Field(default=None, min_length=3, max_length=255)
    description: Optional[str] = None
    target_date: Optional[date] = None


class ReorderIn(BaseModel):
    order: List[int] = Field(default_factory=list)


class LessonProgressIn(BaseModel):
    watch_time: int = Field(default=0, ge=0)


class QuizSubmitIn(BaseModel):
    """Answers keyed by question id; values are scalars or lists."""
    answers: Dict[str, Any] = Field(default_factory=dict)
    time_taken: Optional[int] = None


class ChatIn(BaseModel):
    message: str = Field(min_length=1, max_length=2000)
    session_id: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    course_id: Optional[int] = None
    lesson_id: Optional[int] = None


class MessageIn(BaseModel):
    content: str = Field(min_length=1, max_length=2000)
    conversation_id: Optional[int] = None
    type: str = "text"
