"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table and uses relationships where appropriate.
Timestamps are naive UTC because SQLite does not keep tzinfo.
"""

from typing import Any, List, Optional
from sqlalchemy import Column, JSON, UniqueConstraint
from sqlmodel import SQLModel, Field, Relationship
from datetime import datetime, date, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(SQLModel, table=True):
    """A registered user.

    Fields:
    - `email`: unique login name, stored lower-cased
    - `password_hash`: hashed password string (never store plaintext)
    - `role`: `user` or `admin`
    - `total_points`: running gamification balance
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, nullable=False, unique=True)
    first_name: str
    last_name: str
    phone: Optional[str] = None
    avatar: Optional[str] = None
    password_hash: str
    role: str = Field(default="user")
    status: str = Field(default="active")
    total_points: int = 0
    last_login: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class SubscriptionPlan(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    slug: str = Field(index=True, unique=True)
    description: Optional[str] = None
    duration_days: int = 30
    price: float = 0.0
    features: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    is_popular: bool = False
    is_active: bool = True


class Subscription(SQLModel, table=True):
    """A user's subscription to a plan.

    Only `status == 'active'` rows whose `end_date` lies in the future
    grant access to subscriber routes.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    plan_id: int = Field(foreign_key="subscriptionplan.id")
    status: str = Field(default="pending")
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)


class Course(SQLModel, table=True):
    """A published or draft course in the catalog."""
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    slug: str = Field(index=True, unique=True)
    short_description: Optional[str] = None
    description: Optional[str] = None
    level: Optional[str] = None
    price: float = 0.0
    is_free: bool = False
    is_published: bool = True
    is_featured: bool = False
    total_lessons: int = 0
    total_enrollments: int = 0
    created_at: datetime = Field(default_factory=utcnow)


class CourseModule(SQLModel, table=True):
    """An ordered section of a course grouping lessons."""
    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key="course.id", index=True)
    title: str
    sort_order: int = 0
    is_published: bool = True


class Lesson(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    module_id: int = Field(foreign_key="coursemodule.id", index=True)
    title: str
    type: str = Field(default="video")
    content: Optional[str] = None
    sort_order: int = 0
    is_published: bool = True
    is_free_preview: bool = False


class Quiz(SQLModel, table=True):
    """A quiz attached to a lesson.

    `max_attempts == 0` means attempts are unlimited.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    lesson_id: int = Field(foreign_key="lesson.id", index=True)
    title: str
    description: Optional[str] = None
    passing_score: int = 70
    max_attempts: int = 0
    time_limit: Optional[int] = None
    questions: List["QuizQuestion"] = Relationship(back_populates="quiz")


class QuizQuestion(SQLModel, table=True):
    """A question inside a quiz.

    `correct_answer` holds either a scalar (single choice) or a list
    (multi-select); `options` is the list shown to the learner.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_id: int = Field(foreign_key="quiz.id", index=True)
    question: str
    type: str = Field(default="single")
    options: List[Any] = Field(default_factory=list, sa_column=Column(JSON))
    correct_answer: Any = Field(default=None, sa_column=Column(JSON))
    points: int = 1
    sort_order: int = 0
    quiz: Optional[Quiz] = Relationship(back_populates="questions")


class QuizAttempt(SQLModel, table=True):
    """An immutable record of one scoring run."""
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    quiz_id: int = Field(foreign_key="quiz.id", index=True)
    score: int
    passed: bool
    answers: dict = Field(default_factory=dict, sa_column=Column(JSON))
    time_taken: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)


class Enrollment(SQLModel, table=True):
    """A user's registration in, and progress record for, a course."""
    __table_args__ = (UniqueConstraint("user_id", "course_id"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    course_id: int = Field(foreign_key="course.id", index=True)
    status: str = Field(default="enrolled")
    progress_percent: float = 0.0
    completed_lessons: int = 0
    enrolled_at: datetime = Field(default_factory=utcnow)
    last_accessed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class LessonProgress(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("user_id", "lesson_id"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    lesson_id: int = Field(foreign_key="lesson.id", index=True)
    status: str = Field(default="not_started")
    watch_time: int = 0
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)


class Certificate(SQLModel, table=True):
    """Issued once per user and course."""
    __table_args__ = (UniqueConstraint("user_id", "course_id"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    course_id: int = Field(foreign_key="course.id")
    certificate_number: str = Field(unique=True)
    issued_at: datetime = Field(default_factory=utcnow)


class Goal(SQLModel, table=True):
    """A personal goal owned by one user.

    `progress_percent` and `status` are derived from the milestones
    whenever any exist; deleting a goal deletes its milestones.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    target_date: Optional[date] = None
    reminder_frequency: str = Field(default="weekly")
    is_private: bool = True
    status: str = Field(default="active")
    progress_percent: float = 0.0
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    milestones: List["Milestone"] = Relationship(
        back_populates="goal",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "Milestone.sort_order"},
    )
    checkins: List["GoalCheckin"] = Relationship(
        back_populates="goal",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class Milestone(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    goal_id: int = Field(foreign_key="goal.id", index=True)
    title: str
    description: Optional[str] = None
    target_date: Optional[date] = None
    sort_order: int = 0
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    goal: Optional[Goal] = Relationship(back_populates="milestones")


class GoalCheckin(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    goal_id: int = Field(foreign_key="goal.id", index=True)
    note: Optional[str] = None
    mood: Optional[str] = None
    progress_update: Optional[float] = None
    created_at: datetime = Field(default_factory=utcnow)
    goal: Optional[Goal] = Relationship(back_populates="checkins")


class PointsTransaction(SQLModel, table=True):
    """Ledger row for every points award."""
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    points: int
    reason: str
    created_at: datetime = Field(default_factory=utcnow)


class Badge(SQLModel, table=True):
    """Earned automatically once a learner's balance reaches `points_required`."""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    slug: str = Field(index=True, unique=True)
    description: Optional[str] = None
    icon: Optional[str] = None
    points_required: int = 0
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class UserBadge(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("user_id", "badge_id"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    badge_id: int = Field(foreign_key="badge.id", index=True)
    earned_at: datetime = Field(default_factory=utcnow)


class Achievement(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    slug: str = Field(index=True, unique=True)
    description: Optional[str] = None
    icon: Optional[str] = None
    type: str = "lessons_completed"
    target_value: int = 1
    points_reward: int = 0
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class UserAchievement(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("user_id", "achievement_id"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    achievement_id: int = Field(foreign_key="achievement.id", index=True)
    current_value: int = 0
    is_completed: bool = False
    completed_at: Optional[datetime] = None


class AccountabilityAssignment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    partner_id: int = Field(foreign_key="user.id")
    status: str = Field(default="active")
    notes: Optional[str] = None
    assigned_at: datetime = Field(default_factory=utcnow)


class Conversation(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    participant_1: int = Field(foreign_key="user.id", index=True)
    participant_2: int = Field(foreign_key="user.id", index=True)
    last_message_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)


class Message(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    conversation_id: int = Field(foreign_key="conversation.id", index=True)
    sender_id: int = Field(foreign_key="user.id")
    content: str
    type: str = Field(default="text")
    is_read: bool = False
    read_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)


class AiChatMessage(SQLModel, table=True):
    """One turn of an AI tutor conversation (`role` is user or assistant)."""
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    session_id: str = Field(index=True)
    role: str
    content: str
    context: dict = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)
