"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
subscriptions, courses, enrollments, quizzes, goals, messaging).
Repositories return SQLModel objects and only `flush` so that new rows
get their ids; services own the commit so that one logical operation
(e.g. completing a milestone and recomputing its goal) is written
together.
"""

from typing import List, Optional, Tuple
from sqlmodel import Session, select, or_, and_
from sqlalchemy import func
from . import models
from .models import utcnow


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.flush()
        return user

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by email or `None` if not found."""
        stmt = select(models.User).where(models.User.email == email)
        return self.session.exec(stmt).first()

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    def add_points(self, user_id: int, points: int) -> None:
        """Increment the points balance inside the UPDATE statement itself."""
        user = self.get(user_id)
        if user is None:
            return
        user.total_points = models.User.total_points + points
        self.session.add(user)
        self.session.flush()
        self.session.refresh(user)

    def leaderboard(self, limit: int) -> List[models.User]:
        stmt = (
            select(models.User)
            .where(models.User.status == "active", models.User.role == "user")
            .order_by(models.User.total_points.desc(), models.User.id)
            .limit(limit)
        )
        return self.session.exec(stmt).all()

    def rank_for_points(self, points: int) -> int:
        stmt = select(func.count()).select_from(models.User).where(
            models.User.total_points > points,
            models.User.status == "active",
            models.User.role == "user",
        )
        return self.session.exec(stmt).one() + 1

    def count(self) -> int:
        return self.session.exec(select(func.count()).select_from(models.User)).one()


class SubscriptionRepository:
    """Subscription and plan lookups."""
    def __init__(self, session: Session):
        self.session = session

    def active_for_user(self, user_id: int) -> Optional[models.Subscription]:
        """Return the active subscription with the latest end date, if any.

        A subscription is active when its status is `active` and its
        `end_date` is strictly in the future.
        """
        stmt = (
            select(models.Subscription)
            .where(
                models.Subscription.user_id == user_id,
                models.Subscription.status == "active",
                models.Subscription.end_date > utcnow(),
            )
            .order_by(models.Subscription.end_date.desc())
        )
        return self.session.exec(stmt).first()

    def get_plan(self, plan_id: int) -> Optional[models.SubscriptionPlan]:
        return self.session.get(models.SubscriptionPlan, plan_id)

    def list_plans(self) -> List[models.SubscriptionPlan]:
        stmt = (
            select(models.SubscriptionPlan)
            .where(models.SubscriptionPlan.is_active == True)  # noqa: E712
            .order_by(models.SubscriptionPlan.price)
        )
        return self.session.exec(stmt).all()

    def count_active(self) -> int:
        stmt = select(func.count()).select_from(models.Subscription).where(
            models.Subscription.status == "active",
            models.Subscription.end_date > utcnow(),
        )
        return self.session.exec(stmt).one()


class CourseRepository:
    """Course catalog queries."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, course_id: int) -> Optional[models.Course]:
        return self.session.get(models.Course, course_id)

    def get_published(self, course_id: int) -> Optional[models.Course]:
        course = self.get(course_id)
        return course if course and course.is_published else None

    def get_by_slug(self, slug: str) -> Optional[models.Course]:
        """Return a published course by slug."""
        stmt = select(models.Course).where(models.Course.slug == slug, models.Course.is_published == True)  # noqa: E712
        return self.session.exec(stmt).first()

    def list_published(self, search: Optional[str], level: Optional[str], featured: bool,
                       offset: int, limit: int) -> Tuple[int, List[models.Course]]:
        """Return `(total, page)` for the public catalog listing."""
        conds = [models.Course.is_published == True]  # noqa: E712
        if search:
            like = f"%{search}%"
            conds.append(or_(models.Course.title.like(like), models.Course.description.like(like)))
        if level:
            conds.append(models.Course.level == level)
        if featured:
            conds.append(models.Course.is_featured == True)  # noqa: E712
        total = self.session.exec(select(func.count()).select_from(models.Course).where(*conds)).one()
        stmt = (
            select(models.Course)
            .where(*conds)
            .order_by(models.Course.is_featured.desc(), models.Course.created_at.desc(), models.Course.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return total, self.session.exec(stmt).all()

    def modules(self, course_id: int) -> List[models.CourseModule]:
        stmt = (
            select(models.CourseModule)
            .where(models.CourseModule.course_id == course_id, models.CourseModule.is_published == True)  # noqa: E712
            .order_by(models.CourseModule.sort_order, models.CourseModule.id)
        )
        return self.session.exec(stmt).all()

    def lessons_for_module(self, module_id: int) -> List[models.Lesson]:
        stmt = (
            select(models.Lesson)
            .where(models.Lesson.module_id == module_id, models.Lesson.is_published == True)  # noqa: E712
            .order_by(models.Lesson.sort_order, models.Lesson.id)
        )
        return self.session.exec(stmt).all()

    def count_published_lessons(self, course_id: int) -> int:
        stmt = (
            select(func.count())
            .select_from(models.Lesson)
            .join(models.CourseModule, models.Lesson.module_id == models.CourseModule.id)
            .where(
                models.CourseModule.course_id == course_id,
                models.Lesson.is_published == True,  # noqa: E712
                models.CourseModule.is_published == True,  # noqa: E712
            )
        )
        return self.session.exec(stmt).one()

    def count(self) -> int:
        return self.session.exec(select(func.count()).select_from(models.Course)).one()


class LessonRepository:
    """Lesson lookups and per-user lesson progress."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, lesson_id: int) -> Optional[models.Lesson]:
        return self.session.get(models.Lesson, lesson_id)

    def with_course(self, lesson_id: int) -> Optional[Tuple[models.Lesson, models.CourseModule, models.Course]]:
        """Return `(lesson, module, course)` for a published lesson."""
        stmt = (
            select(models.Lesson, models.CourseModule, models.Course)
            .join(models.CourseModule, models.Lesson.module_id == models.CourseModule.id)
            .join(models.Course, models.CourseModule.course_id == models.Course.id)
            .where(models.Lesson.id == lesson_id, models.Lesson.is_published == True)  # noqa: E712
        )
        return self.session.exec(stmt).first()

    def get_progress(self, user_id: int, lesson_id: int) -> Optional[models.LessonProgress]:
        stmt = select(models.LessonProgress).where(
            models.LessonProgress.user_id == user_id,
            models.LessonProgress.lesson_id == lesson_id,
        )
        return self.session.exec(stmt).first()

    def mark_completed(self, user_id: int, lesson_id: int) -> models.LessonProgress:
        """Upsert a completed progress row, keeping an existing `completed_at`."""
        progress = self.get_progress(user_id, lesson_id)
        if progress is None:
            progress = models.LessonProgress(user_id=user_id, lesson_id=lesson_id)
        progress.status = "completed"
        if progress.completed_at is None:
            progress.completed_at = utcnow()
        self.session.add(progress)
        self.session.flush()
        return progress

    def record_watch_time(self, user_id: int, lesson_id: int, watch_time: int) -> models.LessonProgress:
        """Keep the larger watch time; a not-started lesson moves to in progress."""
        progress = self.get_progress(user_id, lesson_id)
        if progress is None:
            progress = models.LessonProgress(user_id=user_id, lesson_id=lesson_id)
        progress.watch_time = max(progress.watch_time or 0, watch_time)
        if progress.status == "not_started":
            progress.status = "in_progress"
        self.session.add(progress)
        self.session.flush()
        return progress

    def progress_for_course(self, user_id: int, course_id: int) -> List[Tuple[models.LessonProgress, models.Lesson]]:
        stmt = (
            select(models.LessonProgress, models.Lesson)
            .join(models.Lesson, models.LessonProgress.lesson_id == models.Lesson.id)
            .join(models.CourseModule, models.Lesson.module_id == models.CourseModule.id)
            .where(models.LessonProgress.user_id == user_id, models.CourseModule.course_id == course_id)
            .order_by(models.CourseModule.sort_order, models.Lesson.sort_order)
        )
        return self.session.exec(stmt).all()

    def quiz_for_lesson(self, lesson_id: int) -> Optional[models.Quiz]:
        return self.session.exec(select(models.Quiz).where(models.Quiz.lesson_id == lesson_id)).first()


class EnrollmentRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_for(self, user_id: int, course_id: int) -> Optional[models.Enrollment]:
        stmt = select(models.Enrollment).where(
            models.Enrollment.user_id == user_id,
            models.Enrollment.course_id == course_id,
        )
        return self.session.exec(stmt).first()

    def create(self, enrollment: models.Enrollment) -> models.Enrollment:
        self.session.add(enrollment)
        self.session.flush()
        return enrollment

    def list_for_user(self, user_id: int, status: Optional[str], offset: int,
                      limit: int) -> Tuple[int, List[Tuple[models.Enrollment, models.Course]]]:
        conds = [models.Enrollment.user_id == user_id]
        if status:
            conds.append(models.Enrollment.status == status)
        total = self.session.exec(select(func.count()).select_from(models.Enrollment).where(*conds)).one()
        stmt = (
            select(models.Enrollment, models.Course)
            .join(models.Course, models.Enrollment.course_id == models.Course.id)
            .where(*conds)
            .order_by(models.Enrollment.last_accessed_at.desc(), models.Enrollment.enrolled_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return total, self.session.exec(stmt).all()

    def count(self) -> int:
        return self.session.exec(select(func.count()).select_from(models.Enrollment)).one()


class CertificateRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_for(self, user_id: int, course_id: int) -> Optional[models.Certificate]:
        stmt = select(models.Certificate).where(
            models.Certificate.user_id == user_id,
            models.Certificate.course_id == course_id,
        )
        return self.session.exec(stmt).first()

    def create(self, certificate: models.Certificate) -> models.Certificate:
        self.session.add(certificate)
        self.session.flush()
        return certificate

    def list_for_user(self, user_id: int) -> List[Tuple[models.Certificate, models.Course]]:
        stmt = (
            select(models.Certificate, models.Course)
            .join(models.Course, models.Certificate.course_id == models.Course.id)
            .where(models.Certificate.user_id == user_id)
            .order_by(models.Certificate.issued_at.desc())
        )
        return self.session.exec(stmt).all()


class QuizRepository:
    """Quizzes, their questions and attempt history."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, quiz_id: int) -> Optional[models.Quiz]:
        return self.session.get(models.Quiz, quiz_id)

    def course_id_for(self, quiz: models.Quiz) -> Optional[int]:
        stmt = (
            select(models.CourseModule.course_id)
            .join(models.Lesson, models.Lesson.module_id == models.CourseModule.id)
            .where(models.Lesson.id == quiz.lesson_id)
        )
        return self.session.exec(stmt).first()

    def questions(self, quiz_id: int) -> List[models.QuizQuestion]:
        stmt = (
            select(models.QuizQuestion)
            .where(models.QuizQuestion.quiz_id == quiz_id)
            .order_by(models.QuizQuestion.sort_order, models.QuizQuestion.id)
        )
        return self.session.exec(stmt).all()

    def count_attempts(self, user_id: int, quiz_id: int) -> int:
        stmt = select(func.count()).select_from(models.QuizAttempt).where(
            models.QuizAttempt.user_id == user_id,
            models.QuizAttempt.quiz_id == quiz_id,
        )
        return self.session.exec(stmt).one()

    def add_attempt(self, attempt: models.QuizAttempt) -> models.QuizAttempt:
        self.session.add(attempt)
        self.session.flush()
        return attempt

    def recent_attempts(self, user_id: int, quiz_id: int, limit: int = 5) -> List[models.QuizAttempt]:
        stmt = (
            select(models.QuizAttempt)
            .where(models.QuizAttempt.user_id == user_id, models.QuizAttempt.quiz_id == quiz_id)
            .order_by(models.QuizAttempt.created_at.desc(), models.QuizAttempt.id.desc())
            .limit(limit)
        )
        return self.session.exec(stmt).all()

    def attempts_for_course(self, user_id: int, course_id: int) -> List[Tuple[models.QuizAttempt, models.Quiz]]:
        stmt = (
            select(models.QuizAttempt, models.Quiz)
            .join(models.Quiz, models.QuizAttempt.quiz_id == models.Quiz.id)
            .join(models.Lesson, models.Quiz.lesson_id == models.Lesson.id)
            .join(models.CourseModule, models.Lesson.module_id == models.CourseModule.id)
            .where(models.QuizAttempt.user_id == user_id, models.CourseModule.course_id == course_id)
            .order_by(models.QuizAttempt.created_at.desc(), models.QuizAttempt.id.desc())
        )
        return self.session.exec(stmt).all()


class GoalRepository:
    """Goals and milestones owned by a user."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, goal_id: int) -> Optional[models.Goal]:
        return self.session.get(models.Goal, goal_id)

    def get_owned(self, goal_id: int, user_id: int) -> Optional[models.Goal]:
        goal = self.get(goal_id)
        return goal if goal and goal.user_id == user_id else None

    def create(self, goal: models.Goal) -> models.Goal:
        self.session.add(goal)
        self.session.flush()
        return goal

    def delete(self, goal: models.Goal) -> None:
        """Delete a goal; milestones and check-ins go with it."""
        self.session.delete(goal)
        self.session.flush()

    def list_for_user(self, user_id: int, status: Optional[str], offset: int,
                      limit: int) -> Tuple[int, List[models.Goal]]:
        conds = [models.Goal.user_id == user_id]
        if status:
            conds.append(models.Goal.status == status)
        total = self.session.exec(select(func.count()).select_from(models.Goal).where(*conds)).one()
        stmt = (
            select(models.Goal)
            .where(*conds)
            .order_by(models.Goal.created_at.desc(), models.Goal.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return total, self.session.exec(stmt).all()

    def milestone_stats(self, goal_id: int) -> Tuple[int, int]:
        """Return `(total, completed)` milestone counts for a goal."""
        total = self.session.exec(
            select(func.count()).select_from(models.Milestone).where(models.Milestone.goal_id == goal_id)
        ).one()
        completed = self.session.exec(
            select(func.count()).select_from(models.Milestone).where(
                models.Milestone.goal_id == goal_id,
                models.Milestone.is_completed == True,  # noqa: E712
            )
        ).one()
        return total, completed

    def milestones(self, goal_id: int) -> List[models.Milestone]:
        stmt = (
            select(models.Milestone)
            .where(models.Milestone.goal_id == goal_id)
            .order_by(models.Milestone.sort_order, models.Milestone.created_at, models.Milestone.id)
        )
        return self.session.exec(stmt).all()

    def recent_checkins(self, goal_id: int, limit: int = 10) -> List[models.GoalCheckin]:
        stmt = (
            select(models.GoalCheckin)
            .where(models.GoalCheckin.goal_id == goal_id)
            .order_by(models.GoalCheckin.created_at.desc(), models.GoalCheckin.id.desc())
            .limit(limit)
        )
        return self.session.exec(stmt).all()

    def add_checkin(self, checkin: models.GoalCheckin) -> models.GoalCheckin:
        self.session.add(checkin)
        self.session.flush()
        return checkin

    def get_milestone_owned(self, milestone_id: int, user_id: int) -> Optional[models.Milestone]:
        stmt = (
            select(models.Milestone)
            .join(models.Goal, models.Milestone.goal_id == models.Goal.id)
            .where(models.Milestone.id == milestone_id, models.Goal.user_id == user_id)
        )
        return self.session.exec(stmt).first()

    def next_sort_order(self, goal_id: int) -> int:
        current = self.session.exec(
            select(func.max(models.Milestone.sort_order)).where(models.Milestone.goal_id == goal_id)
        ).one()
        return (current if current is not None else -1) + 1

    def add_milestone(self, milestone: models.Milestone) -> models.Milestone:
        self.session.add(milestone)
        self.session.flush()
        return milestone

    def delete_milestone(self, milestone: models.Milestone) -> None:
        self.session.delete(milestone)
        self.session.flush()


class PointsRepository:
    """Points ledger."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, user_id: int, points: int, reason: str) -> models.PointsTransaction:
        tx = models.PointsTransaction(user_id=user_id, points=points, reason=reason)
        self.session.add(tx)
        self.session.flush()
        return tx

    def history(self, user_id: int, offset: int, limit: int) -> Tuple[int, List[models.PointsTransaction]]:
        cond = models.PointsTransaction.user_id == user_id
        total = self.session.exec(select(func.count()).select_from(models.PointsTransaction).where(cond)).one()
        stmt = (
            select(models.PointsTransaction)
            .where(cond)
            .order_by(models.PointsTransaction.created_at.desc(), models.PointsTransaction.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return total, self.session.exec(stmt).all()


class BadgeRepository:
    """Badges, achievements and what each user has earned of them."""
    def __init__(self, session: Session):
        self.session = session

    def for_user(self, user_id: int) -> List[Tuple[models.Badge, Optional[models.UserBadge]]]:
        stmt = (
            select(models.Badge, models.UserBadge)
            .join(models.UserBadge, and_(
                models.UserBadge.badge_id == models.Badge.id,
                models.UserBadge.user_id == user_id,
            ), isouter=True)
            .where(models.Badge.is_active == True)  # noqa: E712
            .order_by(models.Badge.points_required, models.Badge.name)
        )
        return self.session.exec(stmt).all()

    def unearned_within(self, user_id: int, points: int) -> List[models.Badge]:
        """Active badges with a threshold the balance reaches that the user lacks."""
        earned = select(models.UserBadge.badge_id).where(models.UserBadge.user_id == user_id)
        stmt = (
            select(models.Badge)
            .where(
                models.Badge.is_active == True,  # noqa: E712
                models.Badge.points_required > 0,
                models.Badge.points_required <= points,
                models.Badge.id.not_in(earned),
            )
            .order_by(models.Badge.points_required, models.Badge.id)
        )
        return self.session.exec(stmt).all()

    def grant(self, user_id: int, badge_id: int) -> models.UserBadge:
        row = models.UserBadge(user_id=user_id, badge_id=badge_id)
        self.session.add(row)
        self.session.flush()
        return row

    def achievements_for_user(self, user_id: int) -> List[Tuple[models.Achievement, Optional[models.UserAchievement]]]:
        stmt = (
            select(models.Achievement, models.UserAchievement)
            .join(models.UserAchievement, and_(
                models.UserAchievement.achievement_id == models.Achievement.id,
                models.UserAchievement.user_id == user_id,
            ), isouter=True)
            .where(models.Achievement.is_active == True)  # noqa: E712
            .order_by(models.Achievement.points_reward.desc(), models.Achievement.id)
        )
        return self.session.exec(stmt).all()

    def achievements_of_type(self, kind: str) -> List[models.Achievement]:
        stmt = select(models.Achievement).where(
            models.Achievement.type == kind,
            models.Achievement.is_active == True,  # noqa: E712
        )
        return self.session.exec(stmt).all()

    def user_achievement(self, user_id: int, achievement_id: int) -> Optional[models.UserAchievement]:
        stmt = select(models.UserAchievement).where(
            models.UserAchievement.user_id == user_id,
            models.UserAchievement.achievement_id == achievement_id,
        )
        return self.session.exec(stmt).first()


class AccountabilityRepository:
    """Partner assignments, conversations and messages."""
    def __init__(self, session: Session):
        self.session = session

    def active_assignment(self, user_id: int) -> Optional[models.AccountabilityAssignment]:
        stmt = select(models.AccountabilityAssignment).where(
            models.AccountabilityAssignment.user_id == user_id,
            models.AccountabilityAssignment.status == "active",
        )
        return self.session.exec(stmt).first()

    def find_conversation(self, a: int, b: int) -> Optional[models.Conversation]:
        stmt = select(models.Conversation).where(or_(
            and_(models.Conversation.participant_1 == a, models.Conversation.participant_2 == b),
            and_(models.Conversation.participant_1 == b, models.Conversation.participant_2 == a),
        ))
        return self.session.exec(stmt).first()

    def conversation_for(self, conversation_id: int, user_id: int) -> Optional[models.Conversation]:
        conv = self.session.get(models.Conversation, conversation_id)
        if conv and user_id in (conv.participant_1, conv.participant_2):
            return conv
        return None

    def conversations_for(self, user_id: int) -> List[models.Conversation]:
        stmt = (
            select(models.Conversation)
            .where(or_(models.Conversation.participant_1 == user_id, models.Conversation.participant_2 == user_id))
            .order_by(models.Conversation.last_message_at.desc(), models.Conversation.id.desc())
        )
        return self.session.exec(stmt).all()

    def create_conversation(self, conv: models.Conversation) -> models.Conversation:
        self.session.add(conv)
        self.session.flush()
        return conv

    def add_message(self, message: models.Message) -> models.Message:
        self.session.add(message)
        self.session.flush()
        return message

    def last_message(self, conversation_id: int) -> Optional[models.Message]:
        stmt = (
            select(models.Message)
            .where(models.Message.conversation_id == conversation_id)
            .order_by(models.Message.created_at.desc(), models.Message.id.desc())
        )
        return self.session.exec(stmt).first()

    def unread_count(self, conversation_id: int, user_id: int) -> int:
        stmt = select(func.count()).select_from(models.Message).where(
            models.Message.conversation_id == conversation_id,
            models.Message.sender_id != user_id,
            models.Message.is_read == False,  # noqa: E712
        )
        return self.session.exec(stmt).one()

    def messages_page(self, conversation_id: int, offset: int, limit: int) -> Tuple[int, List[models.Message]]:
        """Return `(total, page)` with the page in chronological order."""
        cond = models.Message.conversation_id == conversation_id
        total = self.session.exec(select(func.count()).select_from(models.Message).where(cond)).one()
        stmt = (
            select(models.Message)
            .where(cond)
            .order_by(models.Message.created_at.desc(), models.Message.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return total, list(reversed(self.session.exec(stmt).all()))

    def mark_read(self, conversation_id: int, reader_id: int) -> int:
        stmt = select(models.Message).where(
            models.Message.conversation_id == conversation_id,
            models.Message.sender_id != reader_id,
            models.Message.is_read == False,  # noqa: E712
        )
        now = utcnow()
        unread = self.session.exec(stmt).all()
        for m in unread:
            m.is_read = True
            m.read_at = now
            self.session.add(m)
        self.session.flush()
        return len(unread)


class AiChatRepository:
    def __init__(self, session: Session):
        self.session = session

    def add(self, message: models.AiChatMessage) -> models.AiChatMessage:
        self.session.add(message)
        self.session.flush()
        return message

    def recent(self, user_id: int, session_id: str, limit: int = 10) -> List[models.AiChatMessage]:
        """Return the last `limit` turns of a session, oldest first."""
        stmt = (
            select(models.AiChatMessage)
            .where(models.AiChatMessage.user_id == user_id, models.AiChatMessage.session_id == session_id)
            .order_by(models.AiChatMessage.created_at.desc(), models.AiChatMessage.id.desc())
            .limit(limit)
        )
        return list(reversed(self.session.exec(stmt).all()))

    def session_messages(self, user_id: int, session_id: str) -> List[models.AiChatMessage]:
        stmt = (
            select(models.AiChatMessage)
            .where(models.AiChatMessage.user_id == user_id, models.AiChatMessage.session_id == session_id)
            .order_by(models.AiChatMessage.created_at, models.AiChatMessage.id)
        )
        return self.session.exec(stmt).all()

    def sessions(self, user_id: int, offset: int, limit: int) -> Tuple[int, list]:
        """Return `(total, rows)` of per-session summaries, newest first."""
        total = self.session.exec(
            select(func.count(func.distinct(models.AiChatMessage.session_id)))
            .where(models.AiChatMessage.user_id == user_id)
        ).one()
        stmt = (
            select(
                models.AiChatMessage.session_id,
                func.min(models.AiChatMessage.created_at),
                func.max(models.AiChatMessage.created_at),
                func.count(),
            )
            .where(models.AiChatMessage.user_id == user_id)
            .group_by(models.AiChatMessage.session_id)
            .order_by(func.max(models.AiChatMessage.created_at).desc())
            .offset(offset)
            .limit(limit)
        )
        rows = []
        for session_id, started_at, last_at, count in self.session.exec(stmt).all():
            first = self.session.exec(
                select(models.AiChatMessage.content)
                .where(
                    models.AiChatMessage.user_id == user_id,
                    models.AiChatMessage.session_id == session_id,
                    models.AiChatMessage.role == "user",
                )
                .order_by(models.AiChatMessage.created_at, models.AiChatMessage.id)
            ).first()
            rows.append({
                "session_id": session_id,
                "started_at": started_at,
                "last_message_at": last_at,
                "message_count": count,
                "first_message": first,
            })
        return total, rows
