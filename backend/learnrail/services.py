"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories,
the progress aggregator, the quiz scorer and the points ledger.
Services validate ownership and state, execute domain logic and commit
once per operation; failures are raised as `ApiError` subclasses.
"""

import logging
from typing import List, Optional

from passlib.context import CryptContext
from sqlmodel import Session

from . import models, repositories
from .config import Settings
from .errors import BadRequest, Conflict, Forbidden, NotFound, Unauthenticated
from .gamification import GamificationService
from .models import utcnow
from .progress import ProgressAggregator
from .schemas import (
    ChangePasswordIn, CheckinIn, GoalCreateIn, GoalUpdateIn, LoginIn, MessageIn,
    MilestoneIn, MilestoneUpdateIn, RegisterIn,
)
from .scoring import QuizScorer
from .tokens import InvalidToken, TokenCodec, is_refresh

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

logger = logging.getLogger("learnrail.services")


def user_payload(user: models.User) -> dict:
    """Public representation of a user (never includes the hash)."""
    return user.model_dump(exclude={"password_hash", "last_login", "status"})


def _patch(data) -> dict:
    """Fields the client sent with a non-null value."""
    return {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}


def _clamp_percent(value: float) -> float:
    return min(100.0, max(0.0, float(value)))


class AuthService:
    """Registration, login and token refresh."""
    def __init__(self, session: Session, settings: Settings, codec: TokenCodec):
        self.session = session
        self.settings = settings
        self.codec = codec
        self.user_repo = repositories.UserRepository(session)

    def _tokens(self, user: models.User) -> dict:
        return {
            "token": self.codec.issue_access(user.id, user.role, self.settings.JWT_EXPIRY_SECONDS),
            "refresh_token": self.codec.issue_refresh(user.id, self.settings.JWT_REFRESH_EXPIRY_SECONDS),
        }

    def register(self, data: RegisterIn) -> dict:
        """Create a new user with a hashed password and issue both tokens."""
        if self.user_repo.get_by_email(data.email):
            raise Conflict("Email already registered")
        user = self.user_repo.create(models.User(
            email=data.email,
            first_name=data.first_name,
            last_name=data.last_name,
            phone=data.phone,
            password_hash=PWD_CTX.hash(data.password),
        ))
        self.session.commit()
        self.session.refresh(user)
        logger.info("user_registered user_id=%s", user.id)
        return {"user": user_payload(user), **self._tokens(user)}

    def authenticate(self, data: LoginIn) -> dict:
        """Verify credentials and return the user with fresh tokens."""
        # One lookup by email then verify the supplied password hash.
        user = self.user_repo.get_by_email(data.email)
        if not user or not PWD_CTX.verify(data.password, user.password_hash):
            raise Unauthenticated("Invalid email or password")
        if user.status != "active":
            raise Forbidden("Account is not active")
        user.last_login = utcnow()
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return {"user": user_payload(user), **self._tokens(user)}

    def refresh(self, refresh_token: Optional[str]) -> dict:
        """Exchange a refresh-kind token for a new token pair."""
        if not refresh_token:
            raise BadRequest("Refresh token required")
        try:
            claims = self.codec.verify(refresh_token)
        except InvalidToken:
            raise Unauthenticated("Invalid refresh token")
        user_id = claims.get("user_id")
        if not is_refresh(claims) or not isinstance(user_id, int):
            raise Unauthenticated("Invalid refresh token")
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFound("User not found")
        if user.status != "active":
            raise Forbidden("Account is not active")
        return self._tokens(user)

    def me(self, user_id: int) -> dict:
        user = self.user_repo.get(user_id)
        if not user:
            raise NotFound("User not found")
        out = user_payload(user)
        subscription = repositories.SubscriptionRepository(self.session).active_for_user(user_id)
        out["subscription"] = subscription.model_dump() if subscription else None
        assignment = repositories.AccountabilityRepository(self.session).active_assignment(user_id)
        partner = self.user_repo.get(assignment.partner_id) if assignment and subscription else None
        out["accountability_partner"] = _partner_payload(partner) if partner else None
        return out

    def change_password(self, user_id: int, data: ChangePasswordIn) -> None:
        user = self.user_repo.get(user_id)
        if not user or not PWD_CTX.verify(data.current_password, user.password_hash):
            raise BadRequest("Current password is incorrect")
        user.password_hash = PWD_CTX.hash(data.new_password)
        user.updated_at = utcnow()
        self.session.add(user)
        self.session.commit()


def _partner_payload(user: models.User) -> dict:
    return {
        "id": user.id,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "email": user.email,
        "phone": user.phone,
        "avatar": user.avatar,
    }


class CatalogService:
    """Public course catalog and subscription plans."""
    def __init__(self, session: Session):
        self.session = session
        self.course_repo = repositories.CourseRepository(session)

    def list_courses(self, search: Optional[str], level: Optional[str], featured: bool, offset: int, limit: int):
        total, courses = self.course_repo.list_published(search, level, featured, offset, limit)
        return total, [c.model_dump(exclude={"description"}) for c in courses]

    def course_detail(self, slug: str) -> dict:
        course = self.course_repo.get_by_slug(slug)
        if not course:
            raise NotFound("Course not found")
        out = course.model_dump()
        modules = []
        for m in self.course_repo.modules(course.id):
            lessons = self.course_repo.lessons_for_module(m.id)
            modules.append({
                "id": m.id,
                "title": m.title,
                "sort_order": m.sort_order,
                "lessons": [
                    {"id": l.id, "title": l.title, "type": l.type, "is_free_preview": l.is_free_preview,
                     "sort_order": l.sort_order}
                    for l in lessons
                ],
            })
        out["modules"] = modules
        return out

    def plans(self) -> List[dict]:
        return [p.model_dump() for p in repositories.SubscriptionRepository(self.session).list_plans()]


class EnrollmentService:
    def __init__(self, session: Session, settings: Settings):
        self.session = session
        self.settings = settings
        self.course_repo = repositories.CourseRepository(session)
        self.enroll_repo = repositories.EnrollmentRepository(session)

    def list_for_user(self, user_id: int, status: Optional[str], offset: int, limit: int):
        total, rows = self.enroll_repo.list_for_user(user_id, status, offset, limit)
        out = []
        for enrollment, course in rows:
            item = enrollment.model_dump()
            item.update({
                "title": course.title,
                "slug": course.slug,
                "total_lessons": course.total_lessons,
                "level": course.level,
            })
            out.append(item)
        return total, out

    def enroll(self, user_id: int, course_id: int, subscription: Optional[models.Subscription] = None) -> dict:
        """Enroll the user; paid courses need an active subscription."""
        course = self.course_repo.get_published(course_id)
        if not course:
            raise NotFound("Course not found")
        if self.enroll_repo.get_for(user_id, course_id):
            raise BadRequest("Already enrolled in this course")
        if not course.is_free:
            subscription = subscription or repositories.SubscriptionRepository(self.session).active_for_user(user_id)
            if not subscription:
                raise Forbidden("Active subscription required for this course")
        enrollment = self.enroll_repo.create(models.Enrollment(user_id=user_id, course_id=course_id))
        course.total_enrollments = models.Course.total_enrollments + 1
        self.session.add(course)
        GamificationService(self.session).award(user_id, self.settings.POINTS_ENROLL, "Enrolled in a course")
        self.session.commit()
        return {"enrollment_id": enrollment.id}

    def progress(self, user_id: int, course_id: int) -> dict:
        enrollment = self.enroll_repo.get_for(user_id, course_id)
        if not enrollment:
            raise NotFound("Enrollment not found")
        course = self.course_repo.get(course_id)
        lessons = repositories.LessonRepository(self.session).progress_for_course(user_id, course_id)
        attempts = repositories.QuizRepository(self.session).attempts_for_course(user_id, course_id)
        data = enrollment.model_dump()
        data["total_lessons"] = course.total_lessons if course else 0
        return {
            "enrollment": data,
            "lesson_progress": [
                {"lesson_id": p.lesson_id, "status": p.status, "watch_time": p.watch_time,
                 "completed_at": p.completed_at, "title": l.title, "type": l.type}
                for p, l in lessons
            ],
            "quiz_attempts": [
                {"quiz_id": a.quiz_id, "score": a.score, "passed": a.passed, "created_at": a.created_at,
                 "title": q.title, "passing_score": q.passing_score}
                for a, q in attempts
            ],
        }


class LessonService:
    def __init__(self, session: Session, settings: Settings):
        self.session = session
        self.settings = settings
        self.lesson_repo = repositories.LessonRepository(session)
        self.enroll_repo = repositories.EnrollmentRepository(session)
        self.course_repo = repositories.CourseRepository(session)

    def show(self, user_id: int, lesson_id: int) -> dict:
        found = self.lesson_repo.with_course(lesson_id)
        if not found:
            raise NotFound("Lesson not found")
        lesson, module, course = found
        enrollment = self.enroll_repo.get_for(user_id, course.id)
        if not (lesson.is_free_preview or course.is_free or enrollment):
            raise Forbidden("Enrollment required to access this lesson")
        out = lesson.model_dump()
        out.update({"course_id": course.id, "course_title": course.title, "module_title": module.title})
        progress = self.lesson_repo.get_progress(user_id, lesson_id)
        out["progress"] = (
            {"status": progress.status, "watch_time": progress.watch_time, "completed_at": progress.completed_at}
            if progress else None
        )
        if lesson.type == "quiz":
            quiz = self.lesson_repo.quiz_for_lesson(lesson_id)
            out["quiz"] = quiz.model_dump() if quiz else None
        ordered = [l for m in self.course_repo.modules(course.id) for l in self.course_repo.lessons_for_module(m.id)]
        ids = [l.id for l in ordered]
        idx = ids.index(lesson.id) if lesson.id in ids else -1
        nav = lambda l: {"id": l.id, "title": l.title, "type": l.type}
        out["prev_lesson"] = nav(ordered[idx - 1]) if idx > 0 else None
        out["next_lesson"] = nav(ordered[idx + 1]) if 0 <= idx < len(ordered) - 1 else None
        if enrollment:
            enrollment.last_accessed_at = utcnow()
            self.session.add(enrollment)
            self.session.commit()
        return out

    def complete(self, user_id: int, lesson_id: int) -> dict:
        """Mark a lesson completed and advance the enrollment.

        Completing an already completed lesson changes nothing.
        """
        found = self.lesson_repo.with_course(lesson_id)
        if not found:
            raise NotFound("Lesson not found")
        _, _, course = found
        if not self.enroll_repo.get_for(user_id, course.id):
            raise Forbidden("Enrollment required")
        result = ProgressAggregator(self.session, self.settings).complete_lesson(user_id, lesson_id)
        if not result.newly_completed:
            return {"message": "Lesson already completed"}
        GamificationService(self.session).award(user_id, self.settings.POINTS_LESSON_COMPLETE, "Completed a lesson")
        self.session.commit()
        enrollment = result.enrollment
        return {
            "completed_lessons": enrollment.completed_lessons,
            "progress_percent": enrollment.progress_percent,
            "course_completed": enrollment.status == "completed",
        }

    def record_watch_time(self, user_id: int, lesson_id: int, watch_time: int) -> dict:
        """Store the furthest watch position; a lower value never rewinds it."""
        if not self.lesson_repo.with_course(lesson_id):
            raise NotFound("Lesson not found")
        progress = self.lesson_repo.record_watch_time(user_id, lesson_id, watch_time)
        self.session.commit()
        return {"watch_time": progress.watch_time, "status": progress.status}


class QuizService:
    def __init__(self, session: Session, settings: Settings):
        self.session = session
        self.settings = settings
        self.quiz_repo = repositories.QuizRepository(session)
        self.scorer = QuizScorer(session, settings)

    def show(self, user_id: int, quiz_id: int) -> dict:
        """Quiz with its questions, without the correct answers."""
        quiz = self.quiz_repo.get(quiz_id)
        if not quiz:
            raise NotFound("Quiz not found")
        course_id = self.quiz_repo.course_id_for(quiz)
        if not repositories.EnrollmentRepository(self.session).get_for(user_id, course_id):
            raise Forbidden("Enrollment required")
        remaining = self.scorer.remaining_attempts(quiz, user_id)
        if remaining == 0:
            raise BadRequest("Maximum attempts reached")
        out = quiz.model_dump()
        out["course_id"] = course_id
        if remaining is not None:
            out["remaining_attempts"] = remaining
        out["questions"] = [
            q.model_dump(include={"id", "question", "type", "options", "points", "sort_order"})
            for q in self.quiz_repo.questions(quiz_id)
        ]
        out["previous_attempts"] = [
            a.model_dump(include={"id", "score", "passed", "time_taken", "created_at"})
            for a in self.quiz_repo.recent_attempts(user_id, quiz_id)
        ]
        return out

    def submit(self, user_id: int, quiz_id: int, answers: dict, time_taken: Optional[int]) -> dict:
        result = self.scorer.score(quiz_id, user_id, answers, time_taken)
        self.session.commit()
        return result


class GoalService:
    """Personal goals and check-ins."""
    def __init__(self, session: Session, settings: Settings):
        self.session = session
        self.settings = settings
        self.goal_repo = repositories.GoalRepository(session)
        self.aggregator = ProgressAggregator(session)

    def _owned(self, goal_id: int, user_id: int) -> models.Goal:
        goal = self.goal_repo.get_owned(goal_id, user_id)
        if not goal:
            raise NotFound("Goal not found")
        return goal

    def _summary(self, goal: models.Goal) -> dict:
        total, completed = self.goal_repo.milestone_stats(goal.id)
        out = goal.model_dump()
        out.update({"total_milestones": total, "completed_milestones": completed})
        return out

    def list_for_user(self, user_id: int, status: Optional[str], offset: int, limit: int):
        total, goals = self.goal_repo.list_for_user(user_id, status, offset, limit)
        return total, [self._summary(g) for g in goals]

    def create(self, user_id: int, data: GoalCreateIn) -> dict:
        goal = self.goal_repo.create(models.Goal(
            user_id=user_id,
            title=data.title,
            description=data.description,
            category=data.category,
            target_date=data.target_date,
            reminder_frequency=data.reminder_frequency,
            is_private=data.is_private,
        ))
        drafts = [m for m in data.milestones if m.title and m.title.strip()]
        for index, draft in enumerate(drafts):
            self.goal_repo.add_milestone(models.Milestone(
                goal_id=goal.id,
                title=draft.title,
                description=draft.description,
                target_date=draft.target_date,
                sort_order=index,
            ))
        if drafts:
            self.aggregator.recompute_goal_progress(goal.id)
        GamificationService(self.session).award(user_id, self.settings.POINTS_GOAL_CREATED, "Created a new goal")
        self.session.commit()
        self.session.refresh(goal)
        return self._summary(goal)

    def show(self, user_id: int, goal_id: int) -> dict:
        goal = self._owned(goal_id, user_id)
        out = self._summary(goal)
        out["milestones"] = [m.model_dump() for m in self.goal_repo.milestones(goal_id)]
        out["checkins"] = [c.model_dump() for c in self.goal_repo.recent_checkins(goal_id)]
        return out

    def update(self, user_id: int, goal_id: int, data: GoalUpdateIn) -> dict:
        """Apply a patch to a goal.

        While a goal has milestones its progress and its active/completed
        status are derived from them: a client-supplied `progress_percent`
        is ignored, and `status` may only pause or abandon a goal that is
        not yet complete. Asking for `active` resumes the derived status.
        Without milestones, marking a goal completed sets it to 100%.
        """
        goal = self._owned(goal_id, user_id)
        changes = _patch(data)
        if not changes:
            raise BadRequest("No fields to update")
        total, _ = self.goal_repo.milestone_stats(goal_id)
        derive = False
        if total:
            changes.pop("progress_percent", None)
            status = changes.pop("status", None)
            if status in ("completed", "active"):
                derive = True
            elif status is not None and goal.status != "completed":
                changes["status"] = status
        elif "progress_percent" in changes:
            changes["progress_percent"] = _clamp_percent(changes["progress_percent"])
        if not total and changes.get("status") == "completed":
            changes["progress_percent"] = 100.0
            if goal.status != "completed":
                goal.completed_at = utcnow()
                GamificationService(self.session).award(
                    user_id, self.settings.POINTS_GOAL_COMPLETE, f"Completed goal: {goal.title}")
        for key, value in changes.items():
            setattr(goal, key, value)
        goal.updated_at = utcnow()
        self.session.add(goal)
        self.session.flush()
        if derive:
            self.aggregator.recompute_goal_progress(goal.id)
        self.session.commit()
        self.session.refresh(goal)
        return self._summary(goal)

    def delete(self, user_id: int, goal_id: int) -> None:
        goal = self._owned(goal_id, user_id)
        self.goal_repo.delete(goal)
        self.session.commit()

    def checkin(self, user_id: int, goal_id: int, data: CheckinIn) -> None:
        goal = self._owned(goal_id, user_id)
        self.goal_repo.add_checkin(models.GoalCheckin(
            goal_id=goal_id, note=data.note, mood=data.mood, progress_update=data.progress_update,
        ))
        if data.progress_update is not None and self.goal_repo.milestone_stats(goal_id)[0] == 0:
            goal.progress_percent = _clamp_percent(data.progress_update)
            goal.updated_at = utcnow()
            self.session.add(goal)
        GamificationService(self.session).award(user_id, self.settings.POINTS_GOAL_CHECKIN, "Goal check-in")
        self.session.commit()


class MilestoneService:
    """Milestones drive goal progress: every change recomputes the goal."""
    def __init__(self, session: Session, settings: Settings):
        self.session = session
        self.settings = settings
        self.goal_repo = repositories.GoalRepository(session)
        self.aggregator = ProgressAggregator(session)

    def _owned(self, milestone_id: int, user_id: int) -> models.Milestone:
        milestone = self.goal_repo.get_milestone_owned(milestone_id, user_id)
        if not milestone:
            raise NotFound("Milestone not found")
        return milestone

    def create(self, user_id: int, goal_id: int, data: MilestoneIn) -> dict:
        if not self.goal_repo.get_owned(goal_id, user_id):
            raise NotFound("Goal not found")
        sort_order = self.goal_repo.next_sort_order(goal_id)
        milestone = self.goal_repo.add_milestone(models.Milestone(
            goal_id=goal_id,
            title=data.title,
            description=data.description,
            target_date=data.target_date,
            sort_order=sort_order,
        ))
        progress = self.aggregator.recompute_goal_progress(goal_id)
        self.session.commit()
        return {"id": milestone.id, "title": milestone.title, "sort_order": sort_order, "goal_progress": progress}

    def update(self, user_id: int, milestone_id: int, data: MilestoneUpdateIn) -> dict:
        milestone = self._owned(milestone_id, user_id)
        for key, value in _patch(data).items():
            setattr(milestone, key, value)
        self.session.add(milestone)
        self.session.commit()
        return {"id": milestone_id}

    def delete(self, user_id: int, milestone_id: int) -> float:
        milestone = self._owned(milestone_id, user_id)
        goal_id = milestone.goal_id
        self.goal_repo.delete_milestone(milestone)
        progress = self.aggregator.recompute_goal_progress(goal_id)
        self.session.commit()
        return progress

    def complete(self, user_id: int, milestone_id: int) -> dict:
        milestone = self._owned(milestone_id, user_id)
        if milestone.is_completed:
            return {"message": "Milestone already completed"}
        milestone.is_completed = True
        milestone.completed_at = utcnow()
        self.session.add(milestone)
        self.session.flush()
        progress = self.aggregator.recompute_goal_progress(milestone.goal_id)
        GamificationService(self.session).award(
            user_id, self.settings.POINTS_MILESTONE_COMPLETE, "Completed a milestone")
        self.session.commit()
        return {"milestone_completed": True, "goal_progress": progress}

    def reorder(self, user_id: int, goal_id: int, order: List[int]) -> None:
        if not self.goal_repo.get_owned(goal_id, user_id):
            raise NotFound("Goal not found")
        by_id = {m.id: m for m in self.goal_repo.milestones(goal_id)}
        for index, milestone_id in enumerate(order):
            milestone = by_id.get(milestone_id)
            if milestone is not None:
                milestone.sort_order = index
                self.session.add(milestone)
        self.session.commit()


class AccountabilityService:
    """Messaging between a learner and their accountability partner."""
    def __init__(self, session: Session):
        self.session = session
        self.repo = repositories.AccountabilityRepository(session)
        self.user_repo = repositories.UserRepository(session)

    def partner(self, user_id: int) -> dict:
        assignment = self.repo.active_assignment(user_id)
        partner = self.user_repo.get(assignment.partner_id) if assignment else None
        if not partner:
            return {
                "has_partner": False,
                "message": "No accountability partner assigned yet. Contact support to request one.",
            }
        data = _partner_payload(partner)
        data.update({"assignment_id": assignment.id, "assigned_at": assignment.assigned_at, "notes": assignment.notes})
        return {"has_partner": True, "partner": data}

    def conversations(self, user_id: int) -> List[dict]:
        out = []
        for conv in self.repo.conversations_for(user_id):
            other_id = conv.participant_2 if conv.participant_1 == user_id else conv.participant_1
            other = self.user_repo.get(other_id)
            last = self.repo.last_message(conv.id)
            out.append({
                "id": conv.id,
                "last_message_at": conv.last_message_at,
                "created_at": conv.created_at,
                "partner_id": other_id,
                "first_name": other.first_name if other else None,
                "last_name": other.last_name if other else None,
                "last_message": last.content if last else None,
                "unread_count": self.repo.unread_count(conv.id, user_id),
            })
        return out

    def messages(self, user_id: int, conversation_id: int, offset: int, limit: int):
        """Page of messages; the partner's unread messages become read."""
        if not self.repo.conversation_for(conversation_id, user_id):
            raise NotFound("Conversation not found")
        total, page = self.repo.messages_page(conversation_id, offset, limit)
        payload = [m.model_dump() for m in page]
        self.repo.mark_read(conversation_id, user_id)
        self.session.commit()
        return total, payload

    def send(self, user_id: int, data: MessageIn) -> dict:
        if data.conversation_id is None:
            assignment = self.repo.active_assignment(user_id)
            if not assignment:
                raise BadRequest("No accountability partner assigned")
            conv = self.repo.find_conversation(user_id, assignment.partner_id)
            if conv is None:
                conv = self.repo.create_conversation(
                    models.Conversation(participant_1=user_id, participant_2=assignment.partner_id))
        else:
            conv = self.repo.conversation_for(data.conversation_id, user_id)
            if conv is None:
                raise NotFound("Conversation not found")
        message = self.repo.add_message(models.Message(
            conversation_id=conv.id, sender_id=user_id, content=data.content, type=data.type,
        ))
        conv.last_message_at = message.created_at
        self.session.add(conv)
        self.session.commit()
        self.session.refresh(message)
        return {"message": message.model_dump(), "conversation_id": conv.id}


class AdminService:
    def __init__(self, session: Session):
        self.session = session

    def dashboard(self) -> dict:
        return {
            "total_users": repositories.UserRepository(self.session).count(),
            "total_courses": repositories.CourseRepository(self.session).count(),
            "total_enrollments": repositories.EnrollmentRepository(self.session).count(),
            "active_subscriptions": repositories.SubscriptionRepository(self.session).count_active(),
        }
