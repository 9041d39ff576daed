"""Derived progress for goals and course enrollments.

Progress values are stored, not computed on read, so every change to a
milestone or lesson completion must call the matching `recompute_*`
method before the operation commits.

Goal progress is `round(100 * completed / total, 2)` over its
milestones (0 without milestones). A goal is `completed` exactly when
progress reaches 100 and `active` otherwise.

Enrollment progress is `completed_lessons / total_lessons * 100`.
Reaching 100 completes the enrollment and issues the course
certificate; issuing twice is a no-op.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlmodel import Session

from . import models, repositories
from .config import Settings, settings as default_settings
from .gamification import GamificationService
from .models import utcnow

logger = logging.getLogger("learnrail.progress")


@dataclass
class LessonCompletion:
    """Outcome of `ProgressAggregator.complete_lesson`."""
    newly_completed: bool
    enrollment: Optional[models.Enrollment] = None
    course_completed: bool = False


class ProgressAggregator:
    def __init__(self, session: Session, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or default_settings
        self.goal_repo = repositories.GoalRepository(session)
        self.course_repo = repositories.CourseRepository(session)
        self.cert_repo = repositories.CertificateRepository(session)
        self.lesson_repo = repositories.LessonRepository(session)
        self.enroll_repo = repositories.EnrollmentRepository(session)

    def complete_lesson(self, user_id: int, lesson_id: int) -> LessonCompletion:
        """Mark a lesson completed for the user and advance their enrollment.

        Every path that completes a lesson (manual completion, passing the
        lesson's quiz) goes through here so the enrollment counter moves
        exactly once per lesson. A lesson that is already completed
        changes nothing. Completing the course awards its points.
        """
        existing = self.lesson_repo.get_progress(user_id, lesson_id)
        if existing and existing.status == "completed":
            return LessonCompletion(newly_completed=False)
        self.lesson_repo.mark_completed(user_id, lesson_id)
        gamification = GamificationService(self.session)
        gamification.track(user_id, "lessons_completed")

        found = self.lesson_repo.with_course(lesson_id)
        enrollment = self.enroll_repo.get_for(user_id, found[2].id) if found else None
        if enrollment is None:
            return LessonCompletion(newly_completed=True)

        enrollment.completed_lessons = models.Enrollment.completed_lessons + 1
        self.session.add(enrollment)
        self.session.flush()
        self.session.refresh(enrollment)

        self.recompute_course_lesson_count(enrollment.course_id)
        course_completed = self.recompute_course_completion(enrollment)
        if course_completed:
            gamification.award(user_id, self.settings.POINTS_COURSE_COMPLETE, "Completed a course")
            gamification.track(user_id, "courses_completed")
        return LessonCompletion(newly_completed=True, enrollment=enrollment, course_completed=course_completed)

    def recompute_goal_progress(self, goal_id: int) -> float:
        """Recompute and store a goal's progress and status.

        `completed_at` is stamped only on the transition to completed
        and cleared if the goal becomes active again (e.g. a new
        milestone was added). Returns the new progress.
        """
        goal = self.goal_repo.get(goal_id)
        if goal is None:
            return 0.0
        total, completed = self.goal_repo.milestone_stats(goal_id)
        progress = round(100 * completed / total, 2) if total else 0.0
        status = "completed" if progress >= 100 else "active"
        if status == "completed" and goal.completed_at is None:
            goal.completed_at = utcnow()
        elif status == "active":
            goal.completed_at = None
        goal.progress_percent = progress
        goal.status = status
        goal.updated_at = utcnow()
        self.session.add(goal)
        self.session.flush()
        return progress

    def recompute_course_lesson_count(self, course_id: int) -> int:
        """Store the number of published lessons on the course."""
        course = self.course_repo.get(course_id)
        if course is None:
            return 0
        course.total_lessons = self.course_repo.count_published_lessons(course_id)
        self.session.add(course)
        self.session.flush()
        return course.total_lessons

    def recompute_course_completion(self, enrollment: models.Enrollment) -> bool:
        """Recompute enrollment progress from its completed-lesson counter.

        Returns True when this call moved the enrollment to `completed`.
        """
        course = self.course_repo.get(enrollment.course_id)
        total = course.total_lessons if course else 0
        if total > 0:
            progress = min(100.0, round(enrollment.completed_lessons / total * 100, 2))
        else:
            progress = 0.0
        was_completed = enrollment.status == "completed"
        enrollment.progress_percent = progress
        if progress >= 100:
            enrollment.status = "completed"
            if enrollment.completed_at is None:
                enrollment.completed_at = utcnow()
        elif not was_completed:
            enrollment.status = "in_progress"
        self.session.add(enrollment)
        self.session.flush()
        just_completed = enrollment.status == "completed" and not was_completed
        if enrollment.status == "completed":
            self.issue_certificate(enrollment.user_id, enrollment.course_id)
        return just_completed

    def issue_certificate(self, user_id: int, course_id: int) -> Optional[models.Certificate]:
        """Issue the course certificate once; later calls return the existing one."""
        existing = self.cert_repo.get_for(user_id, course_id)
        if existing:
            return existing
        number = f"LR-{uuid.uuid4().hex[:12].upper()}-{utcnow().year}"
        cert = self.cert_repo.create(models.Certificate(user_id=user_id, course_id=course_id, certificate_number=number))
        logger.info("certificate_issued user_id=%s course_id=%s number=%s", user_id, course_id, number)
        return cert
