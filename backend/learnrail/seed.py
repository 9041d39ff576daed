"""Demo data for local development."""

from sqlmodel import Session

from . import models, repositories
from .progress import ProgressAggregator
from .services import PWD_CTX

ADMIN_EMAIL = "admin@learnrail.dev"
DEMO_PASSWORD = "password123"


def seed(session: Session) -> dict:
    """Create an admin, a learner, plans, badges, achievements and one free
    course with a quiz.

    Running it again on a seeded database does nothing.
    """
    users = repositories.UserRepository(session)
    if users.get_by_email(ADMIN_EMAIL):
        return {"created": False}

    for email, role in ((ADMIN_EMAIL, "admin"), ("learner@learnrail.dev", "user")):
        users.create(models.User(
            email=email,
            first_name=role.capitalize(),
            last_name="Demo",
            role=role,
            password_hash=PWD_CTX.hash(DEMO_PASSWORD),
        ))
    session.add(models.SubscriptionPlan(name="Monthly", slug="monthly", duration_days=30, price=9.99,
                                        features=["Goals", "Accountability partner"]))
    session.add(models.SubscriptionPlan(name="Yearly", slug="yearly", duration_days=365, price=99.0,
                                        features=["Goals", "Accountability partner"], is_popular=True))

    course = models.Course(title="Python Foundations", slug="python-foundations", level="beginner",
                           is_free=True, is_featured=True,
                           short_description="Variables, control flow and functions.")
    session.add(course)
    session.flush()
    module = models.CourseModule(course_id=course.id, title="First steps")
    session.add(module)
    session.flush()
    lessons = []
    for i, title in enumerate(("Variables", "Control flow", "Checkpoint")):
        lesson = models.Lesson(module_id=module.id, title=title, sort_order=i,
                               type="quiz" if title == "Checkpoint" else "text",
                               is_free_preview=i == 0)
        session.add(lesson)
        lessons.append(lesson)
    session.flush()

    quiz = models.Quiz(lesson_id=lessons[-1].id, title="Foundations checkpoint", passing_score=70, max_attempts=3)
    session.add(quiz)
    session.flush()
    session.add(models.QuizQuestion(quiz_id=quiz.id, question="What does len([1, 2, 3]) return?",
                                    options=["2", "3", "4"], correct_answer="3", points=10, sort_order=0))
    session.add(models.QuizQuestion(quiz_id=quiz.id, question="Which of these are falsy?", type="multiple",
                                    options=["0", "''", "'a'", "[]"], correct_answer=["0", "''", "[]"],
                                    points=20, sort_order=1))

    for name, slug, required in (("Starter", "starter", 25), ("Committed", "committed", 250), ("Scholar", "scholar", 1000)):
        session.add(models.Badge(name=name, slug=slug, points_required=required))
    session.add(models.Achievement(name="First lesson", slug="first-lesson", type="lessons_completed",
                                   target_value=1, points_reward=10))
    session.add(models.Achievement(name="Quiz whiz", slug="quiz-whiz", type="quizzes_passed",
                                   target_value=5, points_reward=50))
    session.add(models.Achievement(name="Graduate", slug="graduate", type="courses_completed",
                                   target_value=1, points_reward=100))
    ProgressAggregator(session).recompute_course_lesson_count(course.id)
    session.commit()
    return {"created": True, "course_id": course.id}
