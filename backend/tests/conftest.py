from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session

from learnrail import models
from learnrail.config import settings
from learnrail.database import create_db_and_tables, get_session, make_engine
from learnrail.main import app
from learnrail.models import utcnow
from learnrail.services import PWD_CTX
from learnrail.tokens import TokenCodec

PASSWORD = "password123"


@pytest.fixture()
def engine():
    """Fresh in-memory database per test."""
    eng = make_engine("sqlite://", poolclass=StaticPool)
    create_db_and_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture()
def client(engine, monkeypatch):
    monkeypatch.setattr(settings, "ANTHROPIC_API_KEY", "")
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "")

    def _session():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = _session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def codec():
    return TokenCodec(settings.JWT_SECRET, settings.JWT_ALGORITHM)


def make_user(session, email="learner@example.com", role="user", status="active", password=PASSWORD):
    user = models.User(
        email=email,
        first_name="Ada",
        last_name="Lovelace",
        password_hash=PWD_CTX.hash(password),
        role=role,
        status=status,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def subscribe(session, user, days=30):
    plan = models.SubscriptionPlan(name="Monthly", slug=f"monthly-{user.id}", duration_days=days, price=10.0)
    session.add(plan)
    session.commit()
    sub = models.Subscription(
        user_id=user.id,
        plan_id=plan.id,
        status="active",
        start_date=utcnow(),
        end_date=utcnow() + timedelta(days=days),
    )
    session.add(sub)
    session.commit()
    session.refresh(sub)
    return sub


def make_course(session, slug="python-basics", lessons=2, is_free=True):
    """Course with one module holding `lessons` published lessons."""
    course = models.Course(title="Python Basics", slug=slug, is_free=is_free, total_lessons=lessons)
    session.add(course)
    session.commit()
    module = models.CourseModule(course_id=course.id, title="Getting started")
    session.add(module)
    session.commit()
    rows = []
    for i in range(lessons):
        lesson = models.Lesson(module_id=module.id, title=f"Lesson {i + 1}", sort_order=i)
        session.add(lesson)
        rows.append(lesson)
    session.commit()
    for lesson in rows:
        session.refresh(lesson)
    session.refresh(course)
    return course, rows


def bearer(codec, user):
    return {"Authorization": f"Bearer {codec.issue_access(user.id, user.role, 3600)}"}
