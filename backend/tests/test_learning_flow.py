from sqlmodel import Session, select

from learnrail import models

from conftest import bearer, make_course, make_user, subscribe


def test_enroll_complete_lessons_and_get_certificate(client, engine, session, codec):
    user = make_user(session)
    course, lessons = make_course(session, lessons=2)
    headers = bearer(codec, user)

    r = client.post(f"/api/courses/{course.id}/enroll", headers=headers)
    assert r.status_code == 201
    again = client.post(f"/api/courses/{course.id}/enroll", headers=headers)
    assert again.status_code == 400
    assert again.json()["message"] == "Already enrolled in this course"

    r = client.post(f"/api/lessons/{lessons[0].id}/complete", headers=headers)
    assert r.status_code == 200
    assert r.json()["data"] == {"completed_lessons": 1, "progress_percent": 50.0, "course_completed": False}

    # completing twice changes nothing
    r = client.post(f"/api/lessons/{lessons[0].id}/complete", headers=headers)
    assert r.json()["message"] == "Lesson already completed"

    r = client.post(f"/api/lessons/{lessons[1].id}/complete", headers=headers)
    assert r.json()["data"]["course_completed"] is True
    assert r.json()["data"]["progress_percent"] == 100.0

    certs = client.get("/api/certificates", headers=headers).json()["data"]
    assert len(certs) == 1
    assert certs[0]["course_slug"] == course.slug

    with Session(engine) as s:
        fresh = s.get(models.User, user.id)
        # enroll 5 + two lessons 10 each + course 100
        assert fresh.total_points == 125
        enrolled = s.get(models.Course, course.id)
        assert enrolled.total_enrollments == 1

    progress = client.get(f"/api/courses/{course.id}/progress", headers=headers).json()["data"]
    assert progress["enrollment"]["status"] == "completed"
    assert len(progress["lesson_progress"]) == 2

    history = client.get("/api/points-history", headers=headers).json()
    assert history["meta"]["total"] == 4


def test_paid_course_needs_subscription(client, session, codec):
    user = make_user(session)
    course, _ = make_course(session, slug="advanced", is_free=False)
    r = client.post(f"/api/courses/{course.id}/enroll", headers=bearer(codec, user))
    assert r.status_code == 403
    assert r.json()["message"] == "Active subscription required for this course"

    subscribe(session, user)
    r = client.post(f"/api/courses/{course.id}/enroll", headers=bearer(codec, user))
    assert r.status_code == 201


def test_lesson_completion_requires_enrollment(client, session, codec):
    user = make_user(session)
    _, lessons = make_course(session)
    r = client.post(f"/api/lessons/{lessons[0].id}/complete", headers=bearer(codec, user))
    assert r.status_code == 403
    assert r.json()["message"] == "Enrollment required"


def test_paid_lesson_requires_enrollment_to_view(client, session, codec):
    user = make_user(session)
    course, lessons = make_course(session, slug="paid", is_free=False)
    r = client.get(f"/api/lessons/{lessons[0].id}", headers=bearer(codec, user))
    assert r.status_code == 403

    subscribe(session, user)
    client.post(f"/api/courses/{course.id}/enroll", headers=bearer(codec, user))
    r = client.get(f"/api/lessons/{lessons[0].id}", headers=bearer(codec, user))
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["prev_lesson"] is None
    assert data["next_lesson"]["id"] == lessons[1].id


def test_quiz_flow_hides_answers(client, session, codec):
    user = make_user(session)
    course, lessons = make_course(session, lessons=1)
    quiz = models.Quiz(lesson_id=lessons[0].id, title="Check", passing_score=50, max_attempts=1)
    session.add(quiz)
    session.commit()
    session.add(models.QuizQuestion(quiz_id=quiz.id, question="Pick evens", type="multiple",
                                    options=[1, 2, 3, 4], correct_answer=[2, 4], points=2))
    session.commit()
    question = session.exec(select(models.QuizQuestion)).one()
    headers = bearer(codec, user)

    assert client.get(f"/api/quizzes/{quiz.id}", headers=headers).status_code == 403
    client.post(f"/api/courses/{course.id}/enroll", headers=headers)

    shown = client.get(f"/api/quizzes/{quiz.id}", headers=headers).json()["data"]
    assert shown["remaining_attempts"] == 1
    assert "correct_answer" not in shown["questions"][0]

    r = client.post(f"/api/quizzes/{quiz.id}/submit", headers=headers,
                    json={"answers": {str(question.id): [4, 2]}})
    assert r.status_code == 200
    assert r.json()["data"]["score"] == 100
    assert r.json()["data"]["passed"] is True

    r = client.post(f"/api/quizzes/{quiz.id}/submit", headers=headers, json={"answers": {}})
    assert r.status_code == 400
    assert r.json()["message"] == "Maximum attempts reached"


def test_catalog_is_public(client, session):
    make_course(session, slug="intro")
    r = client.get("/api/courses")
    assert r.status_code == 200
    assert r.json()["meta"]["total"] == 1
    detail = client.get("/api/courses/intro").json()["data"]
    assert len(detail["modules"][0]["lessons"]) == 2
    assert client.get("/api/courses/missing").status_code == 404


def test_leaderboard_ranks_by_points(client, session, codec):
    first = make_user(session, email="one@example.com")
    second = make_user(session, email="two@example.com")
    first.total_points = 50
    second.total_points = 80
    session.add(first)
    session.add(second)
    session.commit()
    data = client.get("/api/leaderboard", headers=bearer(codec, first)).json()["data"]
    assert [e["id"] for e in data["leaderboard"]] == [second.id, first.id]
    assert data["user_rank"] == 2


def _quiz_on(session, lesson):
    quiz = models.Quiz(lesson_id=lesson.id, title="Wrap-up", passing_score=50)
    session.add(quiz)
    session.commit()
    question = models.QuizQuestion(quiz_id=quiz.id, question="2+2?", correct_answer="4", points=1)
    session.add(question)
    session.commit()
    session.refresh(question)
    return quiz, question


def test_passing_quiz_advances_enrollment_and_completes_course(client, engine, session, codec):
    user = make_user(session)
    course, lessons = make_course(session, lessons=2)
    quiz, question = _quiz_on(session, lessons[1])
    headers = bearer(codec, user)
    client.post(f"/api/courses/{course.id}/enroll", headers=headers)

    r = client.post(f"/api/lessons/{lessons[0].id}/complete", headers=headers)
    assert r.json()["data"]["progress_percent"] == 50.0

    r = client.post(f"/api/quizzes/{quiz.id}/submit", headers=headers, json={"answers": {str(question.id): "4"}})
    assert r.json()["data"]["passed"] is True

    progress = client.get(f"/api/courses/{course.id}/progress", headers=headers).json()["data"]
    assert progress["enrollment"]["status"] == "completed"
    assert progress["enrollment"]["completed_lessons"] == 2
    assert progress["enrollment"]["progress_percent"] == 100.0
    assert len(client.get("/api/certificates", headers=headers).json()["data"]) == 1

    r = client.post(f"/api/lessons/{lessons[1].id}/complete", headers=headers)
    assert r.json()["message"] == "Lesson already completed"

    with Session(engine) as s:
        # enroll 5 + lesson 10 + quiz 25 + course 100
        assert s.get(models.User, user.id).total_points == 140


def test_watch_time_only_moves_forward(client, session, codec):
    user = make_user(session)
    course, lessons = make_course(session, lessons=1)
    headers = bearer(codec, user)
    url = f"/api/lessons/{lessons[0].id}/progress"

    r = client.post(url, headers=headers, json={"watch_time": 120})
    assert r.status_code == 200
    assert r.json()["data"] == {"watch_time": 120, "status": "in_progress"}

    r = client.post(url, headers=headers, json={"watch_time": 30})
    assert r.json()["data"]["watch_time"] == 120

    client.post(f"/api/courses/{course.id}/enroll", headers=headers)
    client.post(f"/api/lessons/{lessons[0].id}/complete", headers=headers)
    r = client.post(url, headers=headers, json={"watch_time": 300})
    assert r.json()["data"] == {"watch_time": 300, "status": "completed"}

    assert client.post(url, headers=headers, json={"watch_time": -1}).status_code == 422
    assert client.post("/api/lessons/999/progress", headers=headers, json={"watch_time": 5}).status_code == 404


def test_badges_are_earned_from_points_balance(client, session, codec):
    user = make_user(session)
    session.add(models.Badge(name="Starter", slug="starter", points_required=10))
    session.add(models.Badge(name="Scholar", slug="scholar", points_required=500))
    session.add(models.Badge(name="Hidden", slug="hidden", points_required=1, is_active=False))
    session.commit()
    course, lessons = make_course(session, lessons=2)
    headers = bearer(codec, user)

    client.post(f"/api/courses/{course.id}/enroll", headers=headers)
    badges = client.get("/api/badges", headers=headers).json()["data"]
    assert [(b["slug"], b["earned"]) for b in badges] == [("starter", False), ("scholar", False)]

    client.post(f"/api/lessons/{lessons[0].id}/complete", headers=headers)
    badges = client.get("/api/badges", headers=headers).json()["data"]
    assert [(b["slug"], b["earned"]) for b in badges] == [("starter", True), ("scholar", False)]
    assert badges[0]["earned_at"] is not None
    assert session.exec(select(models.UserBadge)).all()[0].badge_id == badges[0]["id"]


def test_achievements_track_completed_lessons(client, engine, session, codec):
    user = make_user(session)
    session.add(models.Achievement(name="First steps", slug="first-steps", type="lessons_completed",
                                   target_value=1, points_reward=20))
    session.add(models.Achievement(name="Marathon", slug="marathon", type="lessons_completed",
                                   target_value=4, points_reward=50))
    session.add(models.Achievement(name="Graduate", slug="graduate", type="courses_completed",
                                   target_value=1, points_reward=0))
    session.commit()
    course, lessons = make_course(session, lessons=2)
    headers = bearer(codec, user)
    client.post(f"/api/courses/{course.id}/enroll", headers=headers)
    client.post(f"/api/lessons/{lessons[0].id}/complete", headers=headers)

    data = client.get("/api/achievements", headers=headers).json()["data"]
    by_slug = {a["slug"]: a for a in data}
    assert [a["slug"] for a in data] == ["marathon", "first-steps", "graduate"]
    assert by_slug["first-steps"]["is_completed"] is True
    assert by_slug["first-steps"]["progress_percent"] == 100
    assert by_slug["marathon"]["current_value"] == 1
    assert by_slug["marathon"]["progress_percent"] == 25
    assert by_slug["graduate"]["is_completed"] is False

    # already completed lessons are not counted again
    client.post(f"/api/lessons/{lessons[0].id}/complete", headers=headers)
    client.post(f"/api/lessons/{lessons[1].id}/complete", headers=headers)
    by_slug = {a["slug"]: a for a in client.get("/api/achievements", headers=headers).json()["data"]}
    assert by_slug["marathon"]["current_value"] == 2
    assert by_slug["graduate"]["is_completed"] is True

    with Session(engine) as s:
        # enroll 5 + lessons 20 + course 100 + first steps 20
        assert s.get(models.User, user.id).total_points == 145
