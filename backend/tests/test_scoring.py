import pytest
from sqlmodel import select

from learnrail import models
from learnrail.config import settings
from learnrail.errors import BadRequest, NotFound
from learnrail.scoring import QuizScorer, check_answer, grade

from conftest import make_course, make_user


def _question(qid, correct, points):
    return models.QuizQuestion(id=qid, quiz_id=1, question=f"Q{qid}", correct_answer=correct, points=points)


def test_partial_score_rounds_and_fails():
    questions = [_question(1, "a", 10), _question(2, "b", 20)]
    result = grade(questions, {"1": "a", "2": "c"})
    assert result.earned_points == 10
    assert result.total_points == 30
    assert result.score_percent == 33
    assert not result.passed(70)
    assert result.results[1]["correct"] is True
    assert result.results[2] == {"correct": False, "correct_answer": "b", "user_answer": "c"}


def test_score_rounds_half_up():
    questions = [_question(i, "x", 1) for i in range(1, 9)]
    # 7 of 8 correct is 87.5%
    answers = {str(i): "x" for i in range(1, 8)}
    assert grade(questions, answers).score_percent == 88


def test_no_questions_scores_zero():
    result = grade([], {})
    assert result.score_percent == 0
    assert result.total_points == 0


def test_multi_select_ignores_order():
    assert check_answer(["a", "c"], ["c", "a"])
    assert not check_answer(["a", "c"], ["a"])
    assert not check_answer(["a", "c"], "a")
    assert check_answer([1, 2], ["2", "1"])


def test_loose_equality():
    assert check_answer(2, "2")
    assert check_answer("3.0", 3)
    assert check_answer("paris", "paris")
    assert not check_answer("paris", "Paris")
    assert not check_answer(True, "1")
    assert not check_answer("a", None)
    assert check_answer(None, None)


def test_answers_accept_int_keys():
    result = grade([_question(5, "a", 1)], {5: "a"})
    assert result.score_percent == 100


def _quiz(session, max_attempts=0, passing_score=70):
    course, lessons = make_course(session, lessons=1)
    quiz = models.Quiz(lesson_id=lessons[0].id, title="Checkpoint", passing_score=passing_score,
                       max_attempts=max_attempts)
    session.add(quiz)
    session.commit()
    session.add(models.QuizQuestion(quiz_id=quiz.id, question="2+2?", correct_answer="4", points=1))
    session.commit()
    session.refresh(quiz)
    question = session.exec(select(models.QuizQuestion).where(models.QuizQuestion.quiz_id == quiz.id)).one()
    return quiz, lessons[0], question


def test_passing_attempt_awards_points_and_completes_lesson(session):
    user = make_user(session)
    quiz, lesson, question = _quiz(session)
    result = QuizScorer(session, settings).score(quiz.id, user.id, {str(question.id): 4})
    session.commit()

    assert result["score"] == 100
    assert result["passed"] is True
    session.refresh(user)
    assert user.total_points == settings.POINTS_QUIZ_PASS
    progress = session.exec(select(models.LessonProgress).where(models.LessonProgress.lesson_id == lesson.id)).one()
    assert progress.status == "completed"


def test_attempt_cap_is_checked_before_scoring(session):
    user = make_user(session)
    quiz, _, question = _quiz(session, max_attempts=2)
    scorer = QuizScorer(session, settings)
    for _ in range(2):
        scorer.score(quiz.id, user.id, {str(question.id): "5"})
        session.commit()
    assert scorer.remaining_attempts(quiz, user.id) == 0

    with pytest.raises(BadRequest):
        scorer.score(quiz.id, user.id, {str(question.id): "4"})
    attempts = session.exec(select(models.QuizAttempt).where(models.QuizAttempt.user_id == user.id)).all()
    assert len(attempts) == 2
    assert all(not a.passed for a in attempts)


def test_unknown_quiz(session):
    user = make_user(session)
    with pytest.raises(NotFound):
        QuizScorer(session, settings).score(999, user.id, {})


def test_regrading_the_same_answers_gives_the_same_result(session):
    user = make_user(session)
    course, lessons = make_course(session, lessons=1)
    quiz = models.Quiz(lesson_id=lessons[0].id, title="Mixed", passing_score=70, max_attempts=0)
    session.add(quiz)
    session.commit()
    for correct, points in (("a", 10), ("b", 20)):
        session.add(models.QuizQuestion(quiz_id=quiz.id, question=f"Pick {correct}", correct_answer=correct,
                                        points=points))
    session.commit()
    first_id, second_id = [q.id for q in session.exec(
        select(models.QuizQuestion).where(models.QuizQuestion.quiz_id == quiz.id).order_by(models.QuizQuestion.id))]
    answers = {str(first_id): "a", str(second_id): "c"}

    scorer = QuizScorer(session, settings)
    first = scorer.score(quiz.id, user.id, answers)
    session.commit()
    second = scorer.score(quiz.id, user.id, answers)
    session.commit()

    assert first["score"] == 33
    assert first["passed"] is False
    assert first == second
    assert scorer.remaining_attempts(quiz, user.id) is None
