"""Quiz grading.

`grade` is a pure function over questions and submitted answers;
`QuizScorer` adds the persistence rules around it: the attempt cap is
checked before anything is scored, every scoring run is stored as an
attempt, and a pass completes the quiz's lesson for the user.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

from sqlmodel import Session

from . import models, repositories
from .config import Settings
from .errors import BadRequest, NotFound
from .gamification import GamificationService
from .progress import ProgressAggregator

logger = logging.getLogger("learnrail.scoring")


def _numeric(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _loose_equal(correct: Any, answer: Any) -> bool:
    """Equality that treats numbers and numeric strings alike ("2" == 2)."""
    a, b = _numeric(correct), _numeric(answer)
    if a is not None and b is not None:
        return a == b
    return correct == answer


def _element_key(value: Any) -> str:
    num = _numeric(value)
    if num is not None:
        return repr(num)
    return f"{type(value).__name__}:{value!r}"


def check_answer(correct: Any, answer: Any) -> bool:
    """Return True when `answer` matches the stored `correct` answer.

    A list of correct answers (multi-select) needs a list answer with
    the same elements in any order.
    """
    if isinstance(correct, list):
        if not isinstance(answer, list):
            return False
        return sorted(map(_element_key, correct)) == sorted(map(_element_key, answer))
    if answer is None:
        return correct is None
    return _loose_equal(correct, answer)


@dataclass
class Grade:
    earned_points: int
    total_points: int
    score_percent: int
    results: Dict[int, dict] = field(default_factory=dict)

    def passed(self, passing_score: int) -> bool:
        return self.score_percent >= passing_score


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def grade(questions: Sequence[models.QuizQuestion], answers: Dict[Any, Any]) -> Grade:
    """Grade `answers` (keyed by question id, int or str) against `questions`."""
    total = 0
    earned = 0
    results: Dict[int, dict] = {}
    for q in questions:
        total += q.points
        user_answer = answers.get(str(q.id), answers.get(q.id))
        correct = check_answer(q.correct_answer, user_answer)
        if correct:
            earned += q.points
        results[q.id] = {
            "correct": correct,
            "correct_answer": q.correct_answer,
            "user_answer": user_answer,
        }
    score = _round_half_up(100 * earned / total) if total > 0 else 0
    return Grade(earned_points=earned, total_points=total, score_percent=score, results=results)


class QuizScorer:
    def __init__(self, session: Session, settings: Settings):
        self.session = session
        self.settings = settings
        self.quiz_repo = repositories.QuizRepository(session)

    def remaining_attempts(self, quiz: models.Quiz, user_id: int) -> Optional[int]:
        """Attempts left for the user, or None when unlimited."""
        if quiz.max_attempts <= 0:
            return None
        used = self.quiz_repo.count_attempts(user_id, quiz.id)
        return max(0, quiz.max_attempts - used)

    def score(self, quiz_id: int, user_id: int, answers: Dict[Any, Any],
              time_taken: Optional[int] = None) -> dict:
        """Grade a submission, record the attempt and apply pass side effects.

        Raises `NotFound` for an unknown quiz and `BadRequest` when the
        attempt cap is already reached; in that case nothing is stored.
        The caller commits.
        """
        quiz = self.quiz_repo.get(quiz_id)
        if quiz is None:
            raise NotFound("Quiz not found")
        if self.remaining_attempts(quiz, user_id) == 0:
            raise BadRequest("Maximum attempts reached")

        result = grade(self.quiz_repo.questions(quiz_id), answers or {})
        passed = result.passed(quiz.passing_score)
        self.quiz_repo.add_attempt(models.QuizAttempt(
            user_id=user_id,
            quiz_id=quiz_id,
            score=result.score_percent,
            passed=passed,
            answers={str(k): v for k, v in (answers or {}).items()},
            time_taken=time_taken,
        ))
        if passed:
            gamification = GamificationService(self.session)
            gamification.award(user_id, self.settings.POINTS_QUIZ_PASS, "Passed a quiz")
            gamification.track(user_id, "quizzes_passed")
            ProgressAggregator(self.session, self.settings).complete_lesson(user_id, quiz.lesson_id)
        logger.info("quiz_scored quiz_id=%s user_id=%s score=%s passed=%s", quiz_id, user_id, result.score_percent, passed)
        return {
            "score": result.score_percent,
            "passed": passed,
            "earned_points": result.earned_points,
            "total_points": result.total_points,
            "passing_score": quiz.passing_score,
            "results": result.results,
        }
