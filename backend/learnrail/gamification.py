"""Points ledger, leaderboard, badges and achievements."""

import logging
from typing import List, Optional

from sqlmodel import Session

from . import models, repositories
from .models import utcnow

logger = logging.getLogger("learnrail.gamification")


class GamificationService:
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.points_repo = repositories.PointsRepository(session)
        self.badge_repo = repositories.BadgeRepository(session)

    def award(self, user_id: int, points: int, reason: str) -> None:
        """Add `points` to the user's balance, log the transaction and grant
        any badge whose threshold the new balance reaches."""
        self.user_repo.add_points(user_id, points)
        self.points_repo.add(user_id, points, reason)
        logger.debug("points_awarded user_id=%s points=%s reason=%r", user_id, points, reason)
        user = self.user_repo.get(user_id)
        if user is None:
            return
        for badge in self.badge_repo.unearned_within(user_id, user.total_points):
            self.badge_repo.grant(user_id, badge.id)
            logger.info("badge_earned user_id=%s badge=%s", user_id, badge.slug)

    def track(self, user_id: int, kind: str, amount: int = 1) -> None:
        """Advance every active achievement of type `kind` for the user.

        Reaching the target completes the achievement once and awards its
        `points_reward`.
        """
        for achievement in self.badge_repo.achievements_of_type(kind):
            row = self.badge_repo.user_achievement(user_id, achievement.id)
            if row is None:
                row = models.UserAchievement(user_id=user_id, achievement_id=achievement.id)
            if row.is_completed:
                continue
            row.current_value = (row.current_value or 0) + amount
            if row.current_value >= achievement.target_value:
                row.is_completed = True
                row.completed_at = utcnow()
            self.session.add(row)
            self.session.flush()
            if row.is_completed and achievement.points_reward > 0:
                self.award(user_id, achievement.points_reward, f"Achievement: {achievement.name}")

    def badges(self, user_id: int) -> List[dict]:
        out = []
        for badge, earned in self.badge_repo.for_user(user_id):
            out.append({
                "id": badge.id,
                "name": badge.name,
                "slug": badge.slug,
                "description": badge.description,
                "icon": badge.icon,
                "points_required": badge.points_required,
                "earned": earned is not None,
                "earned_at": earned.earned_at if earned else None,
            })
        return out

    def achievements(self, user_id: int) -> List[dict]:
        out = []
        for a, progress in self.badge_repo.achievements_for_user(user_id):
            current = progress.current_value if progress else 0
            target = a.target_value if a.target_value > 0 else 1
            out.append({
                "id": a.id,
                "name": a.name,
                "slug": a.slug,
                "description": a.description,
                "icon": a.icon,
                "type": a.type,
                "target_value": a.target_value,
                "points_reward": a.points_reward,
                "current_value": current,
                "is_completed": bool(progress and progress.is_completed),
                "completed_at": progress.completed_at if progress else None,
                "progress_percent": min(100, round(current / target * 100)),
            })
        return out

    def leaderboard(self, limit: int, user_id: Optional[int] = None) -> dict:
        """All-time leaderboard of active learners plus the caller's rank."""
        entries = []
        for rank, u in enumerate(self.user_repo.leaderboard(limit), start=1):
            entries.append({
                "rank": rank,
                "id": u.id,
                "first_name": u.first_name,
                "last_name": u.last_name,
                "avatar": u.avatar,
                "total_points": u.total_points,
            })
        user_rank = None
        if user_id is not None:
            me = self.user_repo.get(user_id)
            if me is not None:
                user_rank = self.user_repo.rank_for_points(me.total_points)
        return {"leaderboard": entries, "type": "all_time", "user_rank": user_rank}

    def history(self, user_id: int, offset: int, limit: int):
        return self.points_repo.history(user_id, offset, limit)
