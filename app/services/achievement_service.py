"""
Achievement catalog and grants.

Business rules:
- Threshold achievements are granted automatically once a user's total tree
  count reaches the threshold
- Achievements without a threshold are manual-only (``award``)
- Grants are never revoked; re-granting is a no-op
"""
from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from app.core.exceptions import NotFoundError
from app.models.models import Achievement, UserAchievement

logger = logging.getLogger(__name__)


class AchievementService:
    def __init__(self, db: Session):
        self.db = db

    # ==================== CATALOG ====================

    def list_catalog(self) -> list[Achievement]:
        stmt = select(Achievement).order_by(
            Achievement.threshold_trees.is_(None),
            Achievement.threshold_trees.asc(),
            Achievement.title.asc(),
        )
        return list(self.db.execute(stmt).scalars().all())

    def get_by_code(self, code: str) -> Achievement:
        achievement = self.db.execute(
            select(Achievement).where(Achievement.code == code)
        ).scalar_one_or_none()
        if achievement is None:
            raise NotFoundError("Achievement", code)
        return achievement

    def thresholds_at_most(self, total_trees: int) -> list[Achievement]:
        stmt = (
            select(Achievement)
            .where(Achievement.threshold_trees.is_not(None))
            .where(Achievement.threshold_trees <= total_trees)
            .order_by(Achievement.threshold_trees.asc())
        )
        return list(self.db.execute(stmt).scalars().all())

    # ==================== GRANTS ====================

    def user_achievements(self, user_id: uuid.UUID) -> list[UserAchievement]:
        stmt = (
            select(UserAchievement)
            .options(joinedload(UserAchievement.achievement))
            .where(UserAchievement.user_id == user_id)
            .order_by(UserAchievement.awarded_at.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def has_achievement(self, user_id: uuid.UUID, achievement_id: uuid.UUID) -> bool:
        stmt = select(UserAchievement.id).where(
            UserAchievement.user_id == user_id,
            UserAchievement.achievement_id == achievement_id,
        )
        return self.db.execute(stmt).first() is not None

    def grant(
        self,
        user_id: uuid.UUID,
        achievement: Achievement,
        reason: str | None = None,
    ) -> UserAchievement | None:
        """Insert a grant unless the user already holds it.

        Returns the new grant, or None when it already existed (including when
        a concurrent evaluation won the unique constraint).
        """
        if self.has_achievement(user_id, achievement.id):
            return None
        grant = UserAchievement(user_id=user_id, achievement_id=achievement.id, reason=reason)
        try:
            with self.db.begin_nested():
                self.db.add(grant)
                self.db.flush()
        except IntegrityError:
            logger.info("Achievement %s already granted to %s concurrently", achievement.code, user_id)
            return None
        return grant

    def evaluate(self, user_id: uuid.UUID, total_trees: int) -> list[UserAchievement]:
        """Grant every threshold achievement ``<= total_trees`` the user lacks. Does not commit."""
        granted: list[UserAchievement] = []
        for achievement in self.thresholds_at_most(total_trees):
            grant = self.grant(user_id, achievement, reason=f"Reached {achievement.threshold_trees} trees")
            if grant is not None:
                granted.append(grant)
                logger.info("Granted achievement %s to user %s", achievement.code, user_id)
        return granted

    def award(self, user_id: uuid.UUID, code: str, reason: str | None = None) -> UserAchievement | None:
        """Manually grant an achievement by catalog code. Does not commit."""
        return self.grant(user_id, self.get_by_code(code), reason=reason)
