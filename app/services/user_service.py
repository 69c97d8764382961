from __future__ import annotations

import datetime as dt
import logging
import uuid

from sqlalchemy import case, or_, select, update
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.models.enums import utcnow
from app.models.models import User

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: uuid.UUID) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User", str(user_id))
        return user

    def increment_counters(
        self,
        user_id: uuid.UUID,
        tree_delta: int,
        donated_at: dt.datetime | None = None,
    ) -> int:
        """Atomically add one donation and ``tree_delta`` trees to a user.

        Runs as a single ``UPDATE ... SET total_trees = total_trees + :n`` so
        concurrent settlements for the same user cannot lose an increment.
        ``last_donation_at`` only moves forward, keeping it equal to the
        newest donation whatever order the updates land in.
        Returns the new total tree count as seen inside the current transaction.
        """
        donated_at = donated_at or utcnow()
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                total_trees=User.total_trees + tree_delta,
                donations_count=User.donations_count + 1,
                last_donation_at=case(
                    (
                        or_(User.last_donation_at.is_(None), User.last_donation_at < donated_at),
                        donated_at,
                    ),
                    else_=User.last_donation_at,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError("User", str(user_id))

        total = self.db.execute(select(User.total_trees).where(User.id == user_id)).scalar_one()
        # Keep any loaded instance in step with the row
        loaded = self.db.identity_map.get(self.db.identity_key(User, user_id))
        if loaded is not None:
            self.db.expire(loaded, ["total_trees", "donations_count", "last_donation_at"])
        return total

    def leaderboard(self, limit: int = 10) -> list[User]:
        stmt = (
            select(User)
            .where(User.total_trees > 0)
            .order_by(User.total_trees.desc(), User.created_at.asc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())
