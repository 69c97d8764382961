"""Read-only consistency checks over settled donations.

Checks:

1. Denormalized counters (``total_trees``, ``donations_count``,
   ``last_donation_at``) equal sum/count/max over the user's donations.
   Settlement stamps ``last_donation_at`` with the donation's own
   ``created_at``, so the max is compared exactly.
2. Every threshold achievement the user's tree total qualifies for has been
   granted. Achievement evaluation runs after the settlement commit, so a
   crash in between shows up here.
3. Webhook deliveries that failed and were never settled by a retry.
"""
from __future__ import annotations

import datetime as dt
import logging

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session, aliased

from app.models.enums import utcnow
from app.models.models import Achievement, User, UserAchievement
from app.models.payment_models import Donation, WebhookEvent

logger = logging.getLogger(__name__)


class ReconciliationService:
    def __init__(self, db: Session):
        self.db = db

    def user_stats(self):
        """Per-user sum/count/max over donations, as a subquery."""
        return (
            select(
                Donation.user_id.label("user_id"),
                func.coalesce(func.sum(Donation.trees_count), 0).label("trees"),
                func.count(Donation.id).label("donations"),
                func.max(Donation.created_at).label("last_donation_at"),
            )
            .group_by(Donation.user_id)
            .subquery()
        )

    def counter_mismatches(self) -> list[dict]:
        stats = self.user_stats()
        expected_trees = func.coalesce(stats.c.trees, 0)
        expected_count = func.coalesce(stats.c.donations, 0)
        stmt = (
            select(
                User.id,
                User.total_trees,
                User.donations_count,
                User.last_donation_at,
                expected_trees.label("expected_trees"),
                expected_count.label("expected_count"),
                stats.c.last_donation_at.label("expected_last"),
            )
            .outerjoin(stats, stats.c.user_id == User.id)
            .where(
                (User.total_trees != expected_trees)
                | (User.donations_count != expected_count)
                | (and_(expected_count == 0, User.last_donation_at.is_not(None)))
                | (
                    and_(
                        expected_count > 0,
                        or_(
                            User.last_donation_at.is_(None),
                            User.last_donation_at != stats.c.last_donation_at,
                        ),
                    )
                )
            )
            .order_by(User.id)
        )
        return [
            {
                "user_id": row.id,
                "total_trees": row.total_trees,
                "expected_total_trees": int(row.expected_trees),
                "donations_count": row.donations_count,
                "expected_donations_count": int(row.expected_count),
                "last_donation_at": row.last_donation_at,
                "expected_last_donation_at": row.expected_last,
            }
            for row in self.db.execute(stmt)
        ]

    def missing_achievements(self) -> list[dict]:
        granted = (
            select(UserAchievement.id)
            .where(
                UserAchievement.user_id == User.id,
                UserAchievement.achievement_id == Achievement.id,
            )
            .exists()
        )
        stmt = (
            select(User.id, User.total_trees, Achievement.code, Achievement.threshold_trees)
            .join(
                Achievement,
                and_(
                    Achievement.threshold_trees.is_not(None),
                    Achievement.threshold_trees <= User.total_trees,
                ),
            )
            .where(~granted)
            .order_by(User.id, Achievement.threshold_trees)
        )
        return [
            {
                "user_id": row.id,
                "total_trees": row.total_trees,
                "achievement_code": row.code,
                "threshold_trees": row.threshold_trees,
            }
            for row in self.db.execute(stmt)
        ]

    def unresolved_webhook_failures(self, window_hours: int = 24) -> int:
        """Distinct keys with a failed delivery in the window and no settled claim."""
        since = utcnow() - dt.timedelta(hours=window_hours)
        claim = aliased(WebhookEvent)
        settled = select(claim.id).where(claim.event_idempotency == WebhookEvent.delivery_key).exists()
        stmt = select(func.count(func.distinct(WebhookEvent.delivery_key))).where(
            WebhookEvent.processed_ok.is_(False),
            WebhookEvent.signature_ok.is_(True),
            WebhookEvent.delivery_key.is_not(None),
            WebhookEvent.received_at >= since,
            ~settled,
        )
        return int(self.db.execute(stmt).scalar_one())

    def report(self) -> dict:
        checked = self.db.execute(select(func.count(User.id))).scalar_one()
        mismatches = self.counter_mismatches()
        missing = self.missing_achievements()
        unresolved = self.unresolved_webhook_failures()
        if mismatches or missing or unresolved:
            logger.warning(
                "Reconciliation found %d counter mismatches, %d missing achievements, %d unresolved webhooks",
                len(mismatches),
                len(missing),
                unresolved,
            )
        generated_at: dt.datetime = utcnow()
        return {
            "checked_users": checked,
            "counter_mismatches": mismatches,
            "missing_achievements": missing,
            "unresolved_webhook_failures": unresolved,
            "generated_at": generated_at,
        }
