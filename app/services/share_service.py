"""
Share links and referral statistics.

Business rules:
- A share token points at the owner's profile or at one of their donations
- Slugs read ``<username|user>-<kind>-<8 hex>`` and are unique
- A donation counts as a referral when its ``referral_user_id`` is the user
"""
from __future__ import annotations

import logging
import uuid

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, joinedload

from app.core.exceptions import InvalidRequestError, NotFoundError
from app.models.enums import ShareKind
from app.models.models import ShareToken, User, UserAchievement
from app.models.payment_models import Donation

logger = logging.getLogger(__name__)


def generate_slug(username: str | None, kind: ShareKind) -> str:
    base = username or "user"
    return f"{base}-{kind.value}-{uuid.uuid4().hex[:8]}"


class ShareService:
    def __init__(self, db: Session):
        self.db = db

    # ==================== TOKENS ====================

    def create_token(self, user_id: uuid.UUID, kind: str, ref_id: uuid.UUID | None = None) -> ShareToken:
        share_kind = ShareKind.parse(kind)
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User", str(user_id))

        if share_kind is ShareKind.DONATION:
            if ref_id is None:
                raise InvalidRequestError("ref_id is required for donation shares", field="ref_id")
            donation = self.db.get(Donation, ref_id)
            if donation is None or donation.user_id != user_id:
                raise NotFoundError("Donation", str(ref_id))
        else:
            ref_id = None

        slug = generate_slug(user.username, share_kind)
        for _ in range(5):  # Collisions on 8 hex chars are rare but possible
            exists = self.db.execute(select(ShareToken.id).where(ShareToken.slug == slug)).first()
            if exists is None:
                break
            slug = generate_slug(user.username, share_kind)
        else:
            slug = f"{user.username or 'user'}-{share_kind.value}-{uuid.uuid4().hex}"

        token = ShareToken(user_id=user_id, kind=share_kind, ref_id=ref_id, slug=slug)
        self.db.add(token)
        self.db.commit()
        self.db.refresh(token)
        logger.info("Created %s share token %s for user %s", share_kind.value, slug, user_id)
        return token

    def resolve(self, slug: str) -> ShareToken:
        token = self.db.execute(select(ShareToken).where(ShareToken.slug == slug)).scalar_one_or_none()
        if token is None:
            raise NotFoundError("Share token", slug)
        return token

    def list_tokens(self, user_id: uuid.UUID) -> list[ShareToken]:
        stmt = select(ShareToken).where(ShareToken.user_id == user_id).order_by(ShareToken.created_at.desc())
        return list(self.db.execute(stmt).scalars().all())

    def delete_token(self, token_id: uuid.UUID, user_id: uuid.UUID) -> None:
        result = self.db.execute(
            delete(ShareToken).where(ShareToken.id == token_id, ShareToken.user_id == user_id)
        )
        if result.rowcount == 0:
            raise NotFoundError("Share token", str(token_id))
        self.db.commit()

    # ==================== RESOLUTION ====================

    def profile_summary(self, user_id: uuid.UUID) -> dict:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User", str(user_id))
        achievements = self.db.execute(
            select(UserAchievement)
            .options(joinedload(UserAchievement.achievement))
            .where(UserAchievement.user_id == user_id)
            .order_by(UserAchievement.awarded_at.desc())
        ).scalars().all()
        return {
            "username": user.username,
            "display_name": user.display_name,
            "avatar_url": user.avatar_url,
            "total_trees": user.total_trees,
            "donations_count": user.donations_count,
            "last_donation_at": user.last_donation_at,
            "achievements": list(achievements),
        }

    def donation_details(self, donation_id: uuid.UUID) -> dict:
        donation = self.db.execute(
            select(Donation)
            .options(joinedload(Donation.user), joinedload(Donation.project))
            .where(Donation.id == donation_id)
        ).scalar_one_or_none()
        if donation is None:
            raise NotFoundError("Donation", str(donation_id))
        return {
            "id": donation.id,
            "trees_count": donation.trees_count,
            "created_at": donation.created_at,
            "project_id": donation.project_id,
            "project_title": donation.project.title if donation.project else None,
            "donor_username": donation.user.username,
            "donor_display_name": donation.user.display_name,
        }

    def resolve_view(self, slug: str) -> dict:
        token = self.resolve(slug)
        view = {
            "kind": token.kind.value,
            "slug": token.slug,
            "referral_user_id": token.user_id,
            "profile": None,
            "donation": None,
        }
        if token.kind is ShareKind.DONATION and token.ref_id is not None:
            view["donation"] = self.donation_details(token.ref_id)
        else:
            view["profile"] = self.profile_summary(token.user_id)
        return view

    # ==================== REFERRALS ====================

    def referral_stats(self, user_id: uuid.UUID) -> dict[str, int]:
        count, trees = self.db.execute(
            select(func.count(Donation.id), func.coalesce(func.sum(Donation.trees_count), 0))
            .where(Donation.referral_user_id == user_id)
        ).one()
        return {"total_referrals": int(count), "total_trees_planted": int(trees)}
