from __future__ import annotations

import uuid

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.exceptions import InvalidRequestError
from app.models.payment_models import Donation

MAX_PAGE_SIZE = 100


class DonationService:
    def __init__(self, db: Session):
        self.db = db

    def list_for_user(self, user_id: uuid.UUID, limit: int = 20, offset: int = 0) -> tuple[list[Donation], int]:
        """Newest-first page of a user's donations plus the total count."""
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise InvalidRequestError(f"limit must be between 1 and {MAX_PAGE_SIZE}", field="limit")
        if offset < 0:
            raise InvalidRequestError("offset must not be negative", field="offset")

        total = self.db.execute(
            select(func.count(Donation.id)).where(Donation.user_id == user_id)
        ).scalar_one()
        rows = self.db.execute(
            select(Donation)
            .where(Donation.user_id == user_id)
            .order_by(Donation.created_at.desc(), Donation.id.desc())
            .limit(limit)
            .offset(offset)
        ).scalars().all()
        return list(rows), total
