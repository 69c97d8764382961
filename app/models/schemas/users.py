"""User profile and sharing schemas."""
from __future__ import annotations

import datetime as dt
import uuid

from pydantic import BaseModel, ConfigDict

from app.models.enums import ShareKind

from .catalog import UserAchievementOut


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    username: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    total_trees: int
    donations_count: int
    last_donation_at: dt.datetime | None = None


class LeaderboardEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    username: str | None = None
    display_name: str | None = None
    total_trees: int


class ProfileSummaryOut(BaseModel):
    """Public view of a donor, safe to show on a share page."""
    username: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    total_trees: int
    donations_count: int
    last_donation_at: dt.datetime | None = None
    achievements: list[UserAchievementOut] = []


class DonationShareOut(BaseModel):
    id: uuid.UUID
    trees_count: int
    created_at: dt.datetime
    project_id: uuid.UUID | None = None
    project_title: str | None = None
    donor_username: str | None = None
    donor_display_name: str | None = None


class ShareTokenCreate(BaseModel):
    kind: str
    ref_id: uuid.UUID | None = None


class ShareTokenOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    kind: ShareKind
    ref_id: uuid.UUID | None = None
    slug: str
    created_at: dt.datetime


class ShareResolveOut(BaseModel):
    kind: str
    slug: str
    referral_user_id: uuid.UUID
    profile: ProfileSummaryOut | None = None
    donation: DonationShareOut | None = None


class ReferralStatsOut(BaseModel):
    total_referrals: int
    total_trees_planted: int
