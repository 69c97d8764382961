"""Price, achievement and project catalog schemas."""
from __future__ import annotations

import datetime as dt
import uuid

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import ProjectStatus


class TreePriceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    currency: str
    price_minor: int
    updated_at: dt.datetime | None = None


class TreePriceUpdate(BaseModel):
    price_minor: int = Field(..., gt=0)


class PricesOut(BaseModel):
    prices: dict[str, int]


class AchievementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    code: str
    title: str
    description: str | None = None
    threshold_trees: int | None = None
    image_url: str | None = None


class UserAchievementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    achievement: AchievementOut
    awarded_at: dt.datetime
    reason: str | None = None


class ProjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    description: str | None = None
    status: ProjectStatus
    country_code: str | None = None
    region: str | None = None
    trees_target: int | None = None
    trees_planted: int | None = None
    created_at: dt.datetime


class ProjectListOut(BaseModel):
    items: list[ProjectOut]
    total: int
    limit: int
    offset: int
