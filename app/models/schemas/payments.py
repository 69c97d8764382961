"""Payment, subscription and donation schemas."""
from __future__ import annotations

import datetime as dt
import uuid
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import PaymentProvider, SubscriptionStatus


class PaymentIntentCreate(BaseModel):
    provider: str = "cloudpayments"
    amount_minor: int = Field(..., gt=0, description="Amount in minor units (kopecks, cents)")
    currency: str = Field(..., min_length=3, max_length=3)
    success_return_url: str
    fail_return_url: str
    description: str | None = Field(default=None, max_length=500)
    project_id: uuid.UUID | None = None
    referral_user_id: uuid.UUID | None = None


class PaymentIntentOut(BaseModel):
    provider: str
    payment_id: uuid.UUID
    redirect_url: str
    provider_payload: dict[str, Any]


class SubscriptionIntentCreate(BaseModel):
    provider: str = "cloudpayments"
    amount_minor: int = Field(..., gt=0)
    currency: str = Field(..., min_length=3, max_length=3)
    interval: Literal["monthly", "yearly"] = "monthly"
    interval_count: int = Field(default=1, ge=1, le=12)
    success_return_url: str
    fail_return_url: str
    project_id: uuid.UUID | None = None


class SubscriptionIntentOut(BaseModel):
    provider: str
    subscription_id: uuid.UUID
    redirect_url: str
    provider_payload: dict[str, Any]


class SubscriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    provider: PaymentProvider
    amount_minor: int
    currency: str
    interval_months: int
    status: SubscriptionStatus
    started_at: dt.datetime
    canceled_at: dt.datetime | None = None


class DonationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    payment_id: uuid.UUID
    project_id: uuid.UUID | None = None
    referral_user_id: uuid.UUID | None = None
    trees_count: int
    created_at: dt.datetime


class DonationListOut(BaseModel):
    items: list[DonationOut]
    total: int
    limit: int
    offset: int


class WebhookAck(BaseModel):
    """Body returned to the payment provider."""
    status: str
    action: str | None = None
