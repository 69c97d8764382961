"""Payment and subscription intents.

An intent creates the local record the provider's webhook will later refer
to. The provider-side id is the record's own UUID, which is passed to the
checkout widget and echoed back as ``TransactionId`` / ``SubscriptionId``.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import InvalidRequestError, NotFoundError, UnsupportedProviderError
from app.models.enums import (
    Currency,
    PaymentProvider,
    PaymentStatus,
    SubscriptionStatus,
)
from app.models.models import Project, User
from app.models.payment_models import Payment, Subscription
from app.models.schemas import PaymentIntentCreate, SubscriptionIntentCreate

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "Tree planting donation"
INTERVAL_MONTHS = {"monthly": 1, "yearly": 12}


class PaymentService:
    """Creates pending payments and incomplete subscriptions for checkout."""

    def __init__(self, db: Session, base_url: str | None = None, public_id: str | None = None):
        self.db = db
        self.base_url = (base_url or settings.BASE_URL).rstrip("/")
        self.public_id = public_id if public_id is not None else settings.CLOUDPAYMENTS_PUBLIC_ID

    @staticmethod
    def _provider(value: str) -> PaymentProvider:
        provider = PaymentProvider.parse(value.lower())
        if provider is not PaymentProvider.CLOUDPAYMENTS:
            raise UnsupportedProviderError(value)
        return provider

    def _check_project(self, project_id: uuid.UUID | None) -> None:
        if project_id is not None and self.db.get(Project, project_id) is None:
            raise NotFoundError("Project", str(project_id))

    def create_payment_intent(self, user_id: uuid.UUID, req: PaymentIntentCreate) -> dict[str, Any]:
        provider = self._provider(req.provider)
        currency = Currency.parse(req.currency.upper())
        self._check_project(req.project_id)
        if req.referral_user_id is not None:
            if req.referral_user_id == user_id:
                raise InvalidRequestError("You cannot refer yourself", field="referral_user_id")
            if self.db.get(User, req.referral_user_id) is None:
                raise NotFoundError("Referral user", str(req.referral_user_id))

        payment_id = uuid.uuid4()
        payment = Payment(
            id=payment_id,
            provider=provider,
            provider_payment_id=str(payment_id),
            user_id=user_id,
            amount_minor=req.amount_minor,
            currency=currency.value,
            status=PaymentStatus.PENDING,
            meta={
                "success_return_url": req.success_return_url,
                "fail_return_url": req.fail_return_url,
                "description": req.description,
                "project_id": str(req.project_id) if req.project_id else None,
                "referral_user_id": str(req.referral_user_id) if req.referral_user_id else None,
            },
        )
        self.db.add(payment)
        self.db.commit()
        logger.info("Payment intent %s created for user %s (%s %s)", payment_id, user_id, req.amount_minor, currency.value)

        return {
            "provider": provider.value,
            "payment_id": payment_id,
            "redirect_url": f"{self.base_url}/pay/{payment_id}",
            "provider_payload": {
                "publicId": self.public_id,
                "amount": req.amount_minor,
                "currency": currency.value,
                "description": req.description or DEFAULT_DESCRIPTION,
                "accountId": str(user_id),
                "paymentId": str(payment_id),
            },
        }

    def create_subscription_intent(self, user_id: uuid.UUID, req: SubscriptionIntentCreate) -> dict[str, Any]:
        provider = self._provider(req.provider)
        currency = Currency.parse(req.currency.upper())
        self._check_project(req.project_id)
        interval_months = INTERVAL_MONTHS[req.interval] * req.interval_count

        subscription_id = uuid.uuid4()
        subscription = Subscription(
            id=subscription_id,
            user_id=user_id,
            provider=provider,
            provider_subscription_id=str(subscription_id),
            amount_minor=req.amount_minor,
            currency=currency.value,
            interval_months=interval_months,
            status=SubscriptionStatus.INCOMPLETE,
            meta={
                "success_return_url": req.success_return_url,
                "fail_return_url": req.fail_return_url,
                "project_id": str(req.project_id) if req.project_id else None,
            },
        )
        self.db.add(subscription)
        self.db.commit()
        logger.info("Subscription intent %s created for user %s every %s month(s)", subscription_id, user_id, interval_months)

        return {
            "provider": provider.value,
            "subscription_id": subscription_id,
            "redirect_url": f"{self.base_url}/subscribe/{subscription_id}",
            "provider_payload": {
                "publicId": self.public_id,
                "amount": req.amount_minor,
                "currency": currency.value,
                "description": "Recurring tree planting donation",
                "accountId": str(user_id),
                "subscriptionId": str(subscription_id),
                "interval": "Month",
                "period": interval_months,
            },
        }

    def list_subscriptions(self, user_id: uuid.UUID) -> list[Subscription]:
        stmt = (
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .order_by(Subscription.started_at.desc())
        )
        return list(self.db.execute(stmt).scalars().all())
