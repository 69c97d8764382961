"""Settlement of classified webhook events.

Converts an admitted, actionable event into durable state:

- Payment:            pending payment -> succeeded, then a donation
- SubscriptionCharge: new succeeded payment under the subscription, then a donation
- Refund:             payment -> refunded (donation and counters are left as they are)

A success for a payment that is already refunded, or that already carries a
donation, is acknowledged as a no-op: trees are credited at most once per
payment and a refunded payment stays refunded.

The engine only flushes. The caller owns the transaction, so any error raised
here leaves nothing behind once the caller rolls back. Donation creation
checks the tree price before touching the payment row.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import (
    DonationOwnerMissingError,
    PriceNotConfiguredError,
    ReferenceNotFoundError,
)
from app.models.enums import PaymentProvider, PaymentStatus, utcnow
from app.models.models import Project, User
from app.models.payment_models import Donation, Payment, Subscription
from app.services.payments.classifier import (
    ClassifiedEvent,
    PaymentEvent,
    RefundEvent,
    SubscriptionChargeEvent,
    UnknownEvent,
)

logger = logging.getLogger(__name__)


class PriceLookup(Protocol):
    def get_price_by_currency(self, currency: str) -> int | None: ...


class CounterStore(Protocol):
    def increment_counters(self, user_id: uuid.UUID, tree_delta: int, donated_at=None) -> int: ...


@dataclass
class SettlementResult:
    action: str
    payment_id: uuid.UUID
    donation_id: uuid.UUID | None = None
    user_id: uuid.UUID | None = None
    trees: int = 0
    total_trees: int | None = None
    currency: str | None = None

    @property
    def created_donation(self) -> bool:
        return self.donation_id is not None


def _meta_uuid(meta: dict[str, Any] | None, key: str) -> uuid.UUID | None:
    if not isinstance(meta, dict):
        return None
    value = meta.get(key)
    if value is None:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        logger.warning("Ignoring malformed %s in payment meta: %r", key, value)
        return None


class SettlementEngine:
    def __init__(
        self,
        db: Session,
        prices: PriceLookup,
        users: CounterStore,
        provider: PaymentProvider = PaymentProvider.CLOUDPAYMENTS,
    ):
        self.db = db
        self.prices = prices
        self.users = users
        self.provider = provider

    def settle(self, event: ClassifiedEvent) -> SettlementResult:
        if isinstance(event, PaymentEvent):
            return self._settle_payment(event)
        if isinstance(event, SubscriptionChargeEvent):
            return self._settle_subscription_charge(event)
        if isinstance(event, RefundEvent):
            return self._settle_refund(event)
        if isinstance(event, UnknownEvent):
            raise ValueError(f"cannot settle unknown event type {event.event_type!r}")
        raise TypeError(f"unsupported event class {type(event).__name__}")

    # ---------------------------------------------------------------- lookups

    def _find_payment(self, external_id: str) -> Payment | None:
        return self.db.execute(
            select(Payment).where(Payment.provider_payment_id == external_id)
        ).scalar_one_or_none()

    def _payment_by_external_id(self, external_id: str) -> Payment:
        payment = self._find_payment(external_id)
        if payment is None:
            raise ReferenceNotFoundError("payment", external_id)
        return payment

    def _subscription_by_external_id(self, external_id: str) -> Subscription:
        subscription = self.db.execute(
            select(Subscription).where(Subscription.provider_subscription_id == external_id)
        ).scalar_one_or_none()
        if subscription is None:
            raise ReferenceNotFoundError("subscription", external_id)
        return subscription

    def _already_settled(self, payment: Payment) -> SettlementResult | None:
        if payment.status == PaymentStatus.REFUNDED:
            logger.info("Payment %s already refunded; ignoring late success", payment.id)
            return SettlementResult(
                action="already_refunded",
                payment_id=payment.id,
                user_id=payment.user_id,
                currency=payment.currency,
            )
        donation_id = self.db.execute(
            select(Donation.id).where(Donation.payment_id == payment.id)
        ).scalar_one_or_none()
        if donation_id is not None:
            logger.info("Payment %s already has donation %s; nothing to settle", payment.id, donation_id)
            return SettlementResult(
                action="already_settled",
                payment_id=payment.id,
                user_id=payment.user_id,
                currency=payment.currency,
            )
        return None

    def _price_for(self, currency: str) -> int:
        price = self.prices.get_price_by_currency(currency)
        if not price or price <= 0:
            raise PriceNotConfiguredError(currency)
        return price

    # --------------------------------------------------------------- branches

    def _settle_payment(self, event: PaymentEvent) -> SettlementResult:
        payment = self._payment_by_external_id(event.transaction_id)
        settled = self._already_settled(payment)
        if settled is not None:
            return settled
        if payment.user_id is None:
            raise DonationOwnerMissingError(str(payment.id))
        price = self._price_for(payment.currency)

        payment.status = PaymentStatus.SUCCEEDED
        payment.occurred_at = event.occurred_at
        payment.meta = {**(payment.meta or {}), "webhook_processed": True}
        self.db.flush()

        result = self._create_donation(payment, price)
        result.action = "payment_settled"
        return result

    def _settle_subscription_charge(self, event: SubscriptionChargeEvent) -> SettlementResult:
        subscription = self._subscription_by_external_id(event.subscription_id)
        currency = event.currency or subscription.currency
        price = self._price_for(currency)

        payment = self._find_payment(event.transaction_id)
        if payment is not None:
            settled = self._already_settled(payment)
            if settled is not None:
                return settled
            payment.subscription_id = payment.subscription_id or subscription.id
            payment.status = PaymentStatus.SUCCEEDED
            payment.occurred_at = event.occurred_at
            payment.meta = {**(payment.meta or {}), "subscription_charge": True, "webhook_processed": True}
            self.db.flush()
            result = self._create_donation(payment, price)
            result.action = "subscription_charge_settled"
            return result

        payment = Payment(
            provider=subscription.provider,
            provider_payment_id=event.transaction_id,
            user_id=subscription.user_id,
            subscription_id=subscription.id,
            amount_minor=event.amount_minor,
            currency=currency,
            status=PaymentStatus.SUCCEEDED,
            occurred_at=event.occurred_at,
            meta={
                "subscription_charge": True,
                "webhook_processed": True,
                **{k: v for k, v in (subscription.meta or {}).items() if k == "project_id"},
            },
        )
        self.db.add(payment)
        self.db.flush()

        result = self._create_donation(payment, price)
        result.action = "subscription_charge_settled"
        return result

    def _settle_refund(self, event: RefundEvent) -> SettlementResult:
        payment = self._payment_by_external_id(event.transaction_id)
        payment.status = PaymentStatus.REFUNDED
        payment.occurred_at = event.occurred_at
        payment.meta = {
            **(payment.meta or {}),
            "refund_reason": event.reason,
            "webhook_processed": True,
        }
        self.db.flush()
        logger.info("Payment %s refunded; donation and counters unchanged", payment.id)
        return SettlementResult(
            action="refund_recorded",
            payment_id=payment.id,
            user_id=payment.user_id,
            currency=payment.currency,
        )

    # --------------------------------------------------------------- donation

    def _create_donation(self, payment: Payment, price_minor: int) -> SettlementResult:
        if payment.user_id is None:
            raise DonationOwnerMissingError(str(payment.id))

        trees = payment.amount_minor // price_minor
        project_id = self._existing(Project, _meta_uuid(payment.meta, "project_id"))
        referral_user_id = self._existing(User, _meta_uuid(payment.meta, "referral_user_id"))
        if referral_user_id == payment.user_id:
            referral_user_id = None

        donation = Donation(
            user_id=payment.user_id,
            payment_id=payment.id,
            project_id=project_id,
            referral_user_id=referral_user_id,
            trees_count=trees,
            created_at=utcnow(),
        )
        self.db.add(donation)
        self.db.flush()

        total = self.users.increment_counters(payment.user_id, trees, donation.created_at)
        logger.info(
            "Donation %s: payment=%s user=%s trees=%s total=%s",
            donation.id,
            payment.id,
            payment.user_id,
            trees,
            total,
        )
        return SettlementResult(
            action="donation_created",
            payment_id=payment.id,
            donation_id=donation.id,
            user_id=payment.user_id,
            trees=trees,
            total_trees=total,
            currency=payment.currency,
        )

    def _existing(self, model, ident: uuid.UUID | None) -> uuid.UUID | None:
        if ident is None:
            return None
        if self.db.get(model, ident) is None:
            logger.warning("Ignoring reference to missing %s %s", model.__tablename__, ident)
            return None
        return ident
