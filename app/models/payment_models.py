"""Payment, subscription, donation and webhook log models."""
from __future__ import annotations

import datetime as dt
import uuid
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import JSON, BigInteger, Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db.base_class import Base
from app.models.enums import (
    PaymentProvider,
    PaymentStatus,
    SubscriptionStatus,
    enum_column,
    utcnow,
)

if TYPE_CHECKING:
    from app.models.models import Project, User


class Subscription(Base):
    """
    Recurring donation agreement.

    Flow:
    1. User requests a subscription intent → status=INCOMPLETE
    2. Each SubscriptionCharge webhook → new Payment + Donation linked here
    """
    __tablename__ = "subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    provider: Mapped[PaymentProvider] = mapped_column(enum_column(PaymentProvider, "payment_provider"))
    provider_customer_id: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    provider_subscription_id: Mapped[Optional[str]] = mapped_column(String(120), unique=True, nullable=True)
    amount_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    interval_months: Mapped[int] = mapped_column(Integer, default=1, server_default="1", nullable=False)
    status: Mapped[SubscriptionStatus] = mapped_column(
        enum_column(SubscriptionStatus, "subscription_status"),
        default=SubscriptionStatus.INCOMPLETE,
    )
    started_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )
    canceled_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    meta: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    user: Mapped["User"] = relationship(back_populates="subscriptions")
    payments: Mapped[list["Payment"]] = relationship(back_populates="subscription")


class Payment(Base):
    """
    One monetary movement.

    Created PENDING by a payment intent (or directly SUCCEEDED for a
    subscription charge). Only settlement moves it to SUCCEEDED or REFUNDED.
    Never deleted.
    """
    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    provider: Mapped[PaymentProvider] = mapped_column(enum_column(PaymentProvider, "payment_provider"))
    provider_payment_id: Mapped[Optional[str]] = mapped_column(String(120), unique=True, nullable=True)
    """Provider transaction id; the key webhooks are matched on"""

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    subscription_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True, index=True
    )
    amount_minor: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        enum_column(PaymentStatus, "payment_status"),
        default=PaymentStatus.PENDING,
        index=True,
    )
    occurred_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    meta: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )

    user: Mapped[Optional["User"]] = relationship(back_populates="payments")
    subscription: Mapped[Optional[Subscription]] = relationship(back_populates="payments")
    donation: Mapped[Optional["Donation"]] = relationship(back_populates="payment", uselist=False)

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, provider_payment_id={self.provider_payment_id}, status={self.status})>"


class Donation(Base):
    """Ledger of record: one row per settled payment, never mutated."""
    __tablename__ = "donations"
    __table_args__ = (CheckConstraint("trees_count >= 0", name="ck_donations_trees_non_negative"),)

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    payment_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("payments.id", ondelete="RESTRICT"), unique=True, nullable=False
    )
    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True
    )
    referral_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    trees_count: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        index=True,
    )

    user: Mapped["User"] = relationship(back_populates="donations", foreign_keys=[user_id])
    payment: Mapped[Payment] = relationship(back_populates="donation")
    project: Mapped[Optional["Project"]] = relationship()
    referral_user: Mapped[Optional["User"]] = relationship(foreign_keys=[referral_user_id])


class WebhookEvent(Base):
    """
    Append-only log of inbound webhook deliveries.

    ``event_idempotency`` is set only on the delivery that claimed the key and
    carries the unique index that makes settlement exactly-once. Every other
    delivery (duplicates, ignored statuses, failures) records the key in
    ``delivery_key`` only, so a failed settlement never blocks a retry.
    """
    __tablename__ = "webhook_events"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    provider: Mapped[PaymentProvider] = mapped_column(
        enum_column(PaymentProvider, "payment_provider"), index=True
    )
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    event_idempotency: Mapped[Optional[str]] = mapped_column(String(200), unique=True, nullable=True)
    delivery_key: Mapped[Optional[str]] = mapped_column(String(200), nullable=True, index=True)
    received_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        index=True,
    )
    raw_payload: Mapped[Any] = mapped_column(JSON, nullable=False)
    signature_ok: Mapped[bool] = mapped_column(Boolean, nullable=False)
    processed_ok: Mapped[bool] = mapped_column(Boolean, default=False, server_default="0", nullable=False)
    processing_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
