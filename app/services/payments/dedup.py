"""Idempotency gate for inbound webhooks.

The unique index on ``webhook_events.event_idempotency`` is the authoritative
guard. ``admit`` inserts the claim row inside a SAVEPOINT; if a concurrent or
earlier delivery already holds the key the insert violates the index, the
savepoint is rolled back and the delivery is recorded as a duplicate. A
read-before-write is done first only to keep the common redelivery path free
of integrity errors in the logs.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.enums import PaymentProvider
from app.models.payment_models import WebhookEvent

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 500


class Admission(str, enum.Enum):
    ADMITTED = "admitted"
    DUPLICATE = "duplicate"


@dataclass
class DeliveryRecord:
    """What is known about one inbound delivery before it is written."""

    provider: PaymentProvider
    event_type: str
    idempotency_key: str | None
    raw_payload: Any
    signature_ok: bool


def bound_error(message: str | None) -> str | None:
    if message is None:
        return None
    return message[:MAX_ERROR_LENGTH]


class WebhookDeduplicator:
    def __init__(self, db: Session):
        self.db = db
        self.claim: WebhookEvent | None = None

    def is_claimed(self, key: str) -> bool:
        stmt = select(WebhookEvent.id).where(WebhookEvent.event_idempotency == key).limit(1)
        return self.db.execute(stmt).first() is not None

    def admit(self, record: DeliveryRecord) -> Admission:
        key = record.idempotency_key
        if not key:
            raise ValueError("cannot admit a delivery without an idempotency key")

        if not self.is_claimed(key):
            claim = self._new_row(record, claimed=True)
            try:
                with self.db.begin_nested():
                    self.db.add(claim)
                    self.db.flush()
            except IntegrityError:
                logger.info("Lost idempotency race for key=%s provider=%s", key, record.provider.value)
            else:
                self.claim = claim
                return Admission.ADMITTED

        duplicate = self._new_row(record, claimed=False)
        duplicate.processed_ok = True
        self.db.add(duplicate)
        self.db.flush()
        logger.info("Duplicate webhook delivery key=%s provider=%s", key, record.provider.value)
        return Admission.DUPLICATE

    def record_outcome(self, processed_ok: bool, error: str | None = None) -> WebhookEvent:
        """Write the processing result onto the row that claimed the key."""
        if self.claim is None:
            raise RuntimeError("record_outcome called before a successful admit")
        self.claim.processed_ok = processed_ok
        self.claim.processing_error = bound_error(error)
        self.db.flush()
        return self.claim

    def record_unclaimed(
        self,
        record: DeliveryRecord,
        processed_ok: bool,
        error: str | None = None,
    ) -> WebhookEvent:
        """Audit a delivery that does not hold the idempotency claim."""
        row = self._new_row(record, claimed=False)
        row.processed_ok = processed_ok
        row.processing_error = bound_error(error)
        self.db.add(row)
        self.db.flush()
        return row

    @staticmethod
    def _new_row(record: DeliveryRecord, claimed: bool) -> WebhookEvent:
        return WebhookEvent(
            provider=record.provider,
            event_type=record.event_type[:64],
            event_idempotency=record.idempotency_key if claimed else None,
            delivery_key=record.idempotency_key,
            raw_payload=record.raw_payload,
            signature_ok=record.signature_ok,
            processed_ok=False,
        )
