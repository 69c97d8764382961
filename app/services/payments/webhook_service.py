"""Webhook ingestion entry point.

``handle_webhook`` runs one delivery through the pipeline

    verify -> decode/classify -> admit -> settle -> (after commit) achievements

and always answers with a ``WebhookResult`` instead of raising, so the HTTP
layer only has to copy the status and body. Status policy:

- 200 for anything the provider should not resend: settled, duplicate,
  ignored statuses, and payloads that can never be processed
- 401 for a bad signature when the deployment rejects them
- 404 for an unknown provider path or a payment/subscription we do not know
- 500 for settlement failures such as a missing tree price
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from app import metrics
from app.core.config import settings
from app.core.exceptions import (
    InternalSettlementError,
    InvalidEnumValueError,
    PlanetException,
    SettlementError,
    SignatureInvalidError,
    TransientInputError,
    UnsupportedProviderError,
)
from app.models.enums import PaymentProvider
from app.services.achievement_service import AchievementService
from app.services.payments.classifier import (
    ClassifiedEvent,
    UnknownEvent,
    classify_event,
    decode_payload,
)
from app.services.payments.dedup import Admission, DeliveryRecord, WebhookDeduplicator
from app.services.payments.settlement import SettlementEngine, SettlementResult
from app.services.payments.signature import SignatureVerifier
from app.services.price_service import PriceService
from app.services.user_service import UserService

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = {PaymentProvider.CLOUDPAYMENTS}
MAX_RAW_TEXT = 10_000


@dataclass
class WebhookResult:
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)


def _ok(status: str, **extra: Any) -> WebhookResult:
    return WebhookResult(200, {"status": status, **extra})


def _error(exc: PlanetException) -> WebhookResult:
    return WebhookResult(exc.status_code, exc.to_dict())


class WebhookService:
    def __init__(
        self,
        db: Session,
        verifier: SignatureVerifier,
        reject_invalid_signature: bool = True,
    ):
        self.db = db
        self.verifier = verifier
        self.reject_invalid_signature = reject_invalid_signature

    def handle_webhook(self, provider: str, raw_body: bytes, signature: str | None) -> WebhookResult:
        try:
            provider_enum = self._resolve_provider(provider)
        except UnsupportedProviderError as exc:
            logger.warning("Webhook for unsupported provider %r", provider)
            metrics.webhook_event(str(provider)[:32], "unsupported")
            return _error(exc)

        signature_ok = self.verifier.verify(raw_body, signature)
        dedup = WebhookDeduplicator(self.db)

        payload: Any = None
        event: ClassifiedEvent | None = None
        input_error: TransientInputError | None = None
        try:
            payload = decode_payload(raw_body)
            event = classify_event(payload)
            if isinstance(event, UnknownEvent):
                raise TransientInputError(f"unknown event type {event.event_type!r}")
        except TransientInputError as exc:
            input_error = exc

        record = DeliveryRecord(
            provider=provider_enum,
            event_type=self._event_type(payload, event),
            idempotency_key=self._key(event),
            raw_payload=payload if payload is not None else self._raw_text(raw_body),
            signature_ok=signature_ok,
        )

        if not signature_ok:
            logger.warning(
                "Invalid webhook signature provider=%s key=%s reject=%s",
                provider_enum.value,
                record.idempotency_key,
                self.reject_invalid_signature,
            )
            if self.reject_invalid_signature:
                rejected = SignatureInvalidError()
                dedup.record_unclaimed(record, processed_ok=False, error=rejected.message)
                self.db.commit()
                metrics.webhook_event(provider_enum.value, "rejected")
                return _error(rejected)

        if input_error is not None:
            logger.warning("Unprocessable webhook provider=%s: %s", provider_enum.value, input_error.message)
            dedup.record_unclaimed(record, processed_ok=False, error=input_error.message)
            self.db.commit()
            metrics.webhook_event(provider_enum.value, "invalid")
            return _error(input_error)

        assert event is not None
        if not event.is_actionable:
            logger.info(
                "Ignoring %s with status %r key=%s",
                event.event_type,
                getattr(event, "status", None),
                record.idempotency_key,
            )
            dedup.record_unclaimed(record, processed_ok=True)
            self.db.commit()
            metrics.webhook_event(provider_enum.value, "ignored")
            return _ok("ignored")

        if dedup.admit(record) is Admission.DUPLICATE:
            self.db.commit()
            metrics.webhook_event(provider_enum.value, "duplicate")
            return _ok("duplicate")

        engine = SettlementEngine(
            self.db,
            prices=PriceService(self.db),
            users=UserService(self.db),
            provider=provider_enum,
        )
        timer = metrics.SettlementTimer()
        try:
            result = engine.settle(event)
            dedup.record_outcome(processed_ok=True)
            self.db.commit()
        except SettlementError as exc:
            self.db.rollback()
            logger.warning(
                "Settlement failed provider=%s key=%s code=%s: %s",
                provider_enum.value,
                record.idempotency_key,
                exc.code,
                exc.message,
            )
            self._record_failure(record, exc.message)
            metrics.webhook_event(provider_enum.value, "failed")
            return _error(exc)
        except Exception:  # noqa: BLE001
            self.db.rollback()
            logger.exception(
                "Unexpected settlement error provider=%s key=%s", provider_enum.value, record.idempotency_key
            )
            internal = InternalSettlementError()
            self._record_failure(record, internal.message)
            metrics.webhook_event(provider_enum.value, "failed")
            return _error(internal)
        finally:
            timer.stop()

        logger.info(
            "Settled webhook provider=%s key=%s action=%s trees=%s",
            provider_enum.value,
            record.idempotency_key,
            result.action,
            result.trees,
        )
        metrics.webhook_event(provider_enum.value, "processed")
        if result.created_donation:
            metrics.donation_settled(result.currency or "", result.trees)
            self._evaluate_achievements(result)
        return _ok("processed", action=result.action)

    def _evaluate_achievements(self, result: SettlementResult) -> None:
        """Best-effort follow-up in its own transaction; never affects the response."""
        if result.user_id is None or result.total_trees is None:
            return
        try:
            granted = AchievementService(self.db).evaluate(result.user_id, result.total_trees)
            self.db.commit()
        except Exception:  # noqa: BLE001
            self.db.rollback()
            logger.exception("Achievement evaluation failed for user %s", result.user_id)
            metrics.achievement_evaluation_failed()
            return
        metrics.achievements_granted(len(granted))

    def _record_failure(self, record: DeliveryRecord, message: str) -> None:
        # The claim was rolled back with the settlement, so a redelivery can retry
        WebhookDeduplicator(self.db).record_unclaimed(record, processed_ok=False, error=message)
        self.db.commit()

    @staticmethod
    def _resolve_provider(provider: str) -> PaymentProvider:
        try:
            provider_enum = PaymentProvider.parse((provider or "").lower())
        except InvalidEnumValueError:
            raise UnsupportedProviderError(provider) from None
        if provider_enum not in SUPPORTED_PROVIDERS:
            raise UnsupportedProviderError(provider)
        return provider_enum

    @staticmethod
    def _event_type(payload: Any, event: ClassifiedEvent | None) -> str:
        if event is not None:
            return event.event_type
        if isinstance(payload, dict) and payload.get("Type"):
            return str(payload["Type"])
        return "unknown"

    @staticmethod
    def _key(event: ClassifiedEvent | None) -> str | None:
        if event is None or not event.transaction_id:
            return None
        return event.idempotency_key

    @staticmethod
    def _raw_text(raw_body: bytes) -> dict[str, str]:
        return {"raw": raw_body.decode("utf-8", errors="replace")[:MAX_RAW_TEXT]}


def build_webhook_service(db: Session) -> WebhookService:
    return WebhookService(
        db,
        SignatureVerifier(settings.CLOUDPAYMENTS_SECRET),
        reject_invalid_signature=settings.WEBHOOK_REJECT_INVALID_SIGNATURE,
    )
