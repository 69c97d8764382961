"""Payment webhook ingestion and donation settlement."""
from .classifier import (
    PaymentEvent,
    RefundEvent,
    SubscriptionChargeEvent,
    UnknownEvent,
    classify_event,
    decode_payload,
)
from .dedup import Admission, DeliveryRecord, WebhookDeduplicator
from .settlement import SettlementEngine, SettlementResult
from .signature import SignatureVerifier
from .webhook_service import WebhookResult, WebhookService, build_webhook_service

__all__ = [
    # Classification
    "PaymentEvent",
    "RefundEvent",
    "SubscriptionChargeEvent",
    "UnknownEvent",
    "classify_event",
    "decode_payload",
    # Idempotency
    "Admission",
    "DeliveryRecord",
    "WebhookDeduplicator",
    # Settlement
    "SettlementEngine",
    "SettlementResult",
    "SignatureVerifier",
    # Entry point
    "WebhookResult",
    "WebhookService",
    "build_webhook_service",
]
