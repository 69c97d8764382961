"""Decode and classify CloudPayments webhook payloads.

Everything here is pure: no database access and no logging side effects
beyond warnings about unparseable timestamps. The payload ``Type`` string is
mapped to one of four event shapes immediately after decoding so the rest of
the pipeline can dispatch on the class instead of on raw strings.
"""
from __future__ import annotations

import datetime as dt
import json
import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Union

from app.core.exceptions import TransientInputError
from app.models.enums import CURRENCY_EXPONENTS

logger = logging.getLogger(__name__)

SUCCEEDED = "Succeeded"


def decode_payload(raw_body: bytes) -> dict[str, Any]:
    try:
        payload = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise TransientInputError("malformed JSON") from exc
    if not isinstance(payload, dict):
        raise TransientInputError("payload is not a JSON object")
    return payload


def to_minor_units(amount: Any, currency: str) -> int:
    """Convert a major-unit amount (``95.00``) to integer minor units (``9500``).

    Goes through ``Decimal(str(...))`` so float payloads such as ``19.99``
    do not lose a unit to binary rounding.
    """
    if amount is None or isinstance(amount, bool):
        raise TransientInputError("missing or invalid Amount")
    try:
        value = Decimal(str(amount))
    except InvalidOperation as exc:
        raise TransientInputError("missing or invalid Amount") from exc
    if not value.is_finite():
        raise TransientInputError("missing or invalid Amount")
    exponent = CURRENCY_EXPONENTS.get(currency.upper(), 2)
    scaled = (value * (Decimal(10) ** exponent)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return int(scaled)


def parse_occurred_at(value: Any) -> dt.datetime | None:
    """Parse an RFC3339 timestamp; missing or malformed values yield None."""
    if not value:
        return None
    if not isinstance(value, str):
        logger.warning("Ignoring non-string OccurredAt value of type %s", type(value).__name__)
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(text)
    except ValueError:
        logger.warning("Unparseable OccurredAt %r; storing NULL", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


@dataclass(frozen=True)
class WebhookEventBase:
    event_type: str
    transaction_id: str
    raw: dict[str, Any] = field(repr=False, compare=False)

    @property
    def idempotency_key(self) -> str:
        # Scoped by type so a refund is never mistaken for a redelivery of its payment
        return f"{self.event_type}:{self.transaction_id}"

    @property
    def is_actionable(self) -> bool:
        return False


@dataclass(frozen=True)
class PaymentEvent(WebhookEventBase):
    amount_minor: int = 0
    currency: str = ""
    status: str = ""
    occurred_at: dt.datetime | None = None
    account_id: str | None = None

    @property
    def is_actionable(self) -> bool:
        return self.status == SUCCEEDED


@dataclass(frozen=True)
class SubscriptionChargeEvent(WebhookEventBase):
    amount_minor: int = 0
    currency: str = ""
    status: str = ""
    occurred_at: dt.datetime | None = None
    subscription_id: str = ""

    @property
    def is_actionable(self) -> bool:
        return self.status == SUCCEEDED


@dataclass(frozen=True)
class RefundEvent(WebhookEventBase):
    status: str = ""
    occurred_at: dt.datetime | None = None
    reason: str | None = None

    @property
    def is_actionable(self) -> bool:
        return True


@dataclass(frozen=True)
class UnknownEvent(WebhookEventBase):
    pass


ClassifiedEvent = Union[PaymentEvent, SubscriptionChargeEvent, RefundEvent, UnknownEvent]


def _required_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None or isinstance(value, (dict, list, bool)):
        raise TransientInputError(f"missing {key}")
    text = str(value).strip()
    if not text:
        raise TransientInputError(f"missing {key}")
    return text


def _optional_str(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def classify_event(payload: dict[str, Any]) -> ClassifiedEvent:
    event_type = str(payload.get("Type") or "").strip()
    transaction_id = _optional_str(payload, "TransactionId") or ""

    if event_type == "Payment":
        currency = _required_str(payload, "Currency").upper()
        return PaymentEvent(
            event_type=event_type,
            transaction_id=_required_str(payload, "TransactionId"),
            raw=payload,
            amount_minor=to_minor_units(payload.get("Amount"), currency),
            currency=currency,
            status=_optional_str(payload, "Status") or "",
            occurred_at=parse_occurred_at(payload.get("OccurredAt")),
            account_id=_optional_str(payload, "AccountId"),
        )
    if event_type == "SubscriptionCharge":
        currency = (_optional_str(payload, "Currency") or "").upper()
        return SubscriptionChargeEvent(
            event_type=event_type,
            transaction_id=_required_str(payload, "TransactionId"),
            raw=payload,
            amount_minor=to_minor_units(payload.get("Amount"), currency),
            currency=currency,
            status=_optional_str(payload, "Status") or "",
            occurred_at=parse_occurred_at(payload.get("OccurredAt")),
            subscription_id=_required_str(payload, "SubscriptionId"),
        )
    if event_type == "Refund":
        return RefundEvent(
            event_type=event_type,
            transaction_id=_required_str(payload, "TransactionId"),
            raw=payload,
            status=_optional_str(payload, "Status") or "",
            occurred_at=parse_occurred_at(payload.get("OccurredAt")),
            reason=_optional_str(payload, "Reason"),
        )
    return UnknownEvent(event_type=event_type or "unknown", transaction_id=transaction_id, raw=payload)
