"""Closed value sets shared by models, schemas and the webhook pipeline."""
from __future__ import annotations

import datetime as dt
import enum

from sqlalchemy import Enum

from app.core.exceptions import InvalidEnumValueError


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class ParsableEnum(str, enum.Enum):
    """String enum with strict parsing at deserialization boundaries."""

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidEnumValueError(cls.__name__, value, [m.value for m in cls]) from None


def enum_column(enum_cls: type[enum.Enum], name: str) -> Enum:
    """Persist enum *values* (lowercase strings) rather than member names."""
    return Enum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e], validate_strings=True)


class ProjectStatus(ParsableEnum):
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ShareKind(ParsableEnum):
    PROFILE = "profile"
    DONATION = "donation"


class PaymentStatus(ParsableEnum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELED = "canceled"


class PaymentProvider(ParsableEnum):
    CLOUDPAYMENTS = "cloudpayments"
    KASPI = "kaspi"
    PAYPAL = "paypal"
    TRIBUTE = "tribute"


class SubscriptionStatus(ParsableEnum):
    INCOMPLETE = "incomplete"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    PAUSED = "paused"
    CANCELED = "canceled"


class Currency(ParsableEnum):
    RUB = "RUB"
    KZT = "KZT"
    USD = "USD"
    EUR = "EUR"

    @property
    def exponent(self) -> int:
        """Number of minor-unit digits. All supported currencies use two."""
        return CURRENCY_EXPONENTS.get(self.value, 2)


# ISO 4217 minor-unit digits; currencies absent here default to 2
CURRENCY_EXPONENTS: dict[str, int] = {
    "RUB": 2,
    "KZT": 2,
    "USD": 2,
    "EUR": 2,
    "JPY": 0,
    "KRW": 0,
}
