"""Exception hierarchy for the 4Planet backend.

Every application error carries a stable code, an HTTP status and a short
public message. The message is what clients and payment providers see; it
must never contain secrets, SQL or stack traces.

Error codes follow pattern: [CATEGORY][NUMBER]
- WHK: Webhook ingestion errors (100-199)
- PAY: Settlement errors (200-299)
- VAL: Boundary validation errors (300-399)
- RES: Resource lookup errors (400-499)
"""

from __future__ import annotations

from typing import Any


class PlanetException(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response format."""
        return {
            "error": {
                "message": self.message,
                "code": self.code,
                "details": self.details,
            }
        }


# ============================================================================
# WEBHOOK ERRORS (WHK100-199)
# ============================================================================

class WebhookError(PlanetException):
    """Base class for webhook ingestion errors."""
    pass


class TransientInputError(WebhookError):
    """Payload could not be decoded or its event type is unknown.

    Recorded on the webhook log and acknowledged: redelivering the same bytes
    cannot succeed, so the provider should not retry.
    """

    def __init__(self, reason: str):
        super().__init__(
            message=f"Unprocessable webhook payload: {reason}",
            code="WHK100",
            status_code=200,
            details={"reason": reason},
        )


class SignatureInvalidError(WebhookError):
    """Webhook body does not match the provided HMAC signature."""

    def __init__(self):
        super().__init__(
            message="Invalid webhook signature",
            code="WHK101",
            status_code=401,
        )


class UnsupportedProviderError(WebhookError):
    """No webhook adapter exists for the requested provider."""

    def __init__(self, provider: str):
        super().__init__(
            message=f"Unsupported payment provider: {provider}",
            code="WHK102",
            status_code=404,
            details={"provider": provider},
        )


# ============================================================================
# SETTLEMENT ERRORS (PAY200-299)
# ============================================================================

class SettlementError(PlanetException):
    """Base class for errors that abort a settlement.

    Any of these rolls back the whole settlement transaction and asks the
    provider to redeliver.
    """
    pass


class ReferenceNotFoundError(SettlementError):
    """Payment or subscription referenced by a webhook does not exist."""

    def __init__(self, kind: str, external_id: str | None):
        super().__init__(
            message=f"{kind.capitalize()} not found",
            code="PAY200",
            status_code=404,
            details={"kind": kind, "external_id": external_id},
        )


class PriceNotConfiguredError(SettlementError):
    """No tree price is configured for the payment currency."""

    def __init__(self, currency: str):
        super().__init__(
            message=f"Tree price not configured for currency {currency}",
            code="PAY201",
            status_code=500,
            details={"currency": currency},
        )


class DonationOwnerMissingError(SettlementError):
    """Settled payment has no owning user, so no donation can be recorded."""

    def __init__(self, payment_id: str):
        super().__init__(
            message="Payment has no owning user",
            code="PAY202",
            status_code=500,
            details={"payment_id": payment_id},
        )


class InternalSettlementError(SettlementError):
    """Settlement raised something unexpected; details stay in the server log."""

    def __init__(self):
        super().__init__(
            message="Internal settlement error",
            code="PAY299",
            status_code=500,
        )


# ============================================================================
# VALIDATION ERRORS (VAL300-399)
# ============================================================================

class InvalidEnumValueError(PlanetException):
    """A string did not match any member of a closed value set."""

    def __init__(self, enum_name: str, value: Any, allowed: list[str]):
        super().__init__(
            message=f"Invalid {enum_name}: {value!r}",
            code="VAL300",
            status_code=400,
            details={"allowed": allowed},
        )


class InvalidRequestError(PlanetException):
    """Request passed schema validation but violates a business rule."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(
            message=message,
            code="VAL301",
            status_code=400,
            details={"field": field} if field else {},
        )


# ============================================================================
# RESOURCE ERRORS (RES400-499)
# ============================================================================

class NotFoundError(PlanetException):
    """Requested resource does not exist or is not visible to the caller."""

    def __init__(self, resource: str, identifier: str | None = None):
        message = f"{resource} not found"
        super().__init__(
            message=message,
            code="RES400",
            status_code=404,
            details={"id": identifier} if identifier else {},
        )
