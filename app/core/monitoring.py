"""Optional Sentry error reporting.

Webhook requests carry provider signatures and raw payment payloads; both are
scrubbed from events before they leave the process.
"""
from __future__ import annotations

import logging
from typing import Any

from app.core.config import settings

logger = logging.getLogger(__name__)

_SCRUBBED_HEADERS = {"authorization", "cookie", "content-hmac", "x-content-hmac"}
_initialized = False


def scrub_event(event: dict[str, Any], hint: dict[str, Any] | None = None) -> dict[str, Any]:
    """Drop credentials and webhook bodies from a Sentry event in place."""
    request = event.get("request") or {}
    headers = request.get("headers")
    if isinstance(headers, dict):
        signature_header = settings.WEBHOOK_SIGNATURE_HEADER.lower()
        for name in list(headers):
            if name.lower() in _SCRUBBED_HEADERS or name.lower() == signature_header:
                headers[name] = "[Filtered]"
    if str(request.get("url", "")).find("/webhooks/") != -1:
        request.pop("data", None)
    return event


def init_monitoring() -> None:
    global _initialized
    if _initialized:
        return
    dsn = settings.SENTRY_DSN
    if dsn:
        try:
            import sentry_sdk
            from sentry_sdk.integrations.fastapi import FastApiIntegration

            sentry_sdk.init(
                dsn=dsn,
                integrations=[FastApiIntegration()],
                traces_sample_rate=0.1,
                environment=settings.ENV,
                release=f"planet-backend@{settings.ENV}",
                send_default_pii=False,
                before_send=scrub_event,
            )
            logger.info("Sentry initialized")
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to init Sentry: %s", exc)
    _initialized = True
