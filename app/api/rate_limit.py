import logging

from slowapi import Limiter
from slowapi.util import get_remote_address

try:  # pragma: no cover
    from prometheus_client import Counter
    _PROM_RATE_LIMIT = Counter("planet_rate_limit_exceeded_events", "Rate limit exceeded events (handler invocations)")
except Exception:  # noqa: BLE001
    _PROM_RATE_LIMIT = None

from app.core.config import settings

logger = logging.getLogger(__name__)

# Webhooks are keyed by client address: providers deliver from a small set of IPs
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    enabled=settings.RATE_LIMIT_ENABLED,
)
if not settings.RATE_LIMIT_ENABLED:
    logger.info("Rate limiting disabled for ENV=%s", settings.ENV)

RATE_LIMITS = {
    "webhook": settings.WEBHOOK_RATE_LIMIT,
    "intent": "30/minute",
    "share_create": "30/minute",
}


def increment_rate_limit_exceeded(path: str = ""):
    logger.warning("Rate limit exceeded path=%s", path)
    if _PROM_RATE_LIMIT:
        _PROM_RATE_LIMIT.inc()
