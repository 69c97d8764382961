from __future__ import annotations

import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)


class SignatureVerifier:
    """HMAC-SHA256 check of a raw webhook body against a shared secret.

    An empty secret disables verification entirely (local development only;
    production settings refuse to start without one).
    """

    def __init__(self, secret: str | None):
        self.secret = secret or ""

    @property
    def enabled(self) -> bool:
        return bool(self.secret)

    def compute(self, raw_body: bytes) -> str:
        return hmac.new(self.secret.encode(), raw_body, hashlib.sha256).hexdigest()

    def verify(self, raw_body: bytes, signature: str | None) -> bool:
        if not self.enabled:
            return True
        if not signature:
            return False
        expected = self.compute(raw_body)
        return hmac.compare_digest(expected, signature.strip().lower())
