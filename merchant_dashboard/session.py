"""
Session state for the signed-in merchant.

Held by the app and injected into the gateway, so the token has an explicit
set/get/clear lifecycle instead of living in a module global.
"""
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


class SessionState:
    """Bearer token and merchant record for the current session."""

    def __init__(self, default_merchant_id: str = "merchant123", token: Optional[str] = None):
        self._default_merchant_id = default_merchant_id
        self._token: Optional[str] = token or None
        self._merchant: Optional[dict[str, Any]] = None

    def set(self, token: str, merchant: Optional[dict[str, Any]] = None):
        """Store a fresh token (and the merchant it belongs to)."""
        self._token = token
        if merchant is not None:
            self._merchant = dict(merchant)
        logger.info("Session started for merchant %s", self.merchant_id)

    def get(self) -> Optional[str]:
        return self._token

    def clear(self):
        """Drop the token and merchant record."""
        if self._token:
            logger.info("Session cleared for merchant %s", self.merchant_id)
        self._token = None
        self._merchant = None

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    @property
    def merchant(self) -> Optional[dict[str, Any]]:
        return self._merchant

    @property
    def merchant_id(self) -> str:
        """Merchant id from the stored record, or the configured default."""
        if self._merchant and self._merchant.get("merchant_id"):
            return str(self._merchant["merchant_id"])
        return self._default_merchant_id
