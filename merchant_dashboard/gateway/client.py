"""
Merchant API gateway - async HTTP client for the storefront backend.

All persistence lives behind this API. The dashboard only ever talks to it
through MerchantGateway, which attaches the session token, tracks call
statistics and turns failures into GatewayError / AuthenticationExpired.
"""
import logging
import time
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from ..errors import AuthenticationExpired, GatewayError
from ..models import (
    DashboardAnalytics,
    MerchantProfile,
    Offer,
    Order,
    OrderStatus,
    Product,
    ShopStatus,
)
from ..session import SessionState
from .stats import GatewayStats

logger = logging.getLogger(__name__)


def normalize_offer(data: dict[str, Any]) -> Offer:
    """
    Resolve either offer payload shape into a single Offer.

    Catalog offers carry `offer_id`; the legacy product-embedded shape
    carries `id` and `value`.
    """
    try:
        return _build_offer(data or {})
    except ValidationError as e:
        raise GatewayError(None, f"Malformed offer payload: {e}") from e


def _build_offer(data: dict[str, Any]) -> Offer:
    if data.get("offer_id"):
        return Offer(
            schema_version=2,
            offer_id=str(data["offer_id"]),
            type=data.get("type", "percentage"),
            discount_value=data.get("discount_value", 0),
            name=data.get("name"),
            description=data.get("description") or "",
            custom_type=data.get("customType") or data.get("custom_type"),
            merchant_id=data.get("merchant_id"),
            level=data.get("level"),
            valid_from=data.get("valid_from"),
            valid_till=data.get("valid_till"),
            is_active=data.get("is_active", True),
            product_ids=data.get("product_ids") or [],
        )

    if data.get("id"):
        return Offer(
            schema_version=1,
            offer_id=str(data["id"]),
            type=data.get("type", "percentage"),
            discount_value=data.get("value", 0),
            description=data.get("description") or "",
            custom_type=data.get("customType") or data.get("custom_type"),
        )

    raise GatewayError(None, f"Malformed offer payload: {sorted(data)}")


def normalize_product(data: dict[str, Any]) -> Product:
    """Validate a product payload, normalizing its embedded offers."""
    payload = dict(data or {})
    payload["offers"] = [normalize_offer(o) for o in payload.get("offers") or []]
    return _validate(Product, payload, "product")


def _validate(model, payload: Any, what: str):
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise GatewayError(None, f"Malformed {what} payload: {e}") from e


def _unwrap_list(payload: Any, key: str) -> list:
    """Accept either a bare JSON list or an object wrapping one under `key`."""
    if payload is None:
        return []
    if isinstance(payload, dict):
        payload = payload.get(key, [])
    if not isinstance(payload, list):
        raise GatewayError(None, f"Expected a list of {key}, got {type(payload).__name__}")
    return payload


def _error_detail(response: httpx.Response) -> str:
    """Best human-readable detail from an error response."""
    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict):
        for key in ("detail", "message", "error"):
            if data.get(key):
                return str(data[key])

    return response.text[:200] or response.reason_phrase


class MerchantGateway:
    """HTTP client for the merchant API."""

    def __init__(
        self,
        base_url: str,
        session: SessionState,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        stats: Optional[GatewayStats] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )
        self.stats = stats or GatewayStats()

        logger.info("Merchant gateway initialized: %s", self._base_url)

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def session(self) -> SessionState:
        return self._session

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def close(self):
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Any] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        """
        Send one request and return the decoded JSON body (None if empty).

        Raises:
            AuthenticationExpired: the API answered 401; the session is cleared first.
            GatewayError: network failure, any other non-2xx status, or a non-JSON body.
        """
        headers = {}
        token = self._session.get()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        if params:
            params = {k: v for k, v in params.items() if v is not None}

        start_time = time.time()
        logger.debug("API call: %s %s", method, path)

        try:
            response = await self._client.request(
                method,
                path,
                json=json,
                params=params or None,
                headers=headers,
            )
        except httpx.RequestError as e:
            latency_ms = int((time.time() - start_time) * 1000)
            error_msg = f"Unable to connect to merchant API at {self._base_url}: {e!r}"
            self.stats.record_failure(method, path, latency_ms, error_msg)
            logger.error("API error: %s %s after %dms: %s", method, path, latency_ms, error_msg)
            raise GatewayError(None, error_msg) from e

        latency_ms = int((time.time() - start_time) * 1000)

        if response.status_code == 401:
            detail = _error_detail(response)
            self.stats.record_failure(method, path, latency_ms, detail, status_code=401)
            logger.error("Authentication error: %s %s - %s", method, path, detail)
            self._session.clear()
            raise AuthenticationExpired(detail)

        if not response.is_success:
            detail = _error_detail(response)
            self.stats.record_failure(method, path, latency_ms, detail, status_code=response.status_code)
            logger.error(
                "API error: %s %s - %d after %dms: %s",
                method, path, response.status_code, latency_ms, detail,
            )
            raise GatewayError(response.status_code, detail)

        self.stats.record_success(method, path, latency_ms, response.status_code)
        logger.debug("API success: %s %s - %d (%dms)", method, path, response.status_code, latency_ms)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise GatewayError(response.status_code, "Invalid JSON in response body") from e

    # =========================================================================
    # Orders
    # =========================================================================

    async def fetch_orders(self, status: Optional[OrderStatus] = None) -> list[Order]:
        """Fetch the authoritative order list, optionally filtered by status."""
        payload = await self._request("GET", "/orders", params={"status": status})
        return [_validate(Order, o, "order") for o in _unwrap_list(payload, "orders")]

    async def update_order_status(self, order_id: str, status: OrderStatus) -> Optional[Order]:
        """
        Persist a status change.

        Returns the updated order when the API echoes one back, else None.
        """
        payload = await self._request("PUT", f"/orders/{order_id}/status", json={"status": status})
        if isinstance(payload, dict) and "order_id" in payload:
            try:
                return Order.model_validate(payload)
            except ValidationError:
                logger.warning("Ignoring malformed order echo for %s", order_id)
        return None

    # =========================================================================
    # Products
    # =========================================================================

    async def fetch_products(
        self,
        category: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[Product]:
        payload = await self._request(
            "GET",
            "/products",
            params={"category": category, "status": status, "search": search},
        )
        return [normalize_product(p) for p in _unwrap_list(payload, "products")]

    async def get_product(self, product_id: str) -> Product:
        return normalize_product(await self._request("GET", f"/products/{product_id}"))

    async def create_product(self, data: dict[str, Any]) -> Product:
        return normalize_product(await self._request("POST", "/products", json=data))

    async def update_product(self, product_id: str, data: dict[str, Any]) -> Product:
        return normalize_product(await self._request("PUT", f"/products/{product_id}", json=data))

    async def delete_product(self, product_id: str) -> dict:
        return await self._request("DELETE", f"/products/{product_id}") or {}

    # =========================================================================
    # Offers
    # =========================================================================

    async def fetch_offers(self) -> list[Offer]:
        payload = await self._request("GET", "/offers")
        return [normalize_offer(o) for o in _unwrap_list(payload, "offers")]

    async def create_product_offer(self, product_id: str, data: dict[str, Any]) -> Offer:
        return normalize_offer(await self._request("POST", f"/products/{product_id}/offers", json=data))

    async def update_product_offer(self, product_id: str, offer_id: str, data: dict[str, Any]) -> Offer:
        return normalize_offer(
            await self._request("PUT", f"/products/{product_id}/offers/{offer_id}", json=data)
        )

    async def delete_product_offer(self, product_id: str, offer_id: str) -> dict:
        return await self._request("DELETE", f"/products/{product_id}/offers/{offer_id}") or {}

    async def create_shop_offer(self, shop_id: str, data: dict[str, Any]) -> Offer:
        return normalize_offer(await self._request("POST", f"/shops/{shop_id}/offers", json=data))

    async def update_shop_offer(self, shop_id: str, offer_id: str, data: dict[str, Any]) -> Offer:
        return normalize_offer(
            await self._request("PUT", f"/shops/{shop_id}/offers/{offer_id}", json=data)
        )

    async def delete_shop_offer(self, shop_id: str, offer_id: str) -> dict:
        return await self._request("DELETE", f"/shops/{shop_id}/offers/{offer_id}") or {}

    async def apply_offer_to_product(self, product_id: str, offer_id: str) -> dict:
        return await self._request(
            "POST",
            f"/products/{product_id}/apply-offer",
            json={"offer_id": offer_id},
        ) or {}

    async def apply_global_discount(self, data: dict[str, Any]) -> dict:
        merchant_id = self._session.merchant_id
        return await self._request(
            "POST",
            f"/merchants/{merchant_id}/apply-overall-discount",
            json=data,
        ) or {}

    # =========================================================================
    # Merchant profile, shop status, analytics
    # =========================================================================

    async def get_profile(self) -> MerchantProfile:
        return _validate(MerchantProfile, await self._request("GET", "/merchants/profile"), "profile")

    async def update_profile(self, data: dict[str, Any]) -> MerchantProfile:
        return _validate(
            MerchantProfile,
            await self._request("PUT", "/merchants/profile", json=data),
            "profile",
        )

    async def get_shop_status(self) -> ShopStatus:
        merchant_id = self._session.merchant_id
        return _validate(
            ShopStatus,
            await self._request("GET", f"/merchants/{merchant_id}/shop-status"),
            "shop status",
        )

    async def update_shop_status(self, data: dict[str, Any]) -> ShopStatus:
        merchant_id = self._session.merchant_id
        return _validate(
            ShopStatus,
            await self._request("PUT", f"/merchants/{merchant_id}/shop-status", json=data),
            "shop status",
        )

    async def get_dashboard(self) -> DashboardAnalytics:
        payload = dict(await self._request("GET", "/dashboard") or {})
        payload["top_products"] = [normalize_product(p) for p in payload.get("top_products") or []]
        return _validate(DashboardAnalytics, payload, "dashboard")

    # =========================================================================
    # Authentication
    # =========================================================================

    async def authenticate(self, access_token: str) -> dict:
        """
        Exchange a Google access token for a merchant session.

        Stores the returned token and merchant record in the session.
        """
        payload = await self._request("POST", "/auth/google", json={"access_token": access_token})
        if not isinstance(payload, dict) or not payload.get("token"):
            raise GatewayError(None, "Authentication response did not include a token")

        self._session.set(payload["token"], payload.get("merchant"))
        return payload

    async def logout(self):
        """End the session upstream. The local session is cleared regardless."""
        try:
            await self._request("POST", "/auth/logout")
        finally:
            self._session.clear()
