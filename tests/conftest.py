import json
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
import pytest

from merchant_dashboard.gateway import MerchantGateway
from merchant_dashboard.models import Order
from merchant_dashboard.notifications import Notifier
from merchant_dashboard.orders import CountdownEngine, OrderStore, StatusTransitionController
from merchant_dashboard.session import SessionState

T0 = datetime(2025, 3, 14, 12, 0, 0, tzinfo=timezone.utc)
BASE_URL = "http://merchant.test"


class FakeClock:
    """Mutable time source; tests move it by hand."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)

    def set(self, seconds_after_start: float):
        self.now = T0 + timedelta(seconds=seconds_after_start)


def order_payload(order_id: str = "ORD-1", status: str = "pending", **overrides) -> dict:
    """An order as the merchant API would send it."""
    payload = {
        "order_id": order_id,
        "customer_name": "Asha Rao",
        "customer_phone": "+91 98450 12345",
        "customer_address": "12 MG Road, Bengaluru",
        "items": [
            {"product_id": "P-1", "product_name": "Masala Dosa", "quantity": 2, "price": 80},
            {"product_id": "P-2", "product_name": "Filter Coffee", "quantity": 1, "price": 40},
        ],
        "total_amount": 200,
        "status": status,
        "order_time": "2025-03-14T11:58:00Z",
    }
    payload.update(overrides)
    return payload


def make_order(order_id: str = "ORD-1", status: str = "pending", **overrides) -> Order:
    return Order.model_validate(order_payload(order_id, status, **overrides))


class FakeMerchantAPI:
    """Just enough of the merchant API for the order core, served through MockTransport."""

    def __init__(self):
        self.orders: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []
        self.status_failures: dict[str, tuple[int, dict]] = {}
        self.routes: dict[tuple[str, str], httpx.Response] = {}

    def add(self, payload: dict):
        self.orders[payload["order_id"]] = payload

    def fail_status_update(self, order_id: str, status_code: int = 500, body: Optional[dict] = None):
        self.status_failures[order_id] = (status_code, body or {"detail": "Internal error"})

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        method, path = request.method, request.url.path

        if (method, path) in self.routes:
            return self.routes[(method, path)]

        if method == "GET" and path == "/orders":
            status = request.url.params.get("status")
            orders = [o for o in self.orders.values() if status is None or o["status"] == status]
            return httpx.Response(200, json=orders)

        match = re.fullmatch(r"/orders/([^/]+)/status", path)
        if method == "PUT" and match:
            order_id = match.group(1)
            if order_id in self.status_failures:
                status_code, body = self.status_failures[order_id]
                return httpx.Response(status_code, json=body)
            if order_id not in self.orders:
                return httpx.Response(404, json={"detail": "Order not found"})
            self.orders[order_id]["status"] = json.loads(request.content)["status"]
            return httpx.Response(200, json=self.orders[order_id])

        return httpx.Response(404, json={"detail": f"No route for {method} {path}"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def status_updates(self) -> list[tuple[str, str]]:
        """(order_id, status) for every PUT /orders/{id}/status seen."""
        updates = []
        for request in self.requests:
            match = re.fullmatch(r"/orders/([^/]+)/status", request.url.path)
            if request.method == "PUT" and match:
                updates.append((match.group(1), json.loads(request.content)["status"]))
        return updates


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def api() -> FakeMerchantAPI:
    return FakeMerchantAPI()


@pytest.fixture
def session() -> SessionState:
    return SessionState(default_merchant_id="merchant123", token="tok-123")


@pytest.fixture
def gateway(api, session) -> MerchantGateway:
    return MerchantGateway(BASE_URL, session, transport=api.transport())


@pytest.fixture
def notifier(clock) -> Notifier:
    return Notifier(max_history=50, clock=clock)


@pytest.fixture
def store(clock) -> OrderStore:
    return OrderStore(offer_window=timedelta(minutes=2), clock=clock)


@pytest.fixture
def controller(store, gateway, notifier, clock) -> StatusTransitionController:
    return StatusTransitionController(
        store,
        gateway,
        notifier=notifier,
        delivery_window=timedelta(minutes=90),
        clock=clock,
    )


@pytest.fixture
def engine(store, controller, notifier, clock) -> CountdownEngine:
    return CountdownEngine(store, controller, notifier=notifier, clock=clock)
