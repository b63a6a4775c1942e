import asyncio
from datetime import timedelta

import pytest

from merchant_dashboard.errors import (
    AuthenticationExpired,
    GatewayError,
    InvalidTransition,
    OrderNotFound,
    TransitionInProgress,
)
from merchant_dashboard.models import Order
from merchant_dashboard.orders import StatusTransitionController, VALID_TRANSITIONS
from merchant_dashboard.orders.transitions import TERMINAL_STATUSES, is_allowed

from conftest import T0, make_order, order_payload

ALL_STATUSES = ["pending", "accepted", "declined", "in-delivery", "delivered"]


def seed(api, store, *payloads):
    for payload in payloads:
        api.add(payload)
    store.load([Order.model_validate(p) for p in payloads])


def test_transition_table():
    assert is_allowed("pending", "accepted")
    assert is_allowed("pending", "declined")
    assert is_allowed("accepted", "in-delivery")
    assert is_allowed("in-delivery", "delivered")
    assert not is_allowed("pending", "delivered")
    assert not is_allowed("accepted", "declined")
    assert not is_allowed("in-delivery", "accepted")
    assert TERMINAL_STATUSES == {"declined", "delivered"}
    assert set(VALID_TRANSITIONS) == set(ALL_STATUSES)


def test_accept_sets_delivery_estimate_and_clears_timer(api, store, controller, clock, notifier):
    seed(api, store, order_payload("ORD-1"))
    clock.advance(17)

    order = asyncio.run(controller.update_status("ORD-1", "accepted"))

    assert order.status == "accepted"
    assert order.estimated_delivery == T0 + timedelta(seconds=17) + timedelta(minutes=90)
    assert order.offer_expiry is None
    assert order.time_remaining is None
    assert store.get("ORD-1") == order
    assert api.status_updates() == [("ORD-1", "accepted")]
    assert notifier.recent(1)[0].description == "Order accepted successfully!"


def test_decline_clears_timer_without_estimate(api, store, controller):
    seed(api, store, order_payload("ORD-1"))

    order = asyncio.run(controller.update_status("ORD-1", "declined"))

    assert order.status == "declined"
    assert order.estimated_delivery is None
    assert order.offer_expiry is None
    assert order.time_remaining is None


def test_full_happy_path_keeps_estimate(api, store, controller, clock):
    seed(api, store, order_payload("ORD-1"))

    async def scenario():
        accepted = await controller.update_status("ORD-1", "accepted")
        clock.advance(600)
        await controller.update_status("ORD-1", "in-delivery")
        clock.advance(600)
        delivered = await controller.update_status("ORD-1", "delivered")
        return accepted, delivered

    accepted, delivered = asyncio.run(scenario())

    assert delivered.status == "delivered"
    assert delivered.estimated_delivery == accepted.estimated_delivery


@pytest.mark.parametrize("terminal", ["declined", "delivered"])
@pytest.mark.parametrize("target", ALL_STATUSES)
def test_terminal_states_reject_everything(api, store, controller, terminal, target):
    seed(api, store, order_payload("ORD-1", terminal))

    with pytest.raises(InvalidTransition):
        asyncio.run(controller.update_status("ORD-1", target))

    assert store.get("ORD-1").status == terminal
    assert api.status_updates() == []


def test_skipping_a_stage_is_rejected(api, store, controller):
    seed(api, store, order_payload("ORD-1"))

    with pytest.raises(InvalidTransition) as exc_info:
        asyncio.run(controller.update_status("ORD-1", "delivered"))

    assert exc_info.value.current == "pending"
    assert exc_info.value.target == "delivered"
    assert store.get("ORD-1").status == "pending"


def test_unknown_order(controller):
    with pytest.raises(OrderNotFound):
        asyncio.run(controller.update_status("ORD-404", "accepted"))


def test_gateway_failure_leaves_store_untouched(api, store, controller):
    seed(api, store, order_payload("ORD-1"))
    api.fail_status_update("ORD-1", 500, {"message": "database unavailable"})
    before = store.get("ORD-1")

    with pytest.raises(GatewayError) as exc_info:
        asyncio.run(controller.update_status("ORD-1", "accepted"))

    assert exc_info.value.status_code == 500
    assert exc_info.value.detail == "database unavailable"
    assert store.get("ORD-1") == before
    assert not controller.in_flight("ORD-1")


def test_unauthorized_clears_session(api, store, controller, session):
    seed(api, store, order_payload("ORD-1"))
    api.fail_status_update("ORD-1", 401, {"detail": "Token expired"})

    with pytest.raises(AuthenticationExpired):
        asyncio.run(controller.update_status("ORD-1", "accepted"))

    assert not session.is_authenticated
    assert store.get("ORD-1").status == "pending"


class SlowGateway:
    """Holds every status update until released."""

    def __init__(self):
        self.release = asyncio.Event()
        self.calls = []

    async def update_order_status(self, order_id, status):
        self.calls.append((order_id, status))
        await self.release.wait()
        return None


def test_second_request_while_in_flight_is_rejected(store, clock):
    store.load([make_order("ORD-1")])

    async def scenario():
        gateway = SlowGateway()
        controller = StatusTransitionController(store, gateway, clock=clock)
        first = asyncio.create_task(controller.update_status("ORD-1", "accepted"))
        await asyncio.sleep(0)
        assert controller.in_flight("ORD-1")

        with pytest.raises(TransitionInProgress):
            await controller.update_status("ORD-1", "declined")

        gateway.release.set()
        result = await first
        return gateway, controller, result

    gateway, controller, result = asyncio.run(scenario())

    assert result.status == "accepted"
    assert gateway.calls == [("ORD-1", "accepted")]
    assert not controller.in_flight("ORD-1")


def test_reload_during_flight_revalidates_before_commit(store, clock):
    store.load([make_order("ORD-1")])

    async def scenario():
        gateway = SlowGateway()
        controller = StatusTransitionController(store, gateway, clock=clock)
        task = asyncio.create_task(controller.update_status("ORD-1", "accepted"))
        await asyncio.sleep(0)
        # the backend declined it meanwhile and a refresh picked that up
        store.load([make_order("ORD-1", status="declined")])
        gateway.release.set()
        with pytest.raises(InvalidTransition):
            await task

    asyncio.run(scenario())

    assert store.get("ORD-1").status == "declined"


def test_reload_with_acknowledged_status_still_succeeds(store, clock, notifier):
    store.load([make_order("ORD-1")])

    async def scenario():
        gateway = SlowGateway()
        controller = StatusTransitionController(store, gateway, notifier=notifier, clock=clock)
        task = asyncio.create_task(controller.update_status("ORD-1", "accepted"))
        await asyncio.sleep(0)
        # a refresh already shows the server applying this very request
        store.load([make_order("ORD-1", status="accepted")])
        clock.advance(3)
        gateway.release.set()
        return await task

    order = asyncio.run(scenario())

    assert order.status == "accepted"
    assert order.estimated_delivery == T0 + timedelta(seconds=3) + timedelta(minutes=90)
    assert store.get("ORD-1") == order
    assert notifier.recent(1)[0].description == "Order accepted successfully!"


class EchoingGateway(SlowGateway):
    def __init__(self, echo):
        super().__init__()
        self.echo = echo

    async def update_order_status(self, order_id, status):
        await super().update_order_status(order_id, status)
        return self.echo


def test_reload_with_acknowledged_status_keeps_known_estimate(store, clock):
    store.load([make_order("ORD-1")])
    echo = make_order("ORD-1", status="accepted", estimated_delivery="2025-03-14T13:10:00Z")

    async def scenario():
        gateway = EchoingGateway(echo)
        controller = StatusTransitionController(store, gateway, clock=clock)
        task = asyncio.create_task(controller.update_status("ORD-1", "accepted"))
        await asyncio.sleep(0)
        store.load([make_order("ORD-1", status="accepted")])
        gateway.release.set()
        return await task

    order = asyncio.run(scenario())

    assert order.estimated_delivery == echo.estimated_delivery
