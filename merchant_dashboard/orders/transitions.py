"""
Order status transitions.

StatusTransitionController is the only thing allowed to change an order's
status, whether the merchant clicked a button or the countdown ran out.

    pending -> accepted      merchant
    pending -> declined      merchant, or offer expiry
    accepted -> in-delivery  merchant
    in-delivery -> delivered merchant

declined and delivered are terminal.
"""
import logging
from datetime import timedelta
from typing import Optional

from ..errors import InvalidTransition, TransitionInProgress
from ..gateway import MerchantGateway
from ..models import Order, OrderStatus, TransitionSource
from ..notifications import Notifier
from .clock import Clock, utcnow
from .store import OrderStore

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"accepted", "declined"}),
    "accepted": frozenset({"in-delivery"}),
    "in-delivery": frozenset({"delivered"}),
    "declined": frozenset(),
    "delivered": frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, allowed in VALID_TRANSITIONS.items() if not allowed)


def is_allowed(current: str, target: str) -> bool:
    return target in VALID_TRANSITIONS.get(current, frozenset())


class StatusTransitionController:
    """Validates status changes, writes them through the gateway, then commits locally."""

    def __init__(
        self,
        store: OrderStore,
        gateway: MerchantGateway,
        notifier: Optional[Notifier] = None,
        delivery_window: timedelta = timedelta(minutes=90),
        clock: Clock = utcnow,
    ):
        self._store = store
        self._gateway = gateway
        self._notifier = notifier
        self._delivery_window = delivery_window
        self._clock = clock
        self._in_flight: set[str] = set()

    def in_flight(self, order_id: str) -> bool:
        """True while a status request for this order awaits the gateway."""
        return order_id in self._in_flight

    def validate(self, order_id: str, target: OrderStatus) -> Order:
        """
        Check a transition without performing it.

        Raises:
            OrderNotFound: unknown order id
            InvalidTransition: target not reachable from the current status
        """
        order = self._store.require(order_id)
        if not is_allowed(order.status, target):
            raise InvalidTransition(order_id, order.status, target)
        return order

    async def update_status(
        self,
        order_id: str,
        target: OrderStatus,
        source: TransitionSource = "merchant",
    ) -> Order:
        """
        Move an order to `target`.

        The store is only touched after the gateway acknowledges the change,
        so a rejected request leaves the order exactly as it was.

        Args:
            order_id: Order to update
            target: Requested status
            source: "merchant" for dashboard actions, "expiry" for the countdown

        Returns:
            The updated order

        Raises:
            OrderNotFound, InvalidTransition, TransitionInProgress,
            GatewayError, AuthenticationExpired
        """
        order = self.validate(order_id, target)
        if order_id in self._in_flight:
            raise TransitionInProgress(order_id, order.status, target)

        self._in_flight.add(order_id)
        try:
            echoed = await self._gateway.update_order_status(order_id, target)
        finally:
            self._in_flight.discard(order_id)

        # the store may have been reloaded while the request was out
        current = self._store.require(order_id)
        if current.status == target:
            patch = self._settled_patch(current, target, echoed)
        elif is_allowed(current.status, target):
            patch = self._transition_patch(current, target)
        else:
            raise InvalidTransition(order_id, current.status, target)
        updated = self._store.apply(order_id, patch)

        logger.info(
            "Order %s: %s -> %s (%s)",
            order_id, order.status, target, source,
        )
        if self._notifier is not None and source == "merchant":
            self._notifier.status_updated(order_id, target)
        return updated

    def _transition_patch(self, order: Order, target: OrderStatus) -> dict:
        patch: dict = {"status": target}
        if order.status == "pending":
            # timer fields only exist while pending
            patch["offer_expiry"] = None
            patch["time_remaining"] = None
            if target == "accepted":
                patch["estimated_delivery"] = self._clock() + self._delivery_window
        return patch

    def _settled_patch(self, order: Order, target: OrderStatus, echoed: Optional[Order]) -> dict:
        """
        Patch for an acknowledged change a reload already brought in.

        Fills in the acceptance estimate when the reloaded order lacks one,
        preferring the value the gateway echoed back.
        """
        patch: dict = {}
        if target == "accepted" and order.estimated_delivery is None:
            if echoed is not None and echoed.estimated_delivery is not None:
                patch["estimated_delivery"] = echoed.estimated_delivery
            else:
                patch["estimated_delivery"] = self._clock() + self._delivery_window
        return patch
