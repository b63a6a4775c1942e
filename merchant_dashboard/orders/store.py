"""
In-memory order store.

Holds the orders of the current session keyed by order id, in the order the
gateway delivered them. Refreshed wholesale by `load`, mutated in place by
the countdown engine and the status transition controller.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Any, Iterable, Iterator, Optional

from ..errors import OrderNotFound
from ..models import Order, OrderStatus
from .clock import Clock, utcnow

logger = logging.getLogger(__name__)

IMMUTABLE_FIELDS = frozenset({"order_id", "order_time"})


def remaining_seconds(expiry: datetime, now: datetime) -> int:
    """Whole seconds left until `expiry`, never negative."""
    return max(0, math.floor((expiry - now).total_seconds()))


class OrderStore:
    """Canonical mapping of order id to Order for this session."""

    def __init__(self, offer_window: timedelta = timedelta(minutes=2), clock: Clock = utcnow):
        self._orders: dict[str, Order] = {}
        self._offer_window = offer_window
        self._clock = clock

    def __len__(self) -> int:
        return len(self._orders)

    def __iter__(self) -> Iterator[Order]:
        return iter(list(self._orders.values()))

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._orders

    def load(self, orders: Iterable[Order]):
        """
        Replace the whole store with a fresh gateway payload.

        Pending orders without an expiry get one. If the store already had a
        timer for that order it is kept, so reloading the same payload does
        not push deadlines back. Non-pending orders never carry timer fields.
        """
        now = self._clock()
        previous = self._orders
        loaded: dict[str, Order] = {}
        backfilled = 0

        for order in orders:
            if order.status == "pending":
                expiry = order.offer_expiry
                if expiry is None:
                    known = previous.get(order.order_id)
                    if known is not None and known.status == "pending" and known.offer_expiry is not None:
                        expiry = known.offer_expiry
                    else:
                        expiry = now + self._offer_window
                        backfilled += 1
                order = order.model_copy(update={
                    "offer_expiry": expiry,
                    "time_remaining": remaining_seconds(expiry, now),
                })
            elif order.offer_expiry is not None or order.time_remaining is not None:
                order = order.model_copy(update={"offer_expiry": None, "time_remaining": None})

            loaded[order.order_id] = order

        self._orders = loaded
        logger.info("Loaded %d orders (%d timers backfilled)", len(loaded), backfilled)

    def get(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)

    def require(self, order_id: str) -> Order:
        """Like get, but raises OrderNotFound."""
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def apply(self, order_id: str, patch: dict[str, Any]) -> Order:
        """Shallow-merge `patch` into the stored order and return the result."""
        order = self.require(order_id)
        frozen = IMMUTABLE_FIELDS.intersection(patch)
        if frozen:
            raise ValueError(f"Cannot modify {', '.join(sorted(frozen))} of order {order_id}")

        updated = order.model_copy(update=patch)
        self._orders[order_id] = updated
        return updated

    def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        search: Optional[str] = None,
    ) -> list[Order]:
        """
        Read-only projection in insertion order.

        `search` is a case-insensitive substring match on customer name,
        customer phone and order id.
        """
        needle = (search or "").strip().lower()
        results = []
        for order in self._orders.values():
            if status is not None and order.status != status:
                continue
            if needle and not any(
                needle in field.lower()
                for field in (order.customer_name, order.customer_phone, order.order_id)
            ):
                continue
            results.append(order)
        return results
