"""
Countdown engine for pending orders.

Once per tick every pending order's `time_remaining` is recomputed from its
`offer_expiry`. Orders whose time has run out are declined automatically
through the status transition controller. Each auto-decline runs as its own
task, so a slow gateway never holds up the next tick.
"""
import asyncio
import logging
from typing import Callable, Optional

from ..errors import AuthenticationExpired, GatewayError, InvalidTransition, OrderNotFound
from ..models import Order
from ..notifications import Notifier
from .clock import Clock, utcnow
from .store import OrderStore, remaining_seconds
from .transitions import StatusTransitionController

logger = logging.getLogger(__name__)

Subscriber = Callable[[list[Order]], None]


class CountdownEngine:
    """Keeps pending-order timers truthful and expires them."""

    def __init__(
        self,
        store: OrderStore,
        controller: StatusTransitionController,
        notifier: Optional[Notifier] = None,
        clock: Clock = utcnow,
    ):
        self._store = store
        self._controller = controller
        self._notifier = notifier
        self._clock = clock
        self._subscribers: list[Subscriber] = []
        self._expiring: dict[str, asyncio.Task] = {}

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback that receives the order list after every tick.

        Returns a function that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def expiring(self) -> list[str]:
        """Order ids whose auto-decline is still running."""
        return list(self._expiring)

    async def tick(self) -> list[str]:
        """
        Run one countdown step.

        Does not wait for the gateway: expired orders are handed to
        background auto-decline tasks (see `drain`).

        Returns:
            Ids of the orders whose auto-decline this tick started
        """
        now = self._clock()
        dispatched = []

        for order in self._store:
            if order.status != "pending" or order.offer_expiry is None:
                continue

            remaining = remaining_seconds(order.offer_expiry, now)
            if remaining != order.time_remaining:
                self._store.apply(order.order_id, {"time_remaining": remaining})

            # an in-flight request owns the order until it resolves
            if (
                remaining == 0
                and order.order_id not in self._expiring
                and not self._controller.in_flight(order.order_id)
            ):
                self._dispatch(order.order_id)
                dispatched.append(order.order_id)

        self._publish()
        return dispatched

    async def drain(self) -> list[str]:
        """
        Wait for every running auto-decline.

        Returns:
            Ids of the orders that were actually declined
        """
        running = dict(self._expiring)
        if not running:
            return []
        results = await asyncio.gather(*running.values(), return_exceptions=True)
        return [order_id for order_id, ok in zip(running, results) if ok is True]

    async def cancel(self):
        """Cancel running auto-declines and wait for them to unwind."""
        tasks = list(self._expiring.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d pending auto-declines", len(tasks))

    def _dispatch(self, order_id: str):
        task = asyncio.create_task(self._expire(order_id), name=f"expire:{order_id}")
        self._expiring[order_id] = task

        def done(finished: asyncio.Task):
            if self._expiring.get(order_id) is finished:
                del self._expiring[order_id]
            if not finished.cancelled() and finished.exception() is not None:
                logger.error("Auto-decline of order %s crashed: %s", order_id, finished.exception())

        task.add_done_callback(done)

    async def _expire(self, order_id: str) -> bool:
        try:
            await self._controller.update_status(order_id, "declined", source="expiry")
        except (GatewayError, AuthenticationExpired) as e:
            logger.warning("Auto-decline of order %s failed, retrying next tick: %s", order_id, e)
            return False
        except (InvalidTransition, OrderNotFound) as e:
            # the order moved on (or vanished in a reload) while we waited
            logger.info("Skipping auto-decline of order %s: %s", order_id, e)
            return False

        logger.warning("Order %s expired and was declined automatically", order_id)
        if self._notifier is not None:
            self._notifier.order_expired(order_id)
        return True

    def _publish(self):
        if not self._subscribers:
            return
        orders = self._store.list_orders()
        for callback in list(self._subscribers):
            try:
                callback(orders)
            except Exception as e:
                logger.error("Order subscriber failed: %s", e)
