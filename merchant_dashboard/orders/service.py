"""
Order service - the order core as the dashboard UI sees it.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from ..config import Settings
from ..errors import AuthenticationExpired, GatewayError
from ..gateway import MerchantGateway
from ..models import Order, OrderStatus
from ..notifications import Notifier
from .clock import Clock, Ticker, utcnow
from .countdown import CountdownEngine, Subscriber
from .store import OrderStore
from .transitions import StatusTransitionController

logger = logging.getLogger(__name__)


class OrderService:
    """
    Composes the order store, transition controller and countdown engine,
    and owns the tickers that drive them.

    The tickers only run between start() and stop(), which the app ties to
    its lifespan.
    """

    def __init__(
        self,
        gateway: MerchantGateway,
        settings: Settings,
        notifier: Optional[Notifier] = None,
        clock: Clock = utcnow,
    ):
        self.gateway = gateway
        self.notifier = notifier or Notifier(settings.notification_history, clock=clock)
        self.store = OrderStore(offer_window=settings.offer_window, clock=clock)
        self.controller = StatusTransitionController(
            self.store,
            gateway,
            notifier=self.notifier,
            delivery_window=settings.delivery_window,
            clock=clock,
        )
        self.engine = CountdownEngine(self.store, self.controller, notifier=self.notifier, clock=clock)
        self._clock = clock

        self.countdown_ticker = Ticker("countdown", self.engine.tick, settings.tick_interval_seconds)
        self.refresh_ticker: Optional[Ticker] = None
        if settings.refresh_interval_seconds > 0:
            self.refresh_ticker = Ticker("refresh", self._poll, settings.refresh_interval_seconds)

        self.last_refresh_at: Optional[datetime] = None
        self.last_refresh_error: Optional[str] = None

    async def refresh(self) -> list[Order]:
        """Reload every order from the gateway."""
        try:
            orders = await self.gateway.fetch_orders()
        except (GatewayError, AuthenticationExpired) as e:
            self.last_refresh_error = str(e)
            raise

        self.store.load(orders)
        self.last_refresh_at = self._clock()
        self.last_refresh_error = None
        return self.store.list_orders()

    async def _poll(self):
        try:
            await self.refresh()
        except (GatewayError, AuthenticationExpired) as e:
            logger.warning("Order refresh failed: %s", e)

    def list_orders(self, status: Optional[OrderStatus] = None, search: Optional[str] = None) -> list[Order]:
        return self.store.list_orders(status=status, search=search)

    def get_order(self, order_id: str) -> Order:
        return self.store.require(order_id)

    async def update_status(self, order_id: str, target: OrderStatus) -> Order:
        """Merchant-initiated status change."""
        return await self.controller.update_status(order_id, target, source="merchant")

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        return self.engine.subscribe(callback)

    @property
    def running(self) -> bool:
        return self.countdown_ticker.running

    async def start(self):
        """Load orders and start the tickers."""
        try:
            await self.refresh()
        except (GatewayError, AuthenticationExpired) as e:
            logger.error("Error loading orders: %s", e)
            self.notifier.error("Failed to load orders. Please try again.")

        self.countdown_ticker.start()
        if self.refresh_ticker is not None:
            self.refresh_ticker.start()

    async def stop(self):
        """Stop the tickers, then cancel auto-declines still waiting on the gateway."""
        await self.countdown_ticker.stop()
        if self.refresh_ticker is not None:
            await self.refresh_ticker.stop()
        await self.engine.cancel()
