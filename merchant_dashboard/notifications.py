"""
User-visible notifications (the dashboard's toasts).
"""
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Optional

from .models import Notification, OrderStatus

logger = logging.getLogger(__name__)

STATUS_MESSAGES: dict[str, str] = {
    "accepted": "Order accepted successfully!",
    "declined": "Order declined.",
    "in-delivery": "Order marked as in delivery.",
    "delivered": "Order marked as delivered.",
}


class Notifier:
    """Keeps the most recent notifications for the UI to display."""

    def __init__(self, max_history: int = 100, clock: Optional[Callable[[], datetime]] = None):
        self._history: deque[Notification] = deque(maxlen=max_history)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def notify(
        self,
        title: str,
        description: str,
        variant: str = "default",
        order_id: Optional[str] = None,
    ) -> Notification:
        """Record a notification and log it."""
        notification = Notification(
            title=title,
            description=description,
            variant=variant,
            order_id=order_id,
            created_at=self._clock(),
        )
        self._history.append(notification)

        if variant == "destructive":
            logger.warning("Notification: %s - %s", title, description)
        else:
            logger.info("Notification: %s - %s", title, description)

        return notification

    def status_updated(self, order_id: str, status: OrderStatus) -> Notification:
        return self.notify(
            "Order Status Updated",
            STATUS_MESSAGES.get(status, f"Order marked as {status}."),
            order_id=order_id,
        )

    def order_expired(self, order_id: str) -> Notification:
        return self.notify(
            "Order Expired",
            f"Order {order_id} was automatically declined due to timeout.",
            variant="destructive",
            order_id=order_id,
        )

    def error(self, description: str, order_id: Optional[str] = None) -> Notification:
        return self.notify("Error", description, variant="destructive", order_id=order_id)

    def recent(self, limit: int = 20) -> list[Notification]:
        """Most recent notifications, newest first."""
        return list(reversed(self._history))[:limit]

    def clear(self):
        self._history.clear()
