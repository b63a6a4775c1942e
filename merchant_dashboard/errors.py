"""
Errors raised by the order core and the merchant API gateway.
"""
from typing import Optional


class DashboardError(Exception):
    """Base class for every dashboard error."""


class OrderNotFound(DashboardError):
    """The requested order id is not in the store."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class InvalidTransition(DashboardError):
    """The requested status change is not allowed from the current status."""

    def __init__(self, order_id: str, current: str, target: str, reason: Optional[str] = None):
        self.order_id = order_id
        self.current = current
        self.target = target
        message = reason or f"Cannot transition from {current} to {target}"
        super().__init__(f"Order {order_id}: {message}")


class TransitionInProgress(InvalidTransition):
    """Another status change for the same order has not been acknowledged yet."""

    def __init__(self, order_id: str, current: str, target: str):
        super().__init__(
            order_id,
            current,
            target,
            reason="a status update is already in progress",
        )


class GatewayError(DashboardError):
    """
    The merchant API could not be reached, answered with a non-2xx status,
    or returned a payload the dashboard cannot read.

    `status_code` is None when no HTTP status applies (network failure,
    malformed payload).
    """

    def __init__(self, status_code: Optional[int], detail: str):
        self.status_code = status_code
        self.detail = detail
        if status_code is None:
            super().__init__(detail)
        else:
            super().__init__(f"HTTP {status_code}: {detail}")


class AuthenticationExpired(DashboardError):
    """The merchant API rejected the session token. Re-authentication is required."""

    def __init__(self, detail: str = "Authentication expired"):
        self.detail = detail
        super().__init__(detail)
