"""
Order lifecycle core: store, status transitions and acceptance countdown.
"""
from .clock import Ticker, utcnow
from .countdown import CountdownEngine
from .service import OrderService
from .store import OrderStore, remaining_seconds
from .transitions import VALID_TRANSITIONS, StatusTransitionController

__all__ = [
    "CountdownEngine",
    "OrderService",
    "OrderStore",
    "StatusTransitionController",
    "Ticker",
    "VALID_TRANSITIONS",
    "remaining_seconds",
    "utcnow",
]
