"""
Gateway to the merchant API.

The dashboard never persists anything itself - orders, products, offers and
the merchant profile are read and written through this client.
"""
from .client import MerchantGateway, normalize_offer, normalize_product
from .stats import GatewayStats

__all__ = ["MerchantGateway", "GatewayStats", "normalize_offer", "normalize_product"]
