"""
Merchant Dashboard - storefront management backend.

Order lifecycle tracking with a live acceptance countdown, plus catalog,
offer and merchant profile management on top of the merchant API.
"""

__version__ = "1.0.0"
