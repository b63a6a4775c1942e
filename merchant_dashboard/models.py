"""
Pydantic models for the merchant dashboard.
"""
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, computed_field, field_validator

OrderStatus = Literal["pending", "accepted", "declined", "in-delivery", "delivered"]
TransitionSource = Literal["merchant", "expiry"]
OfferType = Literal["percentage", "fixed", "bogo", "custom"]


def format_timer(seconds: int) -> str:
    """Render a countdown as m:ss."""
    mins, secs = divmod(max(0, seconds), 60)
    return f"{mins}:{secs:02d}"


# =============================================================================
# Orders
# =============================================================================

class OrderItem(BaseModel):
    """A single line on an order."""
    product_id: str
    product_name: str
    quantity: int = Field(gt=0)
    price: float = Field(ge=0)  # unit price
    customization: Optional[str] = None

    @property
    def subtotal(self) -> float:
        return self.price * self.quantity


class Order(BaseModel):
    """
    A customer order as the dashboard sees it.

    `offer_expiry` and `time_remaining` only exist while the order is pending.
    `time_remaining` is derived locally every tick and never sent upstream.
    """
    order_id: str
    customer_name: str
    customer_phone: str
    customer_address: str
    items: list[OrderItem] = Field(default_factory=list)
    total_amount: float = Field(ge=0)
    status: OrderStatus
    order_time: datetime
    estimated_delivery: Optional[datetime] = None
    offer_expiry: Optional[datetime] = None
    time_remaining: Optional[int] = None

    @field_validator("order_time", "estimated_delivery", "offer_expiry")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # the API sends naive ISO strings in UTC
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @computed_field
    @property
    def countdown(self) -> Optional[str]:
        """Time left to accept, for display."""
        if self.time_remaining is None:
            return None
        return format_timer(self.time_remaining)


class StatusUpdateRequest(BaseModel):
    """Request body for PUT /orders/{order_id}/status."""
    status: OrderStatus


# =============================================================================
# Catalog
# =============================================================================

class Offer(BaseModel):
    """
    A discount offer, normalized from either payload shape the API returns.

    schema_version 1 is the legacy shape embedded in products
    ({id, type, value, description, customType}); version 2 is the catalog
    shape ({offer_id, name, discount_value, valid_from, valid_till, ...}).
    """
    schema_version: Literal[1, 2]
    offer_id: str
    type: OfferType = "percentage"
    discount_value: float = 0
    name: Optional[str] = None
    description: str = ""
    custom_type: Optional[str] = None
    merchant_id: Optional[str] = None
    level: Optional[str] = None
    valid_from: Optional[datetime] = None
    valid_till: Optional[datetime] = None
    is_active: bool = True
    product_ids: list[str] = Field(default_factory=list)


class ProductVariant(BaseModel):
    id: str
    name: str
    mrp: float = Field(ge=0)
    selling_price: float = Field(ge=0)
    stock_quantity: int = Field(ge=0)
    sku: str = ""


class Product(BaseModel):
    """A catalog product."""
    product_id: str
    merchant_id: Optional[str] = None
    name: str
    category: str = ""
    subcategory: Optional[str] = None
    brand: str = ""
    description: str = ""
    variants: list[ProductVariant] = Field(default_factory=list)
    offers: list[Offer] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)
    weight: Optional[float] = None
    is_active: bool = True
    created_at: Optional[datetime] = None


# =============================================================================
# Merchant
# =============================================================================

class MerchantProfile(BaseModel):
    merchant_id: str
    name: str = ""
    email: str = ""
    phone: str = ""
    store_name: str = ""
    store_address: str = ""
    store_description: str = ""
    operating_hours: str = ""
    profile_image: str = ""
    store_image: str = ""
    joined_date: Optional[str] = None
    total_products: int = 0
    total_orders: int = 0
    rating: float = 0
    longitude: Optional[float] = None
    latitude: Optional[float] = None


class ShopStatus(BaseModel):
    """Whether the shop is currently taking orders."""
    is_open: bool = True
    message: Optional[str] = None


class DashboardAnalytics(BaseModel):
    orders_today: int = 0
    revenue_today: float = 0
    active_offers: int = 0
    low_stock_products: int = 0
    total_products: int = 0
    pending_orders: int = 0
    top_products: list[Product] = Field(default_factory=list)
    recent_orders: list[Order] = Field(default_factory=list)


# =============================================================================
# Service API
# =============================================================================

class Notification(BaseModel):
    """A user-visible notice (toast) for the dashboard UI."""
    title: str
    description: str
    variant: Literal["default", "destructive"] = "default"
    order_id: Optional[str] = None
    created_at: datetime


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""
    access_token: str


class SessionResponse(BaseModel):
    authenticated: bool
    merchant_id: str
    merchant: Optional[dict[str, Any]] = None


class HealthResponse(BaseModel):
    """Response from the /health endpoint."""
    status: Literal["ok", "degraded"]
    orders_loaded: int
    pending_orders: int
    ticker_running: bool
    authenticated: bool
    last_refresh_at: Optional[datetime] = None
    error: Optional[str] = None


class VersionResponse(BaseModel):
    service: str
    version: str
    api_base_url: str
