"""
Merchant Dashboard Service - FastAPI application.

Backend-for-frontend for the storefront dashboard. Orders are kept in memory
for the session with a live acceptance countdown; everything is persisted
by the merchant API behind MerchantGateway.
"""
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .errors import AuthenticationExpired, GatewayError, InvalidTransition, OrderNotFound
from .gateway import MerchantGateway
from .models import (
    DashboardAnalytics,
    HealthResponse,
    LoginRequest,
    MerchantProfile,
    Notification,
    Offer,
    Order,
    OrderStatus,
    Product,
    SessionResponse,
    ShopStatus,
    StatusUpdateRequest,
    VersionResponse,
)
from .notifications import Notifier
from .orders import OrderService
from .orders.clock import Clock, utcnow
from .session import SessionState

GatewayFactory = Callable[[Settings, SessionState], MerchantGateway]


def setup_logging(settings: Settings) -> logging.Logger:
    """Configure logging with file and console handlers."""
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    # Console handler (always)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler (if configured)
    if settings.log_path:
        try:
            log_path = Path(settings.log_path)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path)
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
            root_logger.info("Logging to file: %s", log_path)
        except OSError as e:
            root_logger.error("Failed to set up file logging: %s", e)

    return logging.getLogger(__name__)


logger = logging.getLogger(__name__)


def default_gateway_factory(settings: Settings, session: SessionState) -> MerchantGateway:
    return MerchantGateway(
        base_url=settings.api_base_url,
        session=session,
        timeout=settings.api_timeout,
    )


def create_app(
    settings: Optional[Settings] = None,
    gateway_factory: Optional[GatewayFactory] = None,
    clock: Optional[Clock] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Create the dashboard application.

    Args:
        settings: Service settings (defaults to environment)
        gateway_factory: Builds the MerchantGateway for a session; tests pass
                         one with a mock transport
        clock: Time source for timers (defaults to UTC wall clock)
        configure_logging: Install root log handlers on startup

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    gateway_factory = gateway_factory or default_gateway_factory
    clock = clock or utcnow

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if configure_logging:
            setup_logging(settings)

        logger.info("Merchant dashboard starting up")
        logger.info("Merchant API: %s", settings.api_base_url)

        session = SessionState(default_merchant_id=settings.merchant_id, token=settings.api_token)
        gateway = gateway_factory(settings, session)
        notifier = Notifier(settings.notification_history, clock=clock)
        service = OrderService(gateway, settings, notifier=notifier, clock=clock)

        app.state.session = session
        app.state.gateway = gateway
        app.state.notifier = notifier
        app.state.orders = service

        try:
            await service.start()
            yield
        finally:
            logger.info("Merchant dashboard shutting down")
            await service.stop()
            await gateway.close()

    app = FastAPI(
        title="Merchant Dashboard",
        description="Storefront management dashboard: orders, catalog, offers and profile",
        version=settings.version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================================================================
    # Error mapping
    # =========================================================================

    @app.exception_handler(OrderNotFound)
    async def order_not_found_handler(request: Request, exc: OrderNotFound):
        return JSONResponse(status_code=404, content={"detail": str(exc), "order_id": exc.order_id})

    @app.exception_handler(InvalidTransition)
    async def invalid_transition_handler(request: Request, exc: InvalidTransition):
        return JSONResponse(
            status_code=409,
            content={
                "detail": str(exc),
                "order_id": exc.order_id,
                "current": exc.current,
                "target": exc.target,
            },
        )

    @app.exception_handler(AuthenticationExpired)
    async def auth_expired_handler(request: Request, exc: AuthenticationExpired):
        return JSONResponse(status_code=401, content={"detail": exc.detail})

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        return JSONResponse(
            status_code=502,
            content={"detail": exc.detail, "upstream_status": exc.status_code},
        )

    def orders_of(request: Request) -> OrderService:
        return request.app.state.orders

    def gateway_of(request: Request) -> MerchantGateway:
        return request.app.state.gateway

    # =========================================================================
    # Health & Version Endpoints
    # =========================================================================

    @app.get("/")
    async def root():
        """Service information."""
        return {
            "message": "Merchant Dashboard",
            "version": settings.version,
            "endpoints": {
                "orders": "/orders",
                "update_status": "/orders/{order_id}/status",
                "products": "/products",
                "offers": "/offers",
                "profile": "/profile",
                "notifications": "/notifications",
                "health": "/health",
            },
        }

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request):
        """Order core status. Degraded when the last order refresh failed."""
        service = orders_of(request)
        error = service.last_refresh_error
        return HealthResponse(
            status="degraded" if error else "ok",
            orders_loaded=len(service.store),
            pending_orders=len(service.list_orders(status="pending")),
            ticker_running=service.running,
            authenticated=request.app.state.session.is_authenticated,
            last_refresh_at=service.last_refresh_at,
            error=error,
        )

    @app.get("/version", response_model=VersionResponse)
    async def version():
        return VersionResponse(
            service="merchant-dashboard",
            version=settings.version,
            api_base_url=settings.api_base_url,
        )

    @app.get("/stats")
    async def gateway_stats(request: Request):
        """Merchant API call statistics."""
        return gateway_of(request).stats.get_summary()

    @app.get("/notifications", response_model=list[Notification])
    async def notifications(request: Request, limit: int = 20):
        return request.app.state.notifier.recent(limit)

    # =========================================================================
    # Orders
    # =========================================================================

    @app.get("/orders", response_model=list[Order])
    async def list_orders(
        request: Request,
        status: Optional[OrderStatus] = None,
        search: Optional[str] = None,
    ):
        return orders_of(request).list_orders(status=status, search=search)

    @app.post("/orders/refresh", response_model=list[Order])
    async def refresh_orders(request: Request):
        return await orders_of(request).refresh()

    @app.get("/orders/{order_id}", response_model=Order)
    async def get_order(order_id: str, request: Request):
        return orders_of(request).get_order(order_id)

    @app.put("/orders/{order_id}/status", response_model=Order)
    async def update_order_status(order_id: str, body: StatusUpdateRequest, request: Request):
        service = orders_of(request)
        try:
            return await service.update_status(order_id, body.status)
        except GatewayError:
            service.notifier.error("Failed to update order status. Please try again.", order_id=order_id)
            raise

    # =========================================================================
    # Authentication
    # =========================================================================

    @app.post("/auth/login", response_model=SessionResponse)
    async def login(body: LoginRequest, request: Request):
        await gateway_of(request).authenticate(body.access_token)
        session: SessionState = request.app.state.session
        return SessionResponse(authenticated=True, merchant_id=session.merchant_id, merchant=session.merchant)

    @app.post("/auth/logout", response_model=SessionResponse)
    async def logout(request: Request):
        await gateway_of(request).logout()
        session: SessionState = request.app.state.session
        return SessionResponse(authenticated=False, merchant_id=session.merchant_id)

    @app.get("/auth/session", response_model=SessionResponse)
    async def current_session(request: Request):
        session: SessionState = request.app.state.session
        return SessionResponse(
            authenticated=session.is_authenticated,
            merchant_id=session.merchant_id,
            merchant=session.merchant,
        )

    # =========================================================================
    # Products
    # =========================================================================

    @app.get("/products", response_model=list[Product])
    async def list_products(
        request: Request,
        category: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ):
        return await gateway_of(request).fetch_products(category=category, status=status, search=search)

    @app.post("/products", response_model=Product, status_code=201)
    async def create_product(payload: dict[str, Any], request: Request):
        return await gateway_of(request).create_product(payload)

    @app.get("/products/{product_id}", response_model=Product)
    async def get_product(product_id: str, request: Request):
        return await gateway_of(request).get_product(product_id)

    @app.put("/products/{product_id}", response_model=Product)
    async def update_product(product_id: str, payload: dict[str, Any], request: Request):
        return await gateway_of(request).update_product(product_id, payload)

    @app.delete("/products/{product_id}")
    async def delete_product(product_id: str, request: Request):
        return await gateway_of(request).delete_product(product_id)

    # =========================================================================
    # Offers
    # =========================================================================

    @app.get("/offers", response_model=list[Offer])
    async def list_offers(request: Request):
        return await gateway_of(request).fetch_offers()

    @app.post("/products/{product_id}/offers", response_model=Offer, status_code=201)
    async def create_product_offer(product_id: str, payload: dict[str, Any], request: Request):
        return await gateway_of(request).create_product_offer(product_id, payload)

    @app.put("/products/{product_id}/offers/{offer_id}", response_model=Offer)
    async def update_product_offer(product_id: str, offer_id: str, payload: dict[str, Any], request: Request):
        return await gateway_of(request).update_product_offer(product_id, offer_id, payload)

    @app.delete("/products/{product_id}/offers/{offer_id}")
    async def delete_product_offer(product_id: str, offer_id: str, request: Request):
        return await gateway_of(request).delete_product_offer(product_id, offer_id)

    @app.post("/products/{product_id}/apply-offer")
    async def apply_offer(product_id: str, payload: dict[str, Any], request: Request):
        return await gateway_of(request).apply_offer_to_product(product_id, str(payload.get("offer_id", "")))

    @app.post("/shops/{shop_id}/offers", response_model=Offer, status_code=201)
    async def create_shop_offer(shop_id: str, payload: dict[str, Any], request: Request):
        return await gateway_of(request).create_shop_offer(shop_id, payload)

    @app.put("/shops/{shop_id}/offers/{offer_id}", response_model=Offer)
    async def update_shop_offer(shop_id: str, offer_id: str, payload: dict[str, Any], request: Request):
        return await gateway_of(request).update_shop_offer(shop_id, offer_id, payload)

    @app.delete("/shops/{shop_id}/offers/{offer_id}")
    async def delete_shop_offer(shop_id: str, offer_id: str, request: Request):
        return await gateway_of(request).delete_shop_offer(shop_id, offer_id)

    @app.post("/discounts/global")
    async def apply_global_discount(payload: dict[str, Any], request: Request):
        return await gateway_of(request).apply_global_discount(payload)

    # =========================================================================
    # Merchant profile, shop status, analytics
    # =========================================================================

    @app.get("/profile", response_model=MerchantProfile)
    async def get_profile(request: Request):
        return await gateway_of(request).get_profile()

    @app.put("/profile", response_model=MerchantProfile)
    async def update_profile(payload: dict[str, Any], request: Request):
        return await gateway_of(request).update_profile(payload)

    @app.get("/shop-status", response_model=ShopStatus)
    async def get_shop_status(request: Request):
        return await gateway_of(request).get_shop_status()

    @app.put("/shop-status", response_model=ShopStatus)
    async def update_shop_status(payload: dict[str, Any], request: Request):
        return await gateway_of(request).update_shop_status(payload)

    @app.get("/dashboard", response_model=DashboardAnalytics)
    async def dashboard(request: Request):
        return await gateway_of(request).get_dashboard()

    return app
