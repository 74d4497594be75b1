"""
FastAPI Application Entry Point

Dormside Eats - campus food-ordering storefront.
Supports both Mock services (development) and Real APIs (production).

Endpoints:
    - POST   /api/orders: Place an order (cash or card)
    - PATCH  /api/orders: Confirm a card payment, or admin status override
    - DELETE /api/orders: Delete an order (admin)
    - GET    /api/orders: List orders (admin)
    - POST   /api/checkout: Create or reuse a payment intent
    - GET    /api/checkout/return: Processor redirect after payment
    - POST   /webhook/stripe: Stripe event webhook
    - GET/PUT /api/settings: Store open/closed flag
    - GET/PUT /api/menu: Menu
    - POST   /api/admin/login, /api/admin/logout: Admin session
    - GET    /health: System health check
"""

import asyncio
import sys
import logging
from datetime import datetime, timezone
from typing import Any, Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Query, Request, Response, Header
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

# Windows-specific event loop policy (psycopg async needs a selector loop)
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Internal imports
from dormside.core.config import Settings, get_settings, setup_logging
from dormside.core.errors import (
    NotFound,
    PaymentReconciliationError,
    StorefrontError,
    Unauthorized,
    ValidationError,
)
from dormside.core.security import COOKIE_NAME, AdminSessionSigner, validate_credentials
from dormside.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    DeleteResponse,
    ErrorResponse,
    FinalizeResponse,
    HealthResponse,
    LoginRequest,
    MenuPayload,
    OkResponse,
    OrderCreateRequest,
    OrderDeleteRequest,
    OrderListResponse,
    OrderResponse,
    OrderStatus,
    StatusUpdateRequest,
    StoreStatus,
)
from dormside.services.menu import MenuStore
from dormside.services.orders import OrderLifecycleController
from dormside.services.payment import BasePaymentGateway, get_payment_gateway
from dormside.services.storage import Storage, build_storage
from dormside.tasks import queue_order_receipt

logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    settings: Settings = app.state.settings

    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    storage = build_storage(settings)
    app.state.storage = storage
    logger.info(f"✅ Storage: {storage.backend.value}")

    gateway = get_payment_gateway()
    app.state.gateway = gateway
    logger.info(f"✅ Payment Service: {gateway.provider_name}")

    app.state.controller = OrderLifecycleController(
        storage.orders,
        storage.status_gate,
        gateway,
        delivery_fee=settings.delivery_fee,
        currency=settings.stripe_currency,
        receipt_dispatcher=queue_order_receipt,
    )
    app.state.menu = MenuStore(
        settings.data_directory,
        lock_timeout=settings.file_lock_timeout,
        read_only=settings.read_only_filesystem,
    )

    missing = settings.validate_production_config()
    if missing:
        logger.warning(f"⚠️ Missing configuration: {missing}")

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await storage.close()
    logger.info("✅ Cleanup complete")


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_controller(request: Request) -> OrderLifecycleController:
    return request.app.state.controller


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_menu_store(request: Request) -> MenuStore:
    return request.app.state.menu


def get_gateway(request: Request) -> BasePaymentGateway:
    return request.app.state.gateway


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def is_admin(request: Request) -> bool:
    """True when the request carries a valid admin session cookie."""
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        return False
    signer = AdminSessionSigner.from_settings(request.app.state.settings)
    return signer.verify(token)


def require_admin(request: Request) -> None:
    if not is_admin(request):
        raise Unauthorized()


# =============================================================================
# ERROR HANDLERS
# =============================================================================

async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")
    settings: Settings = request.app.state.settings
    return JSONResponse(
        status_code=500,
        content={
            "error": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

async def root(settings: Settings = Depends(get_app_settings)) -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🍔 Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "menu": "/api/menu",
        "health": "/health",
    }


async def health_check(
    storage: Storage = Depends(get_storage),
    gateway: BasePaymentGateway = Depends(get_gateway),
) -> HealthResponse:
    """Verify all system components are operational."""
    storage_status = "healthy" if await storage.orders.health_check() else "unhealthy"
    payment_status = "healthy" if await gateway.health_check() else "unhealthy"

    overall = "operational" if (
        storage_status == "healthy" and payment_status == "healthy"
    ) else "degraded"

    return HealthResponse(
        status=overall,
        storage=storage_status,
        storage_backend=storage.backend.value,
        payment_service=payment_status,
        timestamp=datetime.now(timezone.utc),
    )


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

async def create_order(
    body: OrderCreateRequest,
    controller: OrderLifecycleController = Depends(get_controller),
) -> OrderResponse:
    """
    Place an order.

    Cash orders are stored as ``cash_pending``. Card orders are stored as
    ``pending`` and the response carries the client secret the browser
    uses to confirm the payment. Resubmitting with ``orderId`` returns
    the same order.
    """
    logger.info(f"Order submission: {body.payment_method.value}, {len(body.items)} items")
    placed = await controller.place_order(body)
    return OrderResponse(order=placed.order, client_secret=placed.client_secret)


async def update_order(
    body: StatusUpdateRequest,
    request: Request,
    controller: OrderLifecycleController = Depends(get_controller),
) -> FinalizeResponse:
    """
    Change an order's status.

    ``status=paid`` with a ``paymentIntentId`` is the public payment
    confirmation. Any other change is an admin override.
    """
    if body.status == OrderStatus.PAID and (body.payment_intent_id or not is_admin(request)):
        outcome = await controller.finalize_payment(body.id, body.payment_intent_id)
        return FinalizeResponse(order=outcome.order, payment_status=outcome.payment_status)

    require_admin(request)
    order = await controller.override_status(body.id, body.status)
    return FinalizeResponse(order=order)


async def delete_order(
    body: OrderDeleteRequest,
    controller: OrderLifecycleController = Depends(get_controller),
) -> DeleteResponse:
    """Delete an order by id. Unknown ids report ``removed: false``."""
    return DeleteResponse(removed=await controller.delete_order(body.id))


async def list_orders(
    controller: OrderLifecycleController = Depends(get_controller),
) -> OrderListResponse:
    """All orders, most recent first."""
    return OrderListResponse(orders=await controller.list_orders())


# =============================================================================
# CHECKOUT & WEBHOOK ENDPOINTS
# =============================================================================

async def start_checkout(
    body: CheckoutRequest,
    controller: OrderLifecycleController = Depends(get_controller),
) -> CheckoutResponse:
    """Create (or reuse) the payment intent for a cart or a pending card order."""
    started = await controller.start_payment(body)
    return CheckoutResponse(
        client_secret=started.client_secret,
        payment_intent_id=started.payment_intent_id,
        order_id=started.order_id,
    )


async def checkout_return(
    order_id: str = Query(..., min_length=1),
    payment_intent: Optional[str] = Query(None),
    controller: OrderLifecycleController = Depends(get_controller),
) -> FinalizeResponse:
    """Landing point of the processor's redirect after the customer pays."""
    outcome = await controller.finalize_payment(order_id, payment_intent)
    return FinalizeResponse(order=outcome.order, payment_status=outcome.payment_status)


async def stripe_webhook(
    request: Request,
    controller: OrderLifecycleController = Depends(get_controller),
    gateway: BasePaymentGateway = Depends(get_gateway),
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
) -> dict[str, Any]:
    """
    Handle Stripe events.

    ``payment_intent.succeeded`` finalizes the order named in the intent's
    metadata; every other event is acknowledged and ignored.
    """
    payload = await request.body()
    event = await gateway.verify_webhook(payload, stripe_signature)
    if event is None:
        raise ValidationError("Invalid webhook signature")

    event_type = event.get("type")
    logger.info(f"Stripe webhook received: {event_type}")

    if event_type == "payment_intent.succeeded":
        intent = event["data"]["object"]
        order_id = (intent.get("metadata") or {}).get("order_id")
        if not order_id:
            logger.info(f"Intent {intent.get('id')} is not bound to an order")
        else:
            try:
                await controller.finalize_payment(order_id, intent.get("id"))
            except (NotFound, PaymentReconciliationError) as e:
                # Acknowledged so the processor stops redelivering
                logger.warning(f"Webhook for order {order_id} not applied: {e.message}")

    return {"received": True}


# =============================================================================
# STORE SETTINGS & MENU ENDPOINTS
# =============================================================================

async def get_store_status(storage: Storage = Depends(get_storage)) -> StoreStatus:
    return StoreStatus(is_open=await storage.status_gate.is_accepting_orders())


async def set_store_status(
    body: StoreStatus,
    storage: Storage = Depends(get_storage),
) -> StoreStatus:
    return StoreStatus(is_open=await storage.status_gate.set_accepting_orders(body.is_open))


async def get_menu(menu: MenuStore = Depends(get_menu_store)) -> MenuPayload:
    return MenuPayload(items=await menu.get_menu())


async def update_menu(
    body: MenuPayload,
    menu: MenuStore = Depends(get_menu_store),
) -> MenuPayload:
    return MenuPayload(items=await menu.update_menu(body.items))


# =============================================================================
# ADMIN SESSION ENDPOINTS
# =============================================================================

async def admin_login(
    body: LoginRequest,
    response: Response,
    settings: Settings = Depends(get_app_settings),
) -> OkResponse:
    if not validate_credentials(settings, body.username, body.password):
        logger.warning("Admin login failed")
        raise Unauthorized("Invalid credentials")

    signer = AdminSessionSigner.from_settings(settings)
    response.set_cookie(
        COOKIE_NAME,
        signer.issue(body.username),
        max_age=signer.ttl_seconds,
        httponly=True,
        secure=settings.secure_cookies,
        samesite="strict",
        path="/",
    )
    logger.info("Admin logged in")
    return OkResponse()


async def admin_logout(
    response: Response,
    settings: Settings = Depends(get_app_settings),
) -> OkResponse:
    response.delete_cookie(
        COOKIE_NAME,
        path="/",
        httponly=True,
        secure=settings.secure_cookies,
        samesite="strict",
    )
    return OkResponse()


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application. Settings default to the environment."""
    settings = settings or get_settings()
    setup_logging()

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Campus food-ordering storefront: menu, cart checkout with cash "
            "or card, and an admin API for orders, menu and store status."
        ),
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StorefrontError, storefront_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    admin = [Depends(require_admin)]

    app.add_api_route("/", root, methods=["GET"], tags=["Root"])
    app.add_api_route(
        "/health", health_check, methods=["GET"],
        response_model=HealthResponse, tags=["Health"], summary="System Health Check",
    )

    app.add_api_route(
        "/api/orders", create_order, methods=["POST"],
        response_model=OrderResponse, responses=ERROR_RESPONSES, tags=["Orders"],
        summary="Place Order",
    )
    app.add_api_route(
        "/api/orders", update_order, methods=["PATCH"],
        response_model=FinalizeResponse, responses=ERROR_RESPONSES, tags=["Orders"],
        summary="Confirm Payment / Override Status",
    )
    app.add_api_route(
        "/api/orders", delete_order, methods=["DELETE"], dependencies=admin,
        response_model=DeleteResponse, tags=["Orders"], summary="Delete Order",
    )
    app.add_api_route(
        "/api/orders", list_orders, methods=["GET"], dependencies=admin,
        response_model=OrderListResponse, tags=["Orders"], summary="List Orders",
    )

    app.add_api_route(
        "/api/checkout", start_checkout, methods=["POST"],
        response_model=CheckoutResponse, responses=ERROR_RESPONSES, tags=["Checkout"],
        summary="Create Payment Intent",
    )
    app.add_api_route(
        "/api/checkout/return", checkout_return, methods=["GET"],
        response_model=FinalizeResponse, responses=ERROR_RESPONSES, tags=["Checkout"],
    )
    app.add_api_route("/webhook/stripe", stripe_webhook, methods=["POST"], tags=["Webhook"])

    app.add_api_route(
        "/api/settings", get_store_status, methods=["GET"],
        response_model=StoreStatus, tags=["Settings"],
    )
    app.add_api_route(
        "/api/settings", set_store_status, methods=["PUT"], dependencies=admin,
        response_model=StoreStatus, tags=["Settings"],
    )
    app.add_api_route(
        "/api/menu", get_menu, methods=["GET"], response_model=MenuPayload, tags=["Menu"],
    )
    app.add_api_route(
        "/api/menu", update_menu, methods=["PUT"], dependencies=admin,
        response_model=MenuPayload, tags=["Menu"],
    )

    app.add_api_route(
        "/api/admin/login", admin_login, methods=["POST"],
        response_model=OkResponse, tags=["Admin"],
    )
    app.add_api_route(
        "/api/admin/logout", admin_logout, methods=["POST"],
        response_model=OkResponse, tags=["Admin"],
    )

    return app


app = create_app()
