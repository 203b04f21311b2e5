from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from shared.config.database import Database
from shared.config.settings import Settings
from shared.observability import setup_observability
from shared.security import limiter, resolve_internal_api_key

# IMPORTANT: import models so they register with Base
from services.product_service import models as product_models  # noqa: F401
from services.coupon_service import models as coupon_models  # noqa: F401
from services.order_service import models as order_models  # noqa: F401

from services.order_service.router import router as order_router, public_router
from services.payment_service.gateway import MercadoPagoClient
from services.payment_service.reconciliation import PaymentReconciler
from services.payment_service.router import router as payment_router
from services.payment_service.service import PaymentService


def create_app(settings: Settings | None = None, gateway: MercadoPagoClient | None = None) -> FastAPI:
    """
    Builds the storefront payments app.

    Run with `uvicorn --factory main:create_app`. Tests pass their own
    Settings and a gateway backed by a mock transport.
    """
    settings = settings or Settings.from_env()
    database = Database(settings.database_url, echo=settings.sql_echo)
    gateway = gateway or MercadoPagoClient(
        api_url=settings.mercadopago_api_url,
        access_token=settings.mercadopago_access_token,
        public_key=settings.mercadopago_public_key,
        timeout=settings.mercadopago_timeout,
        notification_url=settings.mercadopago_notification_url,
    )

    app = FastAPI(title="Storefront Payments", version="1.0.0")

    # --- OBSERVABILITY BOOTSTRAP ---
    setup_observability(app, settings)

    app.state.settings = settings
    app.state.database = database
    app.state.gateway = gateway
    app.state.internal_api_key = resolve_internal_api_key(settings.internal_api_key)
    app.state.payment_service = PaymentService(gateway, PaymentReconciler(database))

    # --- SECURITY SETUP ---
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    @app.on_event("startup")
    async def startup_event():
        await database.create_all()

    @app.on_event("shutdown")
    async def shutdown_event():
        await gateway.aclose()
        await database.dispose()

    app.include_router(public_router)
    app.include_router(order_router)
    app.include_router(payment_router)
    return app
