"""
Pytest configuration and fixtures for tests.

Every test gets its own SQLite file database, so sessions opened by
concurrent reconciliations really contend for the same rows, and a fake
Mercado Pago API served through httpx.MockTransport.
"""
import itertools
import json
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio

from shared.config.database import Database
from shared.config.settings import Settings
from shared.security import limiter
from services.coupon_service.models import Coupon, CouponType
from services.order_service.models import Order, OrderItem, OrderStatus, PaymentStatus
from services.payment_service.gateway import MercadoPagoClient
from services.product_service.models import Product, ProductVariant

INTERNAL_KEY = "test-internal-key"
GATEWAY_URL = "https://api.mercadopago.test"


# ============================================================================
# Fake Mercado Pago
# ============================================================================

class FakeMercadoPago:
    """
    In-memory stand-in for the Mercado Pago REST API.

    `next_status` is the status given to the next created payment,
    `fail_with` forces every call to answer with (status_code, json), and
    `raise_transport` makes every call fail before reaching the server.
    """

    def __init__(self):
        self.payments: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []
        self.next_status = "approved"
        self.fail_with: tuple[int, dict] | None = None
        self.raise_transport: Exception | None = None
        self._ids = itertools.count(1001)

    def add_payment(self, status: str, external_reference, payment_id: str | None = None, **extra) -> dict:
        payment_id = payment_id or str(next(self._ids))
        payment = {
            "id": int(payment_id),
            "status": status,
            "status_detail": "accredited" if status == "approved" else status,
            "external_reference": external_reference,
            "transaction_amount": 100.0,
            "date_created": extra.pop("date_created", datetime.now(timezone.utc).isoformat()),
            **extra,
        }
        self.payments[payment_id] = payment
        return payment

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_transport is not None:
            raise self.raise_transport
        if self.fail_with is not None:
            status_code, body = self.fail_with
            return httpx.Response(status_code, json=body)

        path = request.url.path
        if request.method == "POST" and path == "/v1/card_tokens":
            return httpx.Response(201, json={"id": "card-token-1"})

        if request.method == "POST" and path == "/v1/payments":
            payload = json.loads(request.content)
            extra = {"payment_method_id": payload.get("payment_method_id", "visa")}
            if payload.get("payment_method_id") == "pix":
                extra["point_of_interaction"] = {
                    "transaction_data": {"qr_code": "00020126pix", "qr_code_base64": "iVBORw0KGgo="}
                }
            payment = self.add_payment(self.next_status, payload.get("external_reference"), **extra)
            return httpx.Response(201, json=payment)

        if request.method == "GET" and path == "/v1/payments/search":
            reference = request.url.params.get("external_reference")
            results = [p for p in self.payments.values() if p["external_reference"] == reference]
            return httpx.Response(200, json={"results": results, "paging": {"total": len(results)}})

        if request.method == "GET" and path.startswith("/v1/payments/"):
            payment = self.payments.get(path.rsplit("/", 1)[-1])
            if payment is None:
                return httpx.Response(404, json={"message": "Payment not found", "status": 404})
            return httpx.Response(200, json=payment)

        return httpx.Response(404, json={"message": "not found"})


# ============================================================================
# Seeding helpers
# ============================================================================

class Store:
    """Writes fixtures straight to the database and reads fresh rows back."""

    def __init__(self, database: Database):
        self.database = database

    async def _save(self, obj):
        async with self.database.session() as db:
            db.add(obj)
            await db.commit()
            await db.refresh(obj)
            return obj

    async def add_product(self, stock=10, price="50.00", name="Camiseta", id=None, variants=()):
        product = Product(id=id, name=name, price=Decimal(price), stock=stock)
        product.variants = [ProductVariant(name=v_name, stock=v_stock) for v_name, v_stock in variants]
        return await self._save(product)

    async def add_coupon(self, code="PROMO10", coupon_type=CouponType.PERCENTAGE, value="10", id=None, **fields):
        coupon = Coupon(id=id, code=code, type=coupon_type.value, value=Decimal(value), **fields)
        return await self._save(coupon)

    async def add_order(
        self,
        items,
        coupon_id=None,
        id=None,
        status=OrderStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
        payment_id=None,
        discount="0.00",
    ):
        """`items` is a list of (product, quantity) or (product, variant_id, quantity)."""
        order_items = []
        subtotal = Decimal("0.00")
        for item in items:
            if len(item) == 2:
                product, quantity = item
                variant_id = None
            else:
                product, variant_id, quantity = item
            order_items.append(OrderItem(
                product_id=product.id if isinstance(product, Product) else product,
                variant_id=variant_id,
                quantity=quantity,
                price=Decimal("50.00"),
            ))
            subtotal += Decimal("50.00") * quantity

        order = Order(
            id=id,
            status=status.value,
            payment_status=payment_status.value,
            payment_id=payment_id,
            coupon_id=coupon_id,
            subtotal=subtotal,
            discount_amount=Decimal(discount),
            total=subtotal - Decimal(discount),
            items=order_items,
        )
        return await self._save(order)

    async def get(self, model, id):
        async with self.database.session() as db:
            return await db.get(model, id, populate_existing=True)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}",
        internal_api_key=INTERNAL_KEY,
        mercadopago_api_url=GATEWAY_URL,
        mercadopago_access_token="TEST-access-token",
        mercadopago_public_key="TEST-public-key",
        otlp_endpoint=None,
        metrics_enabled=False,
    )


@pytest_asyncio.fixture
async def database(settings):
    database = Database(settings.database_url)
    await database.create_all()
    yield database
    await database.dispose()


@pytest.fixture
def store(database):
    return Store(database)


@pytest.fixture
def mercadopago():
    return FakeMercadoPago()


@pytest_asyncio.fixture
async def gateway(mercadopago):
    client = MercadoPagoClient(
        api_url=GATEWAY_URL,
        access_token="TEST-access-token",
        public_key="TEST-public-key",
        transport=httpx.MockTransport(mercadopago.handler),
    )
    yield client
    await client.aclose()


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield
    limiter.reset()


@pytest_asyncio.fixture
async def app(settings, gateway, database):
    from main import create_app

    app = create_app(settings, gateway=gateway)
    # ASGITransport does not run startup events; tables come from the `database` fixture
    yield app
    await app.state.database.dispose()


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
