"""
Order creation, coupon pricing and coupon removal.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from services.coupon_service.exceptions import CouponError, CouponNotFoundError
from services.coupon_service.models import Coupon, CouponType
from services.coupon_service.service import CouponService, to_money
from services.order_service.exceptions import CouponRemovalError, OrderNotFoundError
from services.order_service.models import Order, OrderStatus, PaymentStatus
from services.order_service.schemas import OrderCreate, OrderItemCreate
from services.order_service.service import OrderService
from services.product_service.exceptions import InsufficientStockError, ProductNotFoundError
from services.product_service.models import Product


def make_coupon(**fields) -> Coupon:
    defaults = dict(
        code="PROMO", type=CouponType.PERCENTAGE.value, value=Decimal("10"),
        is_active=True, used_count=0,
    )
    defaults.update(fields)
    return Coupon(**defaults)


# ============================================================================
# Discount calculation
# ============================================================================

class TestCouponDiscount:

    def test_percentage_discount(self):
        assert CouponService.calculate_discount(make_coupon(value=Decimal("15")), Decimal("80.00")) == Decimal("12.00")

    def test_percentage_discount_is_capped(self):
        coupon = make_coupon(value=Decimal("50"), max_discount=Decimal("20.00"))
        assert CouponService.calculate_discount(coupon, Decimal("100.00")) == Decimal("20.00")

    def test_fixed_discount_never_exceeds_order(self):
        coupon = make_coupon(type=CouponType.FIXED.value, value=Decimal("30.00"))
        assert CouponService.calculate_discount(coupon, Decimal("25.00")) == Decimal("25.00")

    def test_rounds_half_up_to_cents(self):
        assert to_money(Decimal("0.125")) == Decimal("0.13")
        assert CouponService.calculate_discount(make_coupon(value=Decimal("12.5")), Decimal("9.90")) == Decimal("1.24")


class TestCouponValidation:

    def test_valid_coupon_passes(self):
        CouponService.validate(make_coupon(), Decimal("10.00"))

    def test_inactive(self):
        with pytest.raises(CouponError, match="inactive"):
            CouponService.validate(make_coupon(is_active=False), Decimal("10.00"))

    def test_not_yet_valid(self):
        coupon = make_coupon(valid_from=datetime.now(timezone.utc) + timedelta(days=1))
        with pytest.raises(CouponError, match="valid from"):
            CouponService.validate(coupon, Decimal("10.00"))

    def test_expired_naive_datetime(self):
        coupon = make_coupon(valid_until=datetime(2020, 1, 1))
        with pytest.raises(CouponError, match="expired"):
            CouponService.validate(coupon, Decimal("10.00"))

    def test_usage_limit(self):
        with pytest.raises(CouponError, match="limit"):
            CouponService.validate(make_coupon(max_uses=3, used_count=3), Decimal("10.00"))

    def test_minimum_order_value(self):
        with pytest.raises(CouponError, match="Minimum order value"):
            CouponService.validate(make_coupon(min_order_value=Decimal("100.00")), Decimal("99.99"))


# ============================================================================
# Order creation
# ============================================================================

class TestCreateOrder:

    @pytest.mark.asyncio
    async def test_prices_from_products_with_coupon(self, database, store):
        first = await store.add_product(price="39.90", stock=5)
        second = await store.add_product(price="10.05", stock=5)
        await store.add_coupon(code="PROMO10", value="10")

        data = OrderCreate(
            items=[
                OrderItemCreate(product_id=first.id, quantity=2),
                OrderItemCreate(product_id=second.id, quantity=1),
            ],
            coupon_code="promo10",
            customer_email="guest@example.com",
        )
        async with database.session() as db:
            order = await OrderService.create_order(db, data)

        assert order.status == OrderStatus.PENDING.value
        assert order.payment_status == PaymentStatus.PENDING.value
        assert order.subtotal == Decimal("89.85")
        assert order.discount_amount == Decimal("8.99")
        assert order.total == Decimal("80.86")
        assert [item.price for item in order.items] == [Decimal("39.90"), Decimal("10.05")]

    @pytest.mark.asyncio
    async def test_stock_is_checked_but_not_reserved(self, database, store):
        product = await store.add_product(stock=2)

        async with database.session() as db:
            await OrderService.create_order(db, OrderCreate(items=[OrderItemCreate(product_id=product.id, quantity=2)]))
            with pytest.raises(InsufficientStockError):
                await OrderService.create_order(
                    db, OrderCreate(items=[OrderItemCreate(product_id=product.id, quantity=3)])
                )

        assert (await store.get(Product, product.id)).stock == 2

    @pytest.mark.asyncio
    async def test_variant_stock_is_checked(self, database, store):
        product = await store.add_product(stock=100, variants=[("M / White", 1)])
        variant_id = product.variants[0].id

        async with database.session() as db:
            with pytest.raises(InsufficientStockError):
                await OrderService.create_order(
                    db, OrderCreate(items=[OrderItemCreate(product_id=product.id, variant_id=variant_id, quantity=2)])
                )
            with pytest.raises(ProductNotFoundError):
                await OrderService.create_order(
                    db, OrderCreate(items=[OrderItemCreate(product_id=product.id, variant_id=variant_id + 100, quantity=1)])
                )

    @pytest.mark.asyncio
    async def test_unknown_product(self, database):
        async with database.session() as db:
            with pytest.raises(ProductNotFoundError):
                await OrderService.create_order(db, OrderCreate(items=[OrderItemCreate(product_id=404, quantity=1)]))

    @pytest.mark.asyncio
    async def test_unknown_coupon(self, database, store):
        product = await store.add_product()

        async with database.session() as db:
            with pytest.raises(CouponNotFoundError):
                await OrderService.create_order(
                    db, OrderCreate(items=[OrderItemCreate(product_id=product.id, quantity=1)], coupon_code="NOPE")
                )


# ============================================================================
# Coupon removal
# ============================================================================

class TestRemoveCoupon:

    @pytest.mark.asyncio
    async def test_restores_total_on_pending_order(self, database, store):
        product = await store.add_product()
        coupon = await store.add_coupon()
        order = await store.add_order([(product, 2)], coupon_id=coupon.id, discount="10.00")

        async with database.session() as db:
            updated = await OrderService.remove_coupon(db, order.id)

        assert updated.coupon_id is None
        assert updated.discount_amount == Decimal("0.00")
        assert updated.total == Decimal("100.00")
        assert (await store.get(Coupon, coupon.id)).used_count == 0

    @pytest.mark.asyncio
    async def test_releases_recorded_usage(self, database, store):
        product = await store.add_product()
        coupon = await store.add_coupon()
        order = await store.add_order([(product, 1)], coupon_id=coupon.id, discount="5.00")

        async with database.session() as db:
            assert await CouponService.apply_coupon_usage(db, order.id) is True
        assert (await store.get(Coupon, coupon.id)).used_count == 1

        async with database.session() as db:
            await OrderService.remove_coupon(db, order.id)

        assert (await store.get(Coupon, coupon.id)).used_count == 0
        assert (await store.get(Order, order.id)).coupon_usage_recorded is False

    @pytest.mark.asyncio
    async def test_concurrent_removals_release_usage_once(self, database, store):
        product = await store.add_product()
        coupon = await store.add_coupon(used_count=2)
        order = await store.add_order([(product, 1)], coupon_id=coupon.id, discount="5.00")
        async with database.session() as db:
            await CouponService.apply_coupon_usage(db, order.id)

        async def remove():
            async with database.session() as db:
                return await OrderService.remove_coupon(db, order.id)

        results = await asyncio.gather(remove(), remove(), return_exceptions=True)

        assert sum(isinstance(r, CouponRemovalError) for r in results) == 1
        assert (await store.get(Coupon, coupon.id)).used_count == 2

    @pytest.mark.asyncio
    async def test_rejected_once_paid(self, database, store):
        product = await store.add_product()
        coupon = await store.add_coupon()
        order = await store.add_order(
            [(product, 1)], coupon_id=coupon.id, status=OrderStatus.PAID, payment_status=PaymentStatus.PAID
        )

        async with database.session() as db:
            with pytest.raises(CouponRemovalError) as exc:
                await OrderService.remove_coupon(db, order.id)

        assert exc.value.details["status"] == OrderStatus.PAID.value
        assert (await store.get(Order, order.id)).coupon_id == coupon.id

    @pytest.mark.asyncio
    async def test_order_without_coupon(self, database, store):
        product = await store.add_product()
        order = await store.add_order([(product, 1)])

        async with database.session() as db:
            with pytest.raises(CouponRemovalError):
                await OrderService.remove_coupon(db, order.id)
            with pytest.raises(OrderNotFoundError):
                await OrderService.remove_coupon(db, 9999)


# ============================================================================
# Coupon usage
# ============================================================================

class TestApplyCouponUsage:

    @pytest.mark.asyncio
    async def test_missing_coupon_row_names_the_coupon(self, database, store):
        product = await store.add_product()
        order = await store.add_order([(product, 1)], coupon_id=555)

        async with database.session() as db:
            with pytest.raises(CouponNotFoundError) as exc:
                await CouponService.apply_coupon_usage(db, order.id)

        assert str(exc.value) == "Coupon 555 not found"
        assert (await store.get(Order, order.id)).coupon_usage_recorded is False

    @pytest.mark.asyncio
    async def test_order_without_coupon_is_a_noop(self, database, store):
        product = await store.add_product()
        order = await store.add_order([(product, 1)])

        async with database.session() as db:
            assert await CouponService.apply_coupon_usage(db, order.id) is False
