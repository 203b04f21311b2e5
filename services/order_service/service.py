from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.coupon_service.service import CouponService, to_money
from services.product_service.service import ProductService

from .exceptions import CouponRemovalError, OrderNotFoundError
from .models import Order, OrderItem, OrderStatus, PaymentStatus
from .repository import OrderRepository
from .schemas import OrderCreate

logger = structlog.get_logger(__name__)


class OrderService:
    @staticmethod
    async def create_order(db: AsyncSession, data: OrderCreate):
        products = await ProductService.check_availability(db, data.items)

        items = []
        subtotal = Decimal("0")
        for item in data.items:
            price = to_money(products[item.product_id].price)
            subtotal += price * item.quantity
            items.append(OrderItem(
                product_id=item.product_id,
                variant_id=item.variant_id,
                quantity=item.quantity,
                price=price,
            ))
        subtotal = to_money(subtotal)

        coupon_id = None
        discount = Decimal("0.00")
        if data.coupon_code:
            coupon, discount = await CouponService.resolve_for_order(db, data.coupon_code, subtotal)
            coupon_id = coupon.id

        order = Order(
            customer_email=data.customer_email,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            coupon_id=coupon_id,
            subtotal=subtotal,
            discount_amount=discount,
            total=to_money(subtotal - discount),
            items=items,
        )
        order = await OrderRepository.create_order(db, order)
        logger.info("order_created", order_id=order.id, total=str(order.total), coupon_id=coupon_id)
        return order

    @staticmethod
    async def get_order(db: AsyncSession, order_id: int):
        order = await OrderRepository.get_order(db, order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        return order

    @staticmethod
    async def remove_coupon(db: AsyncSession, order_id: int):
        order = await OrderService.get_order(db, order_id)
        if order.coupon_id is None:
            raise CouponRemovalError(f"Order {order_id} has no coupon", details={"order_id": order_id})

        coupon_id = order.coupon_id
        usage_recorded = order.coupon_usage_recorded
        status = order.status

        # Only the caller whose conditional update clears the coupon may release its usage
        cleared = await OrderRepository.clear_coupon(db, order_id, coupon_id)
        if not cleared:
            await db.rollback()
            raise CouponRemovalError(
                f"Coupon can only be removed from an unpaid pending order (order {order_id})",
                details={"order_id": order_id, "status": status},
            )
        await db.commit()

        if usage_recorded:
            await CouponService.release_coupon_usage(db, coupon_id)

        logger.info("coupon_removed", order_id=order_id, coupon_id=coupon_id, usage_released=usage_recorded)
        return await OrderRepository.get_order(db, order_id)
