from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Order, OrderStatus, PaymentStatus


class OrderRepository:
    """
    Order persistence.

    The conditional updates (enter_paid, transition_status, clear_coupon) do
    not commit: the caller owns the transaction and reads rowcount to learn
    whether this call was the one that changed the row.
    """

    @staticmethod
    async def create_order(db: AsyncSession, order: Order):
        db.add(order)
        await db.commit()
        await db.refresh(order)
        return order

    @staticmethod
    async def get_order(db: AsyncSession, order_id: int):
        result = await db.execute(
            select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def get_order_by_payment_id(db: AsyncSession, payment_id: str):
        result = await db.execute(select(Order).where(Order.payment_id == payment_id))
        return result.scalars().first()

    @staticmethod
    async def attach_payment(
        db: AsyncSession,
        order_id: int,
        payment_id: str,
        payment_method: str | None = None,
        only_if_missing: bool = False,
    ) -> bool:
        values = {"payment_id": payment_id}
        if payment_method:
            values["payment_method"] = payment_method

        stmt = update(Order).where(Order.id == order_id)
        if only_if_missing:
            stmt = stmt.where(Order.payment_id.is_(None))

        result = await db.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        await db.commit()
        return result.rowcount == 1

    @staticmethod
    async def enter_paid(db: AsyncSession, order_id: int, payment_status: PaymentStatus) -> bool:
        """Move the order into PAID and claim its payment side effects in one statement."""
        result = await db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.status != OrderStatus.PAID.value,
                Order.payment_effects_applied.is_(False),
            )
            .values(
                status=OrderStatus.PAID.value,
                payment_status=payment_status.value,
                payment_effects_applied=True,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def transition_status(
        db: AsyncSession, order_id: int, status: OrderStatus, payment_status: PaymentStatus
    ) -> bool:
        result = await db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                or_(Order.status != status.value, Order.payment_status != payment_status.value),
            )
            .values(status=status.value, payment_status=payment_status.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def mark_coupon_usage_recorded(db: AsyncSession, order_id: int):
        await db.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(coupon_usage_recorded=True)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    async def clear_coupon(db: AsyncSession, order_id: int, coupon_id: int) -> bool:
        result = await db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.coupon_id == coupon_id,
                Order.status == OrderStatus.PENDING.value,
                Order.payment_status == PaymentStatus.PENDING.value,
            )
            .values(
                coupon_id=None,
                discount_amount=0,
                total=Order.subtotal,
                coupon_usage_recorded=False,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
