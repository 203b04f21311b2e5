from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Coupon


class CouponRepository:

    @staticmethod
    async def get_by_code(db: AsyncSession, code: str):
        result = await db.execute(select(Coupon).where(Coupon.code == code.strip().upper()))
        return result.scalars().first()

    @staticmethod
    async def increment_usage(db: AsyncSession, coupon_id: int) -> bool:
        result = await db.execute(
            update(Coupon)
            .where(Coupon.id == coupon_id)
            .values(used_count=Coupon.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def decrement_usage(db: AsyncSession, coupon_id: int) -> bool:
        result = await db.execute(
            update(Coupon)
            .where(Coupon.id == coupon_id, Coupon.used_count > 0)
            .values(used_count=Coupon.used_count - 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
