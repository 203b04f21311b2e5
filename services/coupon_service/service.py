from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.order_service.exceptions import OrderNotFoundError
from services.order_service.repository import OrderRepository

from .exceptions import CouponError, CouponNotFoundError
from .models import Coupon, CouponType
from .repository import CouponRepository

logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def _aware(moment: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


class CouponService:

    @staticmethod
    def validate(coupon: Coupon, order_value: Decimal, now: datetime | None = None):
        """Raises CouponError with the reason the coupon cannot be used."""
        now = now or datetime.now(timezone.utc)

        if not coupon.is_active:
            raise CouponError(f"Coupon {coupon.code} is inactive", details={"code": coupon.code})

        valid_from = _aware(coupon.valid_from)
        if valid_from and valid_from > now:
            raise CouponError(
                f"Coupon {coupon.code} is valid from {valid_from.date().isoformat()}",
                details={"code": coupon.code},
            )

        valid_until = _aware(coupon.valid_until)
        if valid_until and valid_until < now:
            raise CouponError(
                f"Coupon {coupon.code} expired on {valid_until.date().isoformat()}",
                details={"code": coupon.code},
            )

        if coupon.max_uses and coupon.used_count >= coupon.max_uses:
            raise CouponError(
                f"Coupon {coupon.code} reached its limit of {coupon.max_uses} uses",
                details={"code": coupon.code, "max_uses": coupon.max_uses},
            )

        if coupon.min_order_value is not None and order_value < to_money(coupon.min_order_value):
            raise CouponError(
                f"Minimum order value for coupon {coupon.code} is {to_money(coupon.min_order_value)}",
                details={"code": coupon.code},
            )

    @staticmethod
    def calculate_discount(coupon: Coupon, order_value: Decimal) -> Decimal:
        value = Decimal(str(coupon.value))

        if coupon.type == CouponType.PERCENTAGE.value:
            discount = order_value * value / Decimal(100)
            if coupon.max_discount is not None:
                discount = min(discount, Decimal(str(coupon.max_discount)))
        else:
            discount = value

        # A fixed coupon larger than the order makes it free, never negative
        return to_money(min(discount, order_value))

    @staticmethod
    async def resolve_for_order(db: AsyncSession, code: str, order_value: Decimal) -> tuple[Coupon, Decimal]:
        coupon = await CouponRepository.get_by_code(db, code)
        if not coupon:
            raise CouponNotFoundError(code.strip().upper())
        CouponService.validate(coupon, order_value)
        return coupon, CouponService.calculate_discount(coupon, order_value)

    @staticmethod
    async def apply_coupon_usage(db: AsyncSession, order_id: int) -> bool:
        """
        Counts one use of the order's coupon.

        Not idempotent on its own: the caller guarantees it runs once per
        order (the reconciler only calls it on the edge into PAID).
        Returns False when the order has no coupon.
        """
        order = await OrderRepository.get_order(db, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        coupon_id = order.coupon_id
        if coupon_id is None:
            return False

        incremented = await CouponRepository.increment_usage(db, coupon_id)
        if not incremented:
            await db.rollback()
            raise CouponNotFoundError(coupon_id)

        await OrderRepository.mark_coupon_usage_recorded(db, order_id)
        await db.commit()
        logger.info("coupon_usage_recorded", order_id=order_id, coupon_id=coupon_id)
        return True

    @staticmethod
    async def release_coupon_usage(db: AsyncSession, coupon_id: int) -> bool:
        released = await CouponRepository.decrement_usage(db, coupon_id)
        await db.commit()
        return released
