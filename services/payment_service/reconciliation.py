"""
Payment reconciliation.

Single decision point that maps a gateway payment status onto an order and,
on the order's first transition into PAID, decrements stock and counts the
coupon use. The at-most-once guarantee lives in the database, not in this
process: the statement that moves the order into PAID also claims
`payment_effects_applied`, and only the caller whose statement changed the
row runs the side effects. Webhooks, polls and payment creation may race
from different replicas and still apply them once.
"""
import time

import structlog

from shared.config.database import Database
from shared.observability import (
    storefront_reconciliation_duration_seconds,
    storefront_reconciliation_total,
    storefront_side_effect_failures_total,
)
from services.coupon_service.service import CouponService
from services.order_service.exceptions import OrderNotFoundError
from services.order_service.models import OrderStatus, PaymentStatus
from services.order_service.repository import OrderRepository
from services.product_service.service import ProductService

from .schemas import ReconciliationResult
from .status_mapping import map_order_status, map_payment_status

logger = structlog.get_logger(__name__)


class PaymentReconciler:
    def __init__(self, database: Database):
        self.database = database

    async def reconcile(self, order_id: int, gateway_status) -> ReconciliationResult:
        started = time.perf_counter()
        try:
            return await self._reconcile(order_id, gateway_status)
        finally:
            storefront_reconciliation_duration_seconds.observe(time.perf_counter() - started)

    async def _reconcile(self, order_id: int, gateway_status) -> ReconciliationResult:
        target_status = map_order_status(gateway_status)
        target_payment_status = map_payment_status(gateway_status)
        observed = None if gateway_status is None else str(gateway_status)
        log = logger.bind(order_id=order_id, gateway_status=observed)

        async with self.database.session() as db:
            order = await OrderRepository.get_order(db, order_id)
            if order is None:
                raise OrderNotFoundError(order_id)

            previous_status = OrderStatus(order.status)

            if order.status == target_status.value and order.payment_status == target_payment_status.value:
                storefront_reconciliation_total.labels(outcome="noop").inc()
                log.debug("reconciliation_noop", status=order.status)
                return ReconciliationResult(
                    order_id=order_id,
                    gateway_status=observed,
                    previous_status=previous_status,
                    status=previous_status,
                    payment_status=PaymentStatus(order.payment_status),
                    transitioned=False,
                )

            entered_paid = False
            if target_status is OrderStatus.PAID:
                entered_paid = await OrderRepository.enter_paid(db, order_id, target_payment_status)

            transitioned = entered_paid or await OrderRepository.transition_status(
                db, order_id, target_status, target_payment_status
            )
            await db.commit()

            # Another caller may have won the race; report what is stored now
            await db.refresh(order)
            status = OrderStatus(order.status)
            payment_status = PaymentStatus(order.payment_status)

        result = ReconciliationResult(
            order_id=order_id,
            gateway_status=observed,
            previous_status=previous_status,
            status=status,
            payment_status=payment_status,
            transitioned=transitioned,
        )

        if not transitioned:
            storefront_reconciliation_total.labels(outcome="lost_race").inc()
            log.info("reconciliation_lost_race", status=status.value)
            return result

        log.info(
            "order_status_reconciled",
            previous_status=previous_status.value,
            status=status.value,
            payment_status=payment_status.value,
        )

        if not entered_paid:
            storefront_reconciliation_total.labels(outcome="transitioned").inc()
            return result

        storefront_reconciliation_total.labels(outcome="paid_edge").inc()
        await self._apply_payment_effects(order_id, result)
        return result

    async def _apply_payment_effects(self, order_id: int, result: ReconciliationResult):
        """
        Runs stock and coupon side effects after the status change is committed.

        Failures are logged, counted and written into the result; they never
        undo the status transition.
        """
        result.side_effects_triggered = True
        succeeded = True

        async with self.database.session() as db:
            try:
                result.stock = await ProductService.decrement_stock_for_order(db, order_id)
                if not result.stock.succeeded:
                    succeeded = False
                    storefront_side_effect_failures_total.labels(kind="stock").inc()
            except Exception as e:
                succeeded = False
                result.stock_error = str(e)
                storefront_side_effect_failures_total.labels(kind="stock").inc()
                logger.exception("stock_side_effect_failed", order_id=order_id)
                await db.rollback()

        async with self.database.session() as db:
            try:
                result.coupon_applied = await CouponService.apply_coupon_usage(db, order_id)
            except Exception as e:
                succeeded = False
                result.coupon_error = str(e)
                storefront_side_effect_failures_total.labels(kind="coupon").inc()
                logger.exception("coupon_side_effect_failed", order_id=order_id)
                await db.rollback()

        result.side_effects_succeeded = succeeded
        if not succeeded:
            logger.error("payment_side_effects_incomplete", order_id=order_id)
