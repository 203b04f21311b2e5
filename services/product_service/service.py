import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.order_service.exceptions import OrderNotFoundError
from services.order_service.repository import OrderRepository

from .exceptions import InsufficientStockError, ProductNotFoundError
from .repository import ProductRepository
from .schemas import StockChange, StockDecrementReport, StockFailure

logger = structlog.get_logger(__name__)


class ProductService:

    @staticmethod
    async def check_availability(db: AsyncSession, items) -> dict:
        """
        Verifies every requested product (and variant) exists with enough stock.

        Nothing is reserved here; stock only moves when the payment is
        approved. Returns {product_id: Product} for pricing.
        """
        product_ids = {item.product_id for item in items}
        products = {p.id: p for p in await ProductRepository.get_products_by_ids(db, list(product_ids))}

        for item in items:
            product = products.get(item.product_id)
            if not product:
                raise ProductNotFoundError(item.product_id)

            available = product.stock
            if item.variant_id is not None:
                variant = await ProductRepository.get_variant(db, item.product_id, item.variant_id)
                if not variant:
                    raise ProductNotFoundError(item.product_id, item.variant_id)
                available = variant.stock

            if available < item.quantity:
                raise InsufficientStockError(item.product_id, item.quantity, available)

        return products

    @staticmethod
    async def decrement_stock_for_order(db: AsyncSession, order_id: int) -> StockDecrementReport:
        """
        Commits the stock decrement for every item of a paid order.

        Each item is its own transaction: a missing product or a database
        error is recorded in the report and the remaining items still go
        through. Availability is not re-checked, the money has already moved.
        """
        order = await OrderRepository.get_order(db, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)

        items = [(item.product_id, item.variant_id, item.quantity) for item in order.items]
        report = StockDecrementReport(order_id=order_id)

        for product_id, variant_id, quantity in items:
            try:
                if variant_id is None:
                    new_stock = await ProductRepository.decrement_stock(db, product_id, quantity)
                else:
                    new_stock = await ProductRepository.decrement_variant_stock(
                        db, product_id, variant_id, quantity
                    )

                if new_stock is None:
                    await db.rollback()
                    reason = str(ProductNotFoundError(product_id, variant_id))
                    logger.error(
                        "stock_decrement_failed",
                        order_id=order_id, product_id=product_id, variant_id=variant_id, reason=reason,
                    )
                    report.failures.append(StockFailure(
                        product_id=product_id, variant_id=variant_id, quantity=quantity, reason=reason,
                    ))
                    continue

                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(
                    "stock_decrement_failed",
                    order_id=order_id, product_id=product_id, variant_id=variant_id, reason=str(e),
                )
                report.failures.append(StockFailure(
                    product_id=product_id, variant_id=variant_id, quantity=quantity, reason=str(e),
                ))
                continue

            if new_stock < 0:
                logger.warning(
                    "stock_below_zero",
                    order_id=order_id, product_id=product_id, variant_id=variant_id, stock=new_stock,
                )
            report.decremented.append(StockChange(
                product_id=product_id, variant_id=variant_id, quantity=quantity, new_stock=new_stock,
            ))

        logger.info(
            "stock_decremented",
            order_id=order_id, items=len(report.decremented), failures=len(report.failures),
        )
        return report
