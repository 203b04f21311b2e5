from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Product, ProductVariant


class ProductRepository:

    @staticmethod
    async def get_products_by_ids(db: AsyncSession, product_ids: list[int]):
        result = await db.execute(select(Product).where(Product.id.in_(product_ids)))
        return result.scalars().all()

    @staticmethod
    async def get_variant(db: AsyncSession, product_id: int, variant_id: int):
        result = await db.execute(
            select(ProductVariant).where(
                ProductVariant.id == variant_id,
                ProductVariant.product_id == product_id,
            )
        )
        return result.scalars().first()

    # Atomic `stock = stock - qty` so concurrent decrements never lose updates.
    # Returns the new stock, or None when the row does not exist. No commit.
    @staticmethod
    async def decrement_stock(db: AsyncSession, product_id: int, quantity: int) -> int | None:
        result = await db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        stock = await db.execute(select(Product.stock).where(Product.id == product_id))
        return stock.scalar_one()

    @staticmethod
    async def decrement_variant_stock(
        db: AsyncSession, product_id: int, variant_id: int, quantity: int
    ) -> int | None:
        result = await db.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant_id, ProductVariant.product_id == product_id)
            .values(stock=ProductVariant.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        stock = await db.execute(select(ProductVariant.stock).where(ProductVariant.id == variant_id))
        return stock.scalar_one()
