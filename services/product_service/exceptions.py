from shared.exceptions import StorefrontError


class ProductNotFoundError(StorefrontError):
    def __init__(self, product_id: int, variant_id: int | None = None):
        if variant_id is None:
            message = f"Product {product_id} not found"
        else:
            message = f"Variant {variant_id} of product {product_id} not found"
        super().__init__(message, details={"product_id": product_id, "variant_id": variant_id})
        self.product_id = product_id
        self.variant_id = variant_id


class InsufficientStockError(StorefrontError):
    def __init__(self, product_id: int, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_id}: requested {requested}, available {available}",
            details={"product_id": product_id, "requested": requested, "available": available},
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available
