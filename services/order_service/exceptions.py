from shared.exceptions import StorefrontError


class OrderError(StorefrontError):
    """Base exception for order-related errors."""
    pass


class OrderNotFoundError(OrderError):
    def __init__(self, order_id: int):
        super().__init__(f"Order {order_id} not found", details={"order_id": order_id})
        self.order_id = order_id


class OrderNotPayableError(OrderError):
    """Raised when a payment is requested for an order that is no longer PENDING."""

    def __init__(self, order_id: int, status: str):
        super().__init__(
            f"Order {order_id} is not pending payment (status: {status})",
            details={"order_id": order_id, "status": status},
        )
        self.order_id = order_id
        self.status = status


class CouponRemovalError(OrderError):
    pass
