from shared.exceptions import StorefrontError


class CouponError(StorefrontError):
    """Raised when a coupon cannot be applied to an order."""
    pass


class CouponNotFoundError(CouponError):
    def __init__(self, code_or_id):
        super().__init__(f"Coupon {code_or_id} not found", details={"coupon": code_or_id})
