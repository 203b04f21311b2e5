from decimal import Decimal

from pydantic import BaseModel, Field


class OrderItemCreate(BaseModel):
    product_id: int
    variant_id: int | None = None
    quantity: int = Field(gt=0)


class OrderCreate(BaseModel):
    items: list[OrderItemCreate] = Field(min_length=1)
    coupon_code: str | None = None
    customer_email: str | None = None


class OrderItemResponse(BaseModel):
    id: int
    product_id: int
    variant_id: int | None
    quantity: int
    price: Decimal

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    status: str
    payment_status: str
    payment_id: str | None
    payment_method: str | None
    coupon_id: int | None
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal
    customer_email: str | None
    items: list[OrderItemResponse]

    class Config:
        from_attributes = True
