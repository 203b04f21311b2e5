from pydantic import BaseModel


class StockChange(BaseModel):
    product_id: int
    variant_id: int | None = None
    quantity: int
    new_stock: int


class StockFailure(BaseModel):
    product_id: int
    variant_id: int | None = None
    quantity: int
    reason: str


class StockDecrementReport(BaseModel):
    order_id: int
    decremented: list[StockChange] = []
    failures: list[StockFailure] = []

    @property
    def succeeded(self) -> bool:
        return not self.failures
