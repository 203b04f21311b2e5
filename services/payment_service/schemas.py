from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from services.order_service.models import MAX_ORDER_ID, OrderStatus, PaymentStatus
from services.product_service.schemas import StockDecrementReport


# --- Gateway payloads ---

class PixInfo(BaseModel):
    qr_code: str = ""
    qr_code_base64: str = ""


class GatewayPayment(BaseModel):
    """The subset of a Mercado Pago payment resource this service reads."""

    model_config = ConfigDict(extra="ignore")

    id: str
    status: str = "pending"
    status_detail: str | None = None
    external_reference: str | None = None
    transaction_amount: Decimal | None = None
    payment_method_id: str | None = None
    payment_type_id: str | None = None
    date_created: datetime | None = None
    date_approved: datetime | None = None
    point_of_interaction: dict | None = None
    transaction_details: dict | None = None

    @field_validator("id", "external_reference", mode="before")
    @classmethod
    def _stringify(cls, value):
        # Mercado Pago sends numeric ids
        return None if value is None else str(value)

    def pix_info(self) -> PixInfo:
        data = (self.point_of_interaction or {}).get("transaction_data") or {}
        return PixInfo(qr_code=data.get("qr_code") or "", qr_code_base64=data.get("qr_code_base64") or "")

    @property
    def ticket_url(self) -> str | None:
        """Boleto / PIX checkout URL, when the gateway provides one."""
        data = (self.point_of_interaction or {}).get("transaction_data") or {}
        return (self.transaction_details or {}).get("external_resource_url") or data.get("ticket_url")


# --- Reconciliation ---

class ReconciliationResult(BaseModel):
    order_id: int
    gateway_status: str | None
    previous_status: OrderStatus
    status: OrderStatus
    payment_status: PaymentStatus
    transitioned: bool
    side_effects_triggered: bool = False
    # None when no side effects were due
    side_effects_succeeded: bool | None = None
    stock: StockDecrementReport | None = None
    stock_error: str | None = None
    coupon_applied: bool = False
    coupon_error: str | None = None


# --- Entry point requests ---

class CardData(BaseModel):
    holder_name: str = Field(min_length=1)
    number: str = Field(min_length=13, max_length=19)
    expiry_month: str = Field(pattern=r"^\d{1,2}$")
    expiry_year: str = Field(pattern=r"^\d{2,4}$")
    ccv: str = Field(min_length=3, max_length=4)


class HolderInfo(BaseModel):
    name: str = Field(min_length=1)
    email: str
    cpf_cnpj: str = Field(min_length=11, max_length=14)
    postal_code: str = Field(min_length=8, max_length=9)
    address_number: str = Field(min_length=1)
    phone: str = Field(min_length=10, max_length=11)


class CardPaymentCreate(BaseModel):
    order_id: int = Field(gt=0, le=MAX_ORDER_ID)
    card: CardData
    holder: HolderInfo
    installments: int = Field(default=1, ge=1, le=12)


class PixPaymentCreate(BaseModel):
    order_id: int = Field(gt=0, le=MAX_ORDER_ID)
    payer_email: str
    payer_name: str = "Cliente"
    cpf_cnpj: str | None = Field(default=None, min_length=11, max_length=14)


class WebhookData(BaseModel):
    id: str

    @field_validator("id", mode="before")
    @classmethod
    def _stringify(cls, value):
        return str(value)


class WebhookNotification(BaseModel):
    type: str
    action: str | None = None
    data: WebhookData


# --- Entry point responses ---

class PaymentInfo(BaseModel):
    id: str
    status: str
    status_detail: str | None = None
    transaction_amount: Decimal | None = None
    date_created: datetime | None = None
    date_approved: datetime | None = None
    pix: PixInfo | None = None
    ticket_url: str | None = None


class PaymentCreateResponse(BaseModel):
    order_id: int
    order_status: OrderStatus
    payment: PaymentInfo
    reconciliation: ReconciliationResult


class PaymentStatusResponse(BaseModel):
    order_id: int
    order_status: OrderStatus
    payment_status: PaymentStatus
    has_payment: bool
    payment: PaymentInfo | None = None
    reconciliation: ReconciliationResult | None = None


class WebhookAck(BaseModel):
    received: bool = True
    processed: bool = False
    order_id: int | None = None
    status: OrderStatus | None = None
    transitioned: bool | None = None
