import structlog
from fastapi import APIRouter, Depends, HTTPException, Path, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security import PAYMENT_STATUS_RATE_LIMIT, limiter, verify_webhook_signature
from services.order_service.exceptions import OrderNotFoundError, OrderNotPayableError
from services.order_service.models import MAX_ORDER_ID

from .errors import GatewayError
from .schemas import (
    CardPaymentCreate,
    PaymentCreateResponse,
    PaymentStatusResponse,
    PixPaymentCreate,
    WebhookAck,
    WebhookNotification,
)
from .service import PaymentService

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_payment_service(request: Request) -> PaymentService:
    return request.app.state.payment_service


def _to_http(e: OrderNotFoundError | OrderNotPayableError | GatewayError) -> HTTPException:
    if isinstance(e, OrderNotFoundError):
        return HTTPException(status_code=404, detail=e.message)
    if isinstance(e, OrderNotPayableError):
        return HTTPException(status_code=400, detail=e.message)
    return HTTPException(
        status_code=e.http_status,
        detail={"error": e.message, "code": e.code, "retryable": e.retryable},
    )


@router.post("/payments/card", response_model=PaymentCreateResponse)
async def create_card_payment(
    payment: CardPaymentCreate,
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
):
    try:
        return await service.create_card_payment(db, payment)
    except (OrderNotFoundError, OrderNotPayableError, GatewayError) as e:
        raise _to_http(e)


@router.post("/payments/pix", response_model=PaymentCreateResponse)
async def create_pix_payment(
    payment: PixPaymentCreate,
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
):
    try:
        return await service.create_pix_payment(db, payment)
    except (OrderNotFoundError, OrderNotPayableError, GatewayError) as e:
        raise _to_http(e)


# Guest checkouts poll this, so it is public and rate limited per IP
@router.get("/orders/{order_id}/payment-status", response_model=PaymentStatusResponse)
@limiter.limit(PAYMENT_STATUS_RATE_LIMIT)
async def get_payment_status(
    request: Request,  # REQUIRED: slowapi needs this to check IP/Headers
    order_id: int = Path(gt=0, le=MAX_ORDER_ID),
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
):
    try:
        return await service.check_payment_status(db, order_id)
    except (OrderNotFoundError, GatewayError) as e:
        raise _to_http(e)


@router.post("/payments/webhook", response_model=WebhookAck)
async def mercadopago_webhook(
    request: Request,
    notification: WebhookNotification,
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
):
    secret = request.app.state.settings.mercadopago_webhook_secret
    if secret:
        valid = verify_webhook_signature(
            secret,
            request.headers.get("x-signature"),
            request.headers.get("x-request-id"),
            notification.data.id,
        )
        if not valid:
            logger.error("webhook_signature_invalid", data_id=notification.data.id)
            raise HTTPException(status_code=401, detail="Invalid signature")
    else:
        logger.warning("webhook_signature_not_configured")

    # Gateway failures surface as 5xx so Mercado Pago redelivers the notification
    try:
        return await service.handle_webhook(db, notification)
    except (OrderNotFoundError, GatewayError) as e:
        raise _to_http(e)
