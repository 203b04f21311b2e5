import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.observability import storefront_webhook_notifications_total
from services.order_service.exceptions import OrderNotFoundError, OrderNotPayableError
from services.order_service.models import OrderStatus, PaymentStatus
from services.order_service.repository import OrderRepository

from .errors import GatewayError
from .gateway import MercadoPagoClient
from .reconciliation import PaymentReconciler
from .references import build_external_reference, resolve_order_id
from .schemas import (
    CardPaymentCreate,
    GatewayPayment,
    PaymentCreateResponse,
    PaymentInfo,
    PaymentStatusResponse,
    PixInfo,
    PixPaymentCreate,
    WebhookAck,
    WebhookNotification,
)

logger = structlog.get_logger(__name__)


def _identification(document: str) -> dict:
    return {"type": "CPF" if len(document) == 11 else "CNPJ", "number": document}


def _split_name(name: str) -> tuple[str, str]:
    first, _, last = name.strip().partition(" ")
    return first, last.strip()


def _payment_info(payment: GatewayPayment, pix: PixInfo | None = None) -> PaymentInfo:
    return PaymentInfo(
        id=payment.id,
        status=payment.status,
        status_detail=payment.status_detail,
        transaction_amount=payment.transaction_amount,
        date_created=payment.date_created,
        date_approved=payment.date_approved,
        pix=pix,
        ticket_url=payment.ticket_url,
    )


def latest_payment(payments: list[GatewayPayment]) -> GatewayPayment:
    # Stable sort: among equal (or missing) dates the last one returned wins
    ordered = sorted(payments, key=lambda p: p.date_created.timestamp() if p.date_created else float("-inf"))
    return ordered[-1]


class PaymentService:
    """
    The three ways a payment status reaches an order: creating a payment,
    a client polling, and the gateway webhook. Each one only works out which
    order and which gateway status, then hands off to PaymentReconciler.
    """

    def __init__(self, gateway: MercadoPagoClient, reconciler: PaymentReconciler):
        self.gateway = gateway
        self.reconciler = reconciler

    async def _payable_order(self, db: AsyncSession, order_id: int):
        order = await OrderRepository.get_order(db, order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        if order.status != OrderStatus.PENDING.value:
            raise OrderNotPayableError(order_id, order.status)
        return order

    async def create_card_payment(self, db: AsyncSession, data: CardPaymentCreate) -> PaymentCreateResponse:
        order = await self._payable_order(db, data.order_id)
        holder = data.holder

        token = await self.gateway.create_card_token({
            "card_number": data.card.number,
            "security_code": data.card.ccv,
            "expiration_month": int(data.card.expiry_month),
            "expiration_year": int(data.card.expiry_year),
            "cardholder": {
                "name": data.card.holder_name,
                "identification": _identification(holder.cpf_cnpj),
            },
        })

        first_name, last_name = _split_name(holder.name)
        payment = await self.gateway.create_payment({
            # JSON number on the wire; the stored total stays Decimal
            "transaction_amount": float(order.total),
            "token": token,
            "description": f"Order #{order.id}",
            "installments": data.installments,
            "payer": {
                "email": order.customer_email or holder.email,
                "first_name": first_name,
                "last_name": last_name,
                "identification": _identification(holder.cpf_cnpj),
                "phone": {"area_code": holder.phone[:2], "number": holder.phone[2:]},
                "address": {"zip_code": holder.postal_code, "street_number": holder.address_number},
            },
            "external_reference": build_external_reference(order.id),
            "metadata": {"order_id": str(order.id)},
        })

        await OrderRepository.attach_payment(db, order.id, payment.id, payment_method="card")
        result = await self.reconciler.reconcile(order.id, payment.status)

        return PaymentCreateResponse(
            order_id=order.id,
            order_status=result.status,
            payment=_payment_info(payment),
            reconciliation=result,
        )

    async def create_pix_payment(self, db: AsyncSession, data: PixPaymentCreate) -> PaymentCreateResponse:
        order = await self._payable_order(db, data.order_id)

        first_name, last_name = _split_name(data.payer_name)
        payer = {
            "email": order.customer_email or data.payer_email,
            "first_name": first_name,
            "last_name": last_name,
        }
        if data.cpf_cnpj:
            payer["identification"] = _identification(data.cpf_cnpj)

        payment = await self.gateway.create_pix_payment({
            "transaction_amount": float(order.total),
            "description": f"Order #{order.id}",
            "payer": payer,
            "external_reference": build_external_reference(order.id),
        })

        await OrderRepository.attach_payment(db, order.id, payment.id, payment_method="pix")
        result = await self.reconciler.reconcile(order.id, payment.status)

        pix = payment.pix_info()
        if not pix.qr_code:
            # The payment exists now; a missing QR code must not make the client create another one
            try:
                pix = await self.gateway.get_pix_info(payment.id)
            except GatewayError as e:
                logger.warning("pix_info_unavailable", order_id=order.id, payment_id=payment.id, error=e.message)

        return PaymentCreateResponse(
            order_id=order.id,
            order_status=result.status,
            payment=_payment_info(payment, pix),
            reconciliation=result,
        )

    async def check_payment_status(self, db: AsyncSession, order_id: int) -> PaymentStatusResponse:
        order = await OrderRepository.get_order(db, order_id)
        if not order:
            raise OrderNotFoundError(order_id)

        payments = await self.gateway.search_payments(build_external_reference(order.id))
        if not payments and order.payment_id:
            payments = [await self.gateway.get_payment(order.payment_id)]

        if not payments:
            return PaymentStatusResponse(
                order_id=order.id,
                order_status=OrderStatus(order.status),
                payment_status=PaymentStatus(order.payment_status),
                has_payment=False,
            )

        payment = latest_payment(payments)
        if order.payment_id is None:
            await OrderRepository.attach_payment(db, order.id, payment.id, only_if_missing=True)

        result = await self.reconciler.reconcile(order.id, payment.status)

        pix = payment.pix_info() if payment.payment_method_id == "pix" else None
        return PaymentStatusResponse(
            order_id=order.id,
            order_status=result.status,
            payment_status=result.payment_status,
            has_payment=True,
            payment=_payment_info(payment, pix),
            reconciliation=result,
        )

    async def handle_webhook(self, db: AsyncSession, notification: WebhookNotification) -> WebhookAck:
        kind = "payment" if notification.type == "payment" else "other"
        storefront_webhook_notifications_total.labels(type=kind).inc()

        if notification.type != "payment":
            logger.info("webhook_ignored", type=notification.type, action=notification.action)
            return WebhookAck()

        payment = await self.gateway.get_payment(notification.data.id)

        order_id = await resolve_order_id(db, payment)
        if order_id is None:
            logger.warning(
                "webhook_unresolved_reference",
                payment_id=payment.id, external_reference=payment.external_reference,
            )
            return WebhookAck(processed=False)

        order = await OrderRepository.get_order(db, order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        if order.payment_id is None:
            await OrderRepository.attach_payment(db, order_id, payment.id, only_if_missing=True)

        result = await self.reconciler.reconcile(order_id, payment.status)
        logger.info(
            "webhook_processed",
            order_id=order_id, payment_id=payment.id, action=notification.action, status=result.status.value,
        )
        return WebhookAck(
            processed=True,
            order_id=order_id,
            status=result.status,
            transitioned=result.transitioned,
        )
