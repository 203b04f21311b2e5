from services.order_service.models import OrderStatus, PaymentStatus

APPROVED = "approved"

# Mercado Pago payment status -> order status
GATEWAY_STATUS_MAPPING = {
    "pending": OrderStatus.PENDING,
    "approved": OrderStatus.PAID,
    "authorized": OrderStatus.PAID,
    "in_process": OrderStatus.PENDING,
    "in_mediation": OrderStatus.PENDING,
    "rejected": OrderStatus.CANCELED,
    "cancelled": OrderStatus.CANCELED,
    "refunded": OrderStatus.CANCELED,
    "charged_back": OrderStatus.CANCELED,
}


def map_order_status(gateway_status) -> OrderStatus:
    """Total mapping: anything unknown (or not a string) is PENDING."""
    if not isinstance(gateway_status, str):
        return OrderStatus.PENDING
    return GATEWAY_STATUS_MAPPING.get(gateway_status, OrderStatus.PENDING)


def map_payment_status(gateway_status) -> PaymentStatus:
    return PaymentStatus.PAID if gateway_status == APPROVED else PaymentStatus.PENDING
