"""
External reference <-> order id.

New payments always carry the bare order id ("42"). Older guest checkouts
used prefixed references; `guest_order_<id>` still parses, and anything else
(`guest_pix_*`, `guest_boleto_*`) is matched through the payment id stored on
the order.
"""
import re

from sqlalchemy.ext.asyncio import AsyncSession

from services.order_service.models import MAX_ORDER_ID
from services.order_service.repository import OrderRepository

from .schemas import GatewayPayment

LEGACY_GUEST_ORDER_PREFIX = "guest_order_"

_ORDER_ID = re.compile(r"[0-9]+")


def build_external_reference(order_id: int) -> str:
    return str(order_id)


def parse_external_reference(reference: str | None) -> int | None:
    if not reference:
        return None
    reference = reference.strip()
    if reference.startswith(LEGACY_GUEST_ORDER_PREFIX):
        reference = reference[len(LEGACY_GUEST_ORDER_PREFIX):]
    if not _ORDER_ID.fullmatch(reference):
        return None
    order_id = int(reference)
    if not 0 < order_id <= MAX_ORDER_ID:
        return None
    return order_id


async def resolve_order_id(db: AsyncSession, payment: GatewayPayment) -> int | None:
    order_id = parse_external_reference(payment.external_reference)
    if order_id is not None:
        return order_id

    order = await OrderRepository.get_order_by_payment_id(db, payment.id)
    return order.id if order else None
