"""
Mercado Pago REST adapter.

A thin httpx wrapper: every call returns parsed pydantic models or raises a
GatewayError. Nothing here touches the database.
"""
import uuid

import httpx
import structlog

from shared.observability import storefront_gateway_errors_total

from .errors import GatewayError, GatewayUnavailableError, error_from_response, error_from_transport
from .schemas import GatewayPayment, PixInfo

logger = structlog.get_logger(__name__)


class MercadoPagoClient:
    def __init__(
        self,
        api_url: str,
        access_token: str,
        public_key: str = "",
        timeout: float = 15.0,
        notification_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.access_token = access_token
        self.public_key = public_key
        self.notification_url = notification_url
        self._client = httpx.AsyncClient(base_url=api_url, timeout=timeout, transport=transport)

    async def aclose(self):
        await self._client.aclose()

    def _headers(self, token: str | None = None, idempotent: bool = False) -> dict:
        headers = {
            "Authorization": f"Bearer {token or self.access_token}",
            "Content-Type": "application/json",
        }
        if idempotent:
            headers["X-Idempotency-Key"] = str(uuid.uuid4())
        return headers

    async def _request(self, method: str, path: str, *, token: str | None = None, **kwargs):
        try:
            resp = await self._client.request(
                method, path, headers=self._headers(token, idempotent=method == "POST"), **kwargs
            )
        except httpx.TransportError as e:
            error = error_from_transport(e)
            self._record(error, method, path)
            raise error from e

        if resp.status_code >= 400:
            error = error_from_response(resp)
            self._record(error, method, path)
            raise error

        return resp.json()

    @staticmethod
    def _record(error: GatewayError, method: str, path: str):
        kind = "unavailable" if isinstance(error, GatewayUnavailableError) else "request"
        storefront_gateway_errors_total.labels(kind=kind).inc()
        logger.warning(
            "gateway_request_failed",
            method=method, path=path, code=error.code, gateway_status=error.gateway_status, message=error.message,
        )

    async def create_card_token(self, card: dict) -> str:
        # Card tokens are created with the public key, as the browser SDK would
        data = await self._request("POST", "/v1/card_tokens", json=card, token=self.public_key or None)
        return data["id"]

    async def create_payment(self, payload: dict) -> GatewayPayment:
        if self.notification_url and "notification_url" not in payload:
            payload = {**payload, "notification_url": self.notification_url}
        data = await self._request("POST", "/v1/payments", json=payload)
        payment = GatewayPayment.model_validate(data)
        logger.info(
            "gateway_payment_created",
            payment_id=payment.id, status=payment.status, external_reference=payment.external_reference,
        )
        return payment

    async def create_pix_payment(self, payload: dict) -> GatewayPayment:
        return await self.create_payment({**payload, "payment_method_id": "pix"})

    async def get_payment(self, payment_id: str) -> GatewayPayment:
        data = await self._request("GET", f"/v1/payments/{payment_id}")
        return GatewayPayment.model_validate(data)

    async def search_payments(self, external_reference: str) -> list[GatewayPayment]:
        data = await self._request(
            "GET",
            "/v1/payments/search",
            params={"external_reference": external_reference, "sort": "date_created", "criteria": "asc"},
        )
        return [GatewayPayment.model_validate(p) for p in data.get("results") or []]

    async def get_pix_info(self, payment_id: str) -> PixInfo:
        payment = await self.get_payment(payment_id)
        return payment.pix_info()
