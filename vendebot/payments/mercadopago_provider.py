from __future__ import annotations

import logging

import httpx

from vendebot.core.config import APP_URL, MERCADOPAGO_API_BASE
from vendebot.payments.base import CheckoutItem, CheckoutLink, PaymentError

logger = logging.getLogger(__name__)


class MercadoPagoError(PaymentError):
    def __init__(self, status_code: int, body_text: str):
        super().__init__(f"Error MercadoPago {status_code}: {body_text}")
        self.status_code = status_code
        self.body_text = body_text


class MercadoPagoGateway:
    name = "mercadopago"

    def __init__(self, *, api_base: str = MERCADOPAGO_API_BASE, timeout: float = 15.0) -> None:
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    def build_preference(
        self,
        *,
        order_id: int,
        items: list[CheckoutItem],
        notification_url: str,
    ) -> dict:
        return {
            "items": [
                {
                    "id": item.item_id,
                    "title": item.title,
                    "quantity": float(item.quantity),
                    "unit_price": float(item.unit_price),
                    "currency_id": "ARS",
                }
                for item in items
            ],
            "external_reference": str(order_id),
            "notification_url": notification_url,
            "back_urls": {
                "success": f"{APP_URL}/pedido/{order_id}?estado=aprobado",
                "failure": f"{APP_URL}/pedido/{order_id}?estado=rechazado",
                "pending": f"{APP_URL}/pedido/{order_id}?estado=pendiente",
            },
            "auto_return": "approved",
        }

    async def create_checkout_link(
        self,
        *,
        access_token: str,
        order_id: int,
        items: list[CheckoutItem],
        notification_url: str,
    ) -> CheckoutLink:
        url = f"{self.api_base}/checkout/preferences"
        headers = {"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"}
        payload = self.build_preference(order_id=order_id, items=items, notification_url=notification_url)

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(url, headers=headers, json=payload)

        if not 200 <= response.status_code < 300:
            raise MercadoPagoError(response.status_code, response.text)

        data = response.json()
        link = data.get("init_point")
        preference_id = data.get("id")
        if not link or not preference_id:
            raise MercadoPagoError(response.status_code, "respuesta sin init_point")

        logger.info("Preferencia MercadoPago creada order_id=%s preference_id=%s", order_id, preference_id)
        return CheckoutLink(link=link, reference_id=str(preference_id))
