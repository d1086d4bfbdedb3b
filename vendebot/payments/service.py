from __future__ import annotations

import logging

from vendebot.core.config import PAYMENT_PROVIDER
from vendebot.payments.base import PaymentGateway
from vendebot.payments.mercadopago_provider import MercadoPagoGateway
from vendebot.payments.mock_provider import MockPaymentGateway

logger = logging.getLogger(__name__)


def get_payment_gateway(name: str | None = None) -> PaymentGateway:
    provider = (name or PAYMENT_PROVIDER or "mock").strip().lower()
    if provider == "mercadopago":
        return MercadoPagoGateway()
    if provider != "mock":
        logger.warning("PAYMENT_PROVIDER desconocido (%s), usando mock", provider)
    return MockPaymentGateway()
