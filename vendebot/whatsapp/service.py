from __future__ import annotations

import logging

from vendebot.core.config import IS_DEV, WHATSAPP_PROVIDER
from vendebot.whatsapp.base import WhatsAppProvider
from vendebot.whatsapp.cloud_provider import CloudWhatsAppProvider
from vendebot.whatsapp.mock_provider import MockWhatsAppProvider
from vendebot.whatsapp.twilio_provider import TwilioWhatsAppProvider

logger = logging.getLogger(__name__)


def get_whatsapp_provider(name: str | None = None) -> WhatsAppProvider:
    provider = (name or WHATSAPP_PROVIDER or "mock").strip().lower()
    if provider == "twilio":
        return TwilioWhatsAppProvider()
    if provider in {"cloud", "meta"}:
        return CloudWhatsAppProvider()
    if provider != "mock":
        logger.warning("WHATSAPP_PROVIDER desconocido (%s), usando mock", provider)
    elif not IS_DEV:
        logger.warning("WhatsApp en modo mock fuera de desarrollo")
    return MockWhatsAppProvider()
