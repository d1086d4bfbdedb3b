from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping

from vendebot.whatsapp.base import (
    IncomingMessage,
    InteractiveReplyContent,
    LocationContent,
    MessageContent,
    SendResult,
    TextContent,
)

logger = logging.getLogger(__name__)


class MockWhatsAppProvider:
    """Proveedor en memoria para desarrollo y tests: no sale a la red."""

    name = "mock"

    def __init__(self) -> None:
        self.sent: list[dict[str, str]] = []

    async def send_message(self, to: str, body: str) -> SendResult:
        message_id = f"mock-{uuid.uuid4().hex[:10]}"
        self.sent.append({"to": to, "body": body, "message_id": message_id})
        logger.info("WhatsApp mock enviado to=%s message_id=%s", to, message_id)
        return SendResult(success=True, message_id=message_id)

    def parse_webhook(self, payload: dict[str, Any]) -> list[IncomingMessage]:
        message = payload.get("message") or {}
        if not message or not message.get("from"):
            return []
        return [
            IncomingMessage(
                message_id=message.get("id") or f"mock-{uuid.uuid4().hex[:8]}",
                from_number=str(message["from"]),
                to_number=message.get("to"),
                content=_parse_content(message),
                provider="mock",
                contact_name=message.get("contact_name"),
                raw=message,
            )
        ]

    def validate_webhook(
        self,
        *,
        raw_body: bytes,
        payload: dict[str, Any],
        headers: Mapping[str, str],
        url: str,
    ) -> bool:
        return True


def _parse_content(message: dict[str, Any]) -> MessageContent:
    msg_type = message.get("type") or "text"
    if msg_type == "location":
        return LocationContent(
            latitude=float(message.get("latitude") or 0),
            longitude=float(message.get("longitude") or 0),
        )
    if msg_type == "interactive":
        return InteractiveReplyContent(reply_id=message.get("reply_id"), title=message.get("text") or "")
    return TextContent(text=str(message.get("text") or "").strip())
