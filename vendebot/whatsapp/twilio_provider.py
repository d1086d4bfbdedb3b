from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from typing import Any, Mapping

import httpx

from vendebot.core.config import TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_WHATSAPP_FROM
from vendebot.whatsapp.base import (
    AudioContent,
    ImageContent,
    IncomingMessage,
    InteractiveReplyContent,
    LocationContent,
    MessageContent,
    SendResult,
    TextContent,
    normalize_number,
)

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


def _parse_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_content(payload: Mapping[str, Any]) -> MessageContent:
    latitude = _parse_float(payload.get("Latitude"))
    longitude = _parse_float(payload.get("Longitude"))
    if latitude is not None and longitude is not None:
        return LocationContent(latitude=latitude, longitude=longitude, name=payload.get("Label") or None)

    button_payload = payload.get("ButtonPayload")
    list_id = payload.get("ListId")
    if button_payload or list_id:
        return InteractiveReplyContent(
            reply_id=button_payload or list_id,
            title=payload.get("ButtonText") or payload.get("ListTitle") or payload.get("Body") or "",
        )

    try:
        num_media = int(payload.get("NumMedia") or 0)
    except (TypeError, ValueError):
        num_media = 0
    if num_media > 0:
        media_type = str(payload.get("MediaContentType0") or "")
        media_url = payload.get("MediaUrl0")
        if media_type.startswith("audio/"):
            return AudioContent(url=media_url, mime_type=media_type)
        return ImageContent(url=media_url, caption=payload.get("Body") or None, mime_type=media_type or None)

    return TextContent(text=str(payload.get("Body") or "").strip())


def parse_twilio_webhook(payload: Mapping[str, Any]) -> list[IncomingMessage]:
    message_id = payload.get("MessageSid") or payload.get("SmsMessageSid")
    from_number = normalize_number(payload.get("From"))
    if not message_id or not from_number:
        return []
    return [
        IncomingMessage(
            message_id=str(message_id),
            from_number=from_number,
            to_number=normalize_number(payload.get("To")) or None,
            content=_parse_content(payload),
            provider="twilio",
            contact_name=payload.get("ProfileName") or None,
            raw=dict(payload),
        )
    ]


def compute_twilio_signature(auth_token: str, url: str, params: Mapping[str, Any]) -> str:
    data = url + "".join(f"{key}{params[key]}" for key in sorted(params))
    digest = hmac.new(auth_token.encode(), data.encode(), hashlib.sha1).digest()
    return base64.b64encode(digest).decode()


class TwilioWhatsAppProvider:
    name = "twilio"

    def __init__(
        self,
        *,
        account_sid: str = TWILIO_ACCOUNT_SID,
        auth_token: str = TWILIO_AUTH_TOKEN,
        from_number: str = TWILIO_WHATSAPP_FROM,
        timeout: float = 20.0,
    ) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = normalize_number(from_number)
        self.timeout = timeout

    async def send_message(self, to: str, body: str) -> SendResult:
        if not self.account_sid or not self.auth_token or not self.from_number:
            return SendResult(success=False, error="Credenciales de Twilio incompletas")

        url = f"{TWILIO_API_BASE}/Accounts/{self.account_sid}/Messages.json"
        data = {
            "From": f"whatsapp:{self.from_number}",
            "To": f"whatsapp:{normalize_number(to)}",
            "Body": body,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, data=data, auth=(self.account_sid, self.auth_token))
        except httpx.HTTPError as exc:
            logger.warning("Twilio no respondió to=%s error=%s", to, exc)
            return SendResult(success=False, error=str(exc))

        if not 200 <= response.status_code < 300:
            logger.warning("Twilio rechazó el envío to=%s status=%s", to, response.status_code)
            return SendResult(success=False, error=f"Error Twilio {response.status_code}: {response.text}")

        return SendResult(success=True, message_id=response.json().get("sid"))

    def parse_webhook(self, payload: dict[str, Any]) -> list[IncomingMessage]:
        return parse_twilio_webhook(payload)

    def validate_webhook(
        self,
        *,
        raw_body: bytes,
        payload: dict[str, Any],
        headers: Mapping[str, str],
        url: str,
    ) -> bool:
        signature = headers.get("x-twilio-signature") or headers.get("X-Twilio-Signature")
        if not signature or not self.auth_token:
            return False
        expected = compute_twilio_signature(self.auth_token, url, payload)
        return hmac.compare_digest(expected, signature)
