from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping

import httpx

from vendebot.core.config import META_API_VERSION, META_APP_SECRET, META_WA_ACCESS_TOKEN, META_WA_PHONE_NUMBER_ID
from vendebot.whatsapp.backoff import SenderBackoff
from vendebot.whatsapp.base import (
    AudioContent,
    ImageContent,
    IncomingMessage,
    InteractiveReplyContent,
    LocationContent,
    MessageContent,
    SendResult,
    TextContent,
    WhatsAppSendError,
)

logger = logging.getLogger(__name__)
_sender_backoff = SenderBackoff()


def _should_retry(status_code: int, body_text: str) -> bool:
    if status_code in (429, 500, 502, 503, 504):
        return True

    # error genérico frecuente de la Cloud API
    try:
        data = json.loads(body_text or "{}")
    except json.JSONDecodeError:
        return False
    code = (data.get("error") or {}).get("code")
    return code == 131000


def _backoff_seconds(attempt: int) -> float:
    # 1s, 2s, 4s... (máx 8s)
    sec = 1.0 * (2 ** max(0, attempt - 1))
    return min(sec, 8.0)


def _parse_timestamp(value: Any) -> datetime | None:
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _parse_content(msg: dict[str, Any]) -> MessageContent | None:
    msg_type = msg.get("type") or "text"
    if msg_type == "text":
        return TextContent(text=((msg.get("text") or {}).get("body") or "").strip())
    if msg_type == "image":
        image = msg.get("image") or {}
        return ImageContent(url=image.get("id"), caption=image.get("caption") or None, mime_type=image.get("mime_type"))
    if msg_type in {"audio", "voice"}:
        audio = msg.get("audio") or msg.get("voice") or {}
        return AudioContent(url=audio.get("id"), mime_type=audio.get("mime_type"))
    if msg_type == "location":
        location = msg.get("location") or {}
        try:
            return LocationContent(
                latitude=float(location.get("latitude")),
                longitude=float(location.get("longitude")),
                name=location.get("name") or None,
            )
        except (TypeError, ValueError):
            return None
    if msg_type == "interactive":
        interactive = msg.get("interactive") or {}
        reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
        return InteractiveReplyContent(reply_id=reply.get("id"), title=reply.get("title") or "")
    if msg_type == "button":
        button = msg.get("button") or {}
        return InteractiveReplyContent(reply_id=button.get("payload"), title=button.get("text") or "")
    return None


def parse_cloud_webhook(payload: dict[str, Any]) -> list[IncomingMessage]:
    messages: list[IncomingMessage] = []
    for entry in payload.get("entry", []) or []:
        for change in entry.get("changes", []) or []:
            value = change.get("value") or {}
            metadata = value.get("metadata") or {}
            display_phone_number = metadata.get("display_phone_number")

            contacts = value.get("contacts") or []
            contact_name = None
            if contacts:
                contact_name = ((contacts[0].get("profile") or {}).get("name")) or None

            for msg in value.get("messages", []) or []:
                message_id = msg.get("id")
                from_number = msg.get("from")
                if not message_id or not from_number:
                    continue
                content = _parse_content(msg)
                if content is None:
                    logger.info("Tipo de mensaje no soportado type=%s message_id=%s", msg.get("type"), message_id)
                    continue
                messages.append(
                    IncomingMessage(
                        message_id=message_id,
                        from_number=from_number,
                        to_number=display_phone_number,
                        content=content,
                        provider="cloud",
                        timestamp=_parse_timestamp(msg.get("timestamp")),
                        contact_name=contact_name,
                        raw=msg,
                    )
                )
    return messages


def compute_meta_signature(app_secret: str, raw_body: bytes) -> str:
    return "sha256=" + hmac.new(app_secret.encode(), raw_body, hashlib.sha256).hexdigest()


class CloudWhatsAppProvider:
    name = "cloud"
    MAX_RETRIES = 3

    def __init__(
        self,
        *,
        access_token: str = META_WA_ACCESS_TOKEN,
        phone_number_id: str = META_WA_PHONE_NUMBER_ID,
        app_secret: str = META_APP_SECRET,
        timeout: float = 20.0,
    ) -> None:
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.app_secret = app_secret
        self.timeout = timeout

    async def send_message(self, to: str, body: str) -> SendResult:
        if not self.access_token or not self.phone_number_id:
            return SendResult(success=False, error="Faltan META_WA_ACCESS_TOKEN o META_WA_PHONE_NUMBER_ID")
        try:
            data = await self._post_text(to, body)
        except (WhatsAppSendError, httpx.HTTPError) as exc:
            logger.warning("WhatsApp Cloud no pudo enviar to=%s error=%s", to, exc)
            return SendResult(success=False, error=str(exc))
        message_id = ((data.get("messages") or [{}])[0]).get("id")
        return SendResult(success=True, message_id=message_id)

    async def _post_text(self, to: str, text: str) -> dict[str, Any]:
        url = f"https://graph.facebook.com/{META_API_VERSION}/{self.phone_number_id}/messages"
        headers = {"Authorization": f"Bearer {self.access_token}", "Content-Type": "application/json"}
        payload = {
            "messaging_product": "whatsapp",
            "to": to.lstrip("+"),
            "type": "text",
            "text": {"preview_url": False, "body": text},
        }

        sender = self.phone_number_id
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(1, self.MAX_RETRIES + 1):
                wait = _sender_backoff.delay(sender)
                if wait > 0:
                    logger.warning("WhatsApp Cloud en backoff sender=%s espera=%.1fs", sender, wait)
                    await asyncio.sleep(wait)

                try:
                    response = await client.post(url, headers=headers, json=payload)
                except (httpx.TimeoutException, httpx.NetworkError):
                    _sender_backoff.failure(sender)
                    if attempt < self.MAX_RETRIES:
                        await asyncio.sleep(_backoff_seconds(attempt))
                        continue
                    raise

                body_text = response.text
                if 200 <= response.status_code < 300:
                    _sender_backoff.success(sender)
                    try:
                        return response.json()
                    except json.JSONDecodeError:
                        return {"raw": body_text}

                _sender_backoff.failure(sender)
                if _should_retry(response.status_code, body_text) and attempt < self.MAX_RETRIES:
                    await asyncio.sleep(_backoff_seconds(attempt))
                    continue

                raise WhatsAppSendError(response.status_code, body_text)

        raise WhatsAppSendError(0, "sin intentos de envío")

    def parse_webhook(self, payload: dict[str, Any]) -> list[IncomingMessage]:
        return parse_cloud_webhook(payload)

    def validate_webhook(
        self,
        *,
        raw_body: bytes,
        payload: dict[str, Any],
        headers: Mapping[str, str],
        url: str,
    ) -> bool:
        signature = headers.get("x-hub-signature-256") or headers.get("X-Hub-Signature-256")
        if not signature or not signature.startswith("sha256=") or not self.app_secret:
            return False
        expected = compute_meta_signature(self.app_secret, raw_body)
        return hmac.compare_digest(expected, signature)
