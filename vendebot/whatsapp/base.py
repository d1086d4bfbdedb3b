from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Protocol, Union


@dataclass(frozen=True)
class TextContent:
    text: str
    message_type: str = "text"


@dataclass(frozen=True)
class ImageContent:
    url: str | None = None
    caption: str | None = None
    mime_type: str | None = None
    message_type: str = "image"


@dataclass(frozen=True)
class AudioContent:
    url: str | None = None
    mime_type: str | None = None
    message_type: str = "audio"


@dataclass(frozen=True)
class LocationContent:
    latitude: float
    longitude: float
    name: str | None = None
    message_type: str = "location"


@dataclass(frozen=True)
class InteractiveReplyContent:
    reply_id: str | None = None
    title: str = ""
    message_type: str = "interactive"


MessageContent = Union[TextContent, ImageContent, AudioContent, LocationContent, InteractiveReplyContent]


@dataclass(frozen=True)
class IncomingMessage:
    message_id: str
    from_number: str
    to_number: str | None
    content: MessageContent
    provider: str
    timestamp: datetime | None = None
    contact_name: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class SendResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


class WhatsAppSendError(RuntimeError):
    def __init__(self, status_code: int, body_text: str):
        super().__init__(f"Error WhatsApp {status_code}: {body_text}")
        self.status_code = status_code
        self.body_text = body_text


class WhatsAppProvider(Protocol):
    name: str

    async def send_message(self, to: str, body: str) -> SendResult:
        ...

    def parse_webhook(self, payload: dict[str, Any]) -> list[IncomingMessage]:
        ...

    def validate_webhook(
        self,
        *,
        raw_body: bytes,
        payload: dict[str, Any],
        headers: Mapping[str, str],
        url: str,
    ) -> bool:
        ...


def content_to_text(content: MessageContent) -> str:
    if isinstance(content, TextContent):
        return content.text
    if isinstance(content, ImageContent):
        return content.caption or "[Imagen]"
    if isinstance(content, AudioContent):
        return "[Audio]"
    if isinstance(content, LocationContent):
        return f"[Ubicación: {content.latitude}, {content.longitude}]"
    if isinstance(content, InteractiveReplyContent):
        return content.title or content.reply_id or "[Respuesta]"
    return "[Mensaje no soportado]"


def normalize_number(value: str | None) -> str:
    text = (value or "").strip()
    if text.lower().startswith("whatsapp:"):
        text = text[len("whatsapp:"):]
    return text.strip()


def number_digits(value: str | None) -> str:
    return "".join(char for char in normalize_number(value) if char.isdigit())


SENSITIVE_KEYS = {"access_token", "verify_token", "authorization", "token", "auth_token"}


def _mask_value(value: Any) -> Any:
    if value is None:
        return None
    text = str(value)
    if len(text) <= 4:
        return "****"
    return f"****{text[-4:]}"


def sanitize_payload(payload: dict[str, Any]) -> dict[str, Any]:
    def _sanitize(value: Any) -> Any:
        if isinstance(value, dict):
            return {key: _sanitize_value(key, inner) for key, inner in value.items()}
        if isinstance(value, list):
            return [_sanitize(item) for item in value]
        return value

    def _sanitize_value(key: str, value: Any) -> Any:
        if key.lower() in SENSITIVE_KEYS:
            return _mask_value(value)
        return _sanitize(value)

    return _sanitize(payload)

