from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse

from vendebot.core.config import WHATSAPP_VALIDATE_SIGNATURE, WHATSAPP_VERIFY_TOKEN
from vendebot.deps import get_bot_services
from vendebot.ingestion.handler import handle_incoming_message
from vendebot.services.bot import BotServices

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/webhook/whatsapp")
async def verify_whatsapp_webhook(request: Request):
    qp = request.query_params
    mode = qp.get("hub.mode")
    token = qp.get("hub.verify_token")
    challenge = qp.get("hub.challenge")

    if mode == "subscribe" and WHATSAPP_VERIFY_TOKEN and token == WHATSAPP_VERIFY_TOKEN:
        return PlainTextResponse(challenge or "")

    raise HTTPException(status_code=403, detail="Verify token inválido")


async def _read_payload(request: Request, raw_body: bytes) -> dict[str, Any]:
    content_type = request.headers.get("content-type", "")
    if "application/x-www-form-urlencoded" in content_type or "multipart/form-data" in content_type:
        form = await request.form()
        return {key: value for key, value in form.items() if isinstance(value, str)}
    try:
        payload = json.loads(raw_body or b"{}")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Payload inválido") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Payload inválido")
    return payload


@router.post("/webhook/whatsapp")
async def whatsapp_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    services: BotServices = Depends(get_bot_services),
):
    raw_body = await request.body()
    payload = await _read_payload(request, raw_body)
    provider = services.whatsapp

    if WHATSAPP_VALIDATE_SIGNATURE and not provider.validate_webhook(
        raw_body=raw_body,
        payload=payload,
        headers=request.headers,
        url=str(request.url),
    ):
        logger.warning("Firma de webhook inválida provider=%s", provider.name)
        raise HTTPException(status_code=403, detail="Firma inválida")

    messages = provider.parse_webhook(payload)
    if not messages:
        # callbacks de estado (entregado, leído) no traen mensajes
        logger.info("Webhook sin mensajes provider=%s", provider.name)
        return {"ok": True, "messages": 0}

    for message in messages:
        background_tasks.add_task(handle_incoming_message, message, services)
    return {"ok": True, "messages": len(messages)}
