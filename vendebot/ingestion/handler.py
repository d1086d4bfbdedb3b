from __future__ import annotations

import logging
from typing import Any, Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vendebot.ai.engine import MODEL_ERROR_TEXT
from vendebot.core.config import DEFAULT_TENANT_ID
from vendebot.core.database import SessionLocal
from vendebot.core.request_context import clear_request_context, set_request_context
from vendebot.models.processed_message import ProcessedMessage
from vendebot.models.tenant import Tenant
from vendebot.services.bot import BotServices
from vendebot.services.conversations import get_or_create_conversation, record_message
from vendebot.whatsapp.base import IncomingMessage, content_to_text, number_digits, sanitize_payload

logger = logging.getLogger(__name__)


def resolve_tenant(db: Session, business_number: str | None) -> Tenant | None:
    digits = number_digits(business_number)
    if digits:
        tenant = (
            db.query(Tenant)
            .filter(Tenant.whatsapp_number.in_((digits, f"+{digits}")), Tenant.is_active.is_(True))
            .first()
        )
        if tenant:
            return tenant
    if DEFAULT_TENANT_ID is not None:
        return db.query(Tenant).filter(Tenant.id == DEFAULT_TENANT_ID).first()
    return None


def is_owner(tenant: Tenant, from_number: str) -> bool:
    owner_digits = number_digits(tenant.owner_phone_number)
    return bool(owner_digits) and owner_digits == number_digits(from_number)


def mark_processed(db: Session, message_id: str) -> bool:
    """Registra el id del proveedor; devuelve False si ya se había procesado."""
    if db.query(ProcessedMessage).filter_by(message_id=message_id).first():
        return False
    db.add(ProcessedMessage(message_id=message_id))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return False
    return True


async def _process(
    db: Session,
    message: IncomingMessage,
    services: BotServices,
    delivery: dict[str, bool],
) -> dict[str, Any]:
    tenant = resolve_tenant(db, message.to_number)
    if tenant is None:
        logger.warning("Mensaje sin tenant to=%s message_id=%s", message.to_number, message.message_id)
        return {"status": "no_tenant"}
    set_request_context(tenant_id=tenant.id)

    if not mark_processed(db, message.message_id):
        logger.info("Mensaje duplicado message_id=%s", message.message_id)
        return {"status": "duplicate"}

    text = content_to_text(message.content)
    owner_channel = is_owner(tenant, message.from_number)
    conversation = get_or_create_conversation(db, tenant.id, message.from_number, message.contact_name)
    set_request_context(conversation_id=conversation.id)
    record_message(
        db,
        conversation,
        role="user",
        content=text,
        message_type=message.content.message_type,
        whatsapp_message_id=message.message_id,
        meta=sanitize_payload(message.raw),
    )
    logger.info(
        "WhatsApp recibido tenant=%s from=%s type=%s owner=%s",
        tenant.id,
        message.from_number,
        message.content.message_type,
        owner_channel,
    )

    if conversation.status == "escalated":
        logger.info("Conversación derivada, sin respuesta automática conversation_id=%s", conversation.id)
        return {"status": "escalated", "conversation_id": conversation.id}

    engine = services.owner_engine if owner_channel else services.customer_engine
    reply = await engine.process_message(
        db,
        tenant_id=tenant.id,
        conversation_id=conversation.id,
        whatsapp_number=message.from_number,
        user_message=text,
    )

    delivery["replied"] = True
    result = await services.whatsapp.send_message(message.from_number, reply)
    if not result.success:
        logger.warning("No se pudo enviar la respuesta to=%s error=%s", message.from_number, result.error)

    db.refresh(conversation)
    record_message(
        db,
        conversation,
        role="assistant",
        content=reply,
        whatsapp_message_id=result.message_id,
    )
    return {
        "status": "ok",
        "flow": "owner" if owner_channel else "customer",
        "conversation_id": conversation.id,
        "sent": result.success,
    }


async def _send_apology(message: IncomingMessage, services: BotServices) -> None:
    try:
        await services.whatsapp.send_message(message.from_number, MODEL_ERROR_TEXT)
    except Exception:
        logger.exception("No se pudo enviar la disculpa to=%s", message.from_number)


async def handle_incoming_message(
    message: IncomingMessage,
    services: BotServices,
    session_factory: Callable[[], Session] = SessionLocal,
) -> dict[str, Any]:
    db = session_factory()
    delivery = {"replied": False}
    try:
        return await _process(db, message, services, delivery)
    except Exception:
        db.rollback()
        logger.exception("Error procesando mensaje entrante message_id=%s", message.message_id)
        if not delivery["replied"]:
            await _send_apology(message, services)
        return {"status": "error"}
    finally:
        db.close()
        clear_request_context()
