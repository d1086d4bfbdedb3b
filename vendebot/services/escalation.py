from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from vendebot.models.conversation import Conversation
from vendebot.models.tenant import Tenant
from vendebot.whatsapp.base import WhatsAppProvider

logger = logging.getLogger(__name__)

ESCALATION_CONFIRMATION = (
    "La conversación fue derivada al dueño del negocio. Te van a responder a la brevedad."
)


class ConversationNotFound(LookupError):
    pass


def escalate(db: Session, conversation_id: int, reason: str | None = None) -> str:
    conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
    if conversation is None:
        raise ConversationNotFound(conversation_id)

    if conversation.status == "escalated":
        logger.info("Conversación ya derivada conversation_id=%s", conversation_id)
        return ESCALATION_CONFIRMATION

    conversation.status = "escalated"
    conversation.updated_at = datetime.now(timezone.utc)
    db.commit()
    logger.info("Conversación derivada conversation_id=%s reason=%s", conversation_id, reason)
    return ESCALATION_CONFIRMATION


async def notify_owner(
    db: Session,
    whatsapp: WhatsAppProvider | None,
    *,
    conversation_id: int,
    reason: str | None,
) -> bool:
    if whatsapp is None:
        return False
    conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
    if conversation is None:
        return False
    tenant = db.query(Tenant).filter(Tenant.id == conversation.tenant_id).first()
    if tenant is None or not tenant.owner_phone_number:
        return False

    text = (
        f"🙋 Un cliente ({conversation.whatsapp_number}) pidió hablar con vos.\n"
        f"Motivo: {reason or 'sin especificar'}"
    )
    try:
        result = await whatsapp.send_message(tenant.owner_phone_number, text)
    except Exception:
        logger.exception("No se pudo avisar al dueño conversation_id=%s", conversation_id)
        return False
    if not result.success:
        logger.warning(
            "Aviso al dueño falló conversation_id=%s error=%s", conversation_id, result.error
        )
    return result.success
