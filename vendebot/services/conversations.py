from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from vendebot.models.conversation import Conversation
from vendebot.models.customer import Customer
from vendebot.models.message import Message

logger = logging.getLogger(__name__)

# un número con conversación derivada sigue escribiendo en la misma
# conversación hasta que el dueño la cierra o la reactiva
OPEN_STATUSES = ("active", "escalated")


class ConversationStateError(ValueError):
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


def get_or_create_customer(
    db: Session,
    tenant_id: int,
    whatsapp_number: str,
    name: str | None = None,
) -> Customer:
    customer = (
        db.query(Customer)
        .filter(Customer.tenant_id == tenant_id, Customer.whatsapp_number == whatsapp_number)
        .first()
    )
    if customer:
        if name and not customer.name:
            customer.name = name
            db.flush()
        return customer

    customer = Customer(tenant_id=tenant_id, whatsapp_number=whatsapp_number, name=name)
    db.add(customer)
    db.flush()
    logger.info("Cliente creado tenant=%s customer_id=%s", tenant_id, customer.id)
    return customer


def find_open_conversation(db: Session, tenant_id: int, whatsapp_number: str) -> Conversation | None:
    return (
        db.query(Conversation)
        .filter(
            Conversation.tenant_id == tenant_id,
            Conversation.whatsapp_number == whatsapp_number,
            Conversation.status.in_(OPEN_STATUSES),
        )
        .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
        .first()
    )


def get_or_create_conversation(
    db: Session,
    tenant_id: int,
    whatsapp_number: str,
    contact_name: str | None = None,
) -> Conversation:
    conversation = find_open_conversation(db, tenant_id, whatsapp_number)
    if conversation:
        return conversation

    customer = get_or_create_customer(db, tenant_id, whatsapp_number, name=contact_name)
    conversation = Conversation(
        tenant_id=tenant_id,
        customer_id=customer.id,
        whatsapp_number=whatsapp_number,
        status="active",
    )
    db.add(conversation)
    db.commit()
    db.refresh(conversation)
    logger.info("Conversación creada tenant=%s conversation_id=%s", tenant_id, conversation.id)
    return conversation


def get_conversation(db: Session, tenant_id: int, conversation_id: int) -> Conversation | None:
    return (
        db.query(Conversation)
        .filter(Conversation.tenant_id == tenant_id, Conversation.id == conversation_id)
        .first()
    )


def record_message(
    db: Session,
    conversation: Conversation,
    *,
    role: str,
    content: str,
    message_type: str = "text",
    whatsapp_message_id: str | None = None,
    meta: dict[str, Any] | None = None,
) -> Message:
    message = Message(
        conversation_id=conversation.id,
        role=role,
        content=content,
        message_type=message_type,
        whatsapp_message_id=whatsapp_message_id,
        meta=meta,
    )
    db.add(message)
    conversation.updated_at = _now()
    db.commit()
    db.refresh(message)
    return message


def load_history(db: Session, conversation_id: int, limit: int = 20) -> list[Message]:
    """Últimos ``limit`` mensajes de usuario/asistente, en orden cronológico."""
    recent = (
        db.query(Message)
        .filter(
            Message.conversation_id == conversation_id,
            Message.role.in_(("user", "assistant")),
        )
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(recent))


def list_conversations(
    db: Session,
    tenant_id: int,
    status: str | None = None,
    limit: int = 50,
) -> list[Conversation]:
    query = db.query(Conversation).filter(Conversation.tenant_id == tenant_id)
    if status:
        query = query.filter(Conversation.status == status)
    return query.order_by(Conversation.updated_at.desc(), Conversation.id.desc()).limit(limit).all()


def list_messages(db: Session, conversation_id: int) -> list[Message]:
    return (
        db.query(Message)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.asc(), Message.id.asc())
        .all()
    )


def close_conversation(db: Session, conversation: Conversation) -> Conversation:
    if conversation.status == "closed":
        return conversation
    conversation.status = "closed"
    conversation.updated_at = _now()
    db.commit()
    logger.info("Conversación cerrada conversation_id=%s", conversation.id)
    return conversation


def reactivate_conversation(db: Session, conversation: Conversation) -> Conversation:
    """Devuelve una conversación derivada (o cerrada) al bot.

    Falla si el número ya tiene otra conversación abierta, para no romper la
    regla de una sola conversación abierta por (tenant, número).
    """
    if conversation.status == "active":
        return conversation
    other = find_open_conversation(db, conversation.tenant_id, conversation.whatsapp_number)
    if other is not None and other.id != conversation.id:
        raise ConversationStateError(
            f"El número ya tiene otra conversación abierta (#{other.id})"
        )
    conversation.status = "active"
    conversation.updated_at = _now()
    db.commit()
    logger.info("Conversación reactivada conversation_id=%s", conversation.id)
    return conversation
