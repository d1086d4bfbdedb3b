from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from vendebot.core.database import get_db
from vendebot.deps import get_bot_services, get_tenant
from vendebot.models.conversation import Conversation
from vendebot.models.message import Message
from vendebot.models.tenant import Tenant
from vendebot.services import conversations as conversation_service
from vendebot.services.bot import BotServices

router = APIRouter(prefix="/api/{tenant_id}/conversations", tags=["conversations"])


class ReplyRequest(BaseModel):
    text: str = Field(..., min_length=1)


def _conversation_to_dict(conversation: Conversation) -> dict:
    return {
        "id": conversation.id,
        "customer_id": conversation.customer_id,
        "whatsapp_number": conversation.whatsapp_number,
        "status": conversation.status,
        "summary": conversation.summary,
        "created_at": conversation.created_at.isoformat() if conversation.created_at else None,
        "updated_at": conversation.updated_at.isoformat() if conversation.updated_at else None,
    }


def _message_to_dict(message: Message) -> dict:
    return {
        "id": message.id,
        "role": message.role,
        "content": message.content,
        "message_type": message.message_type,
        "whatsapp_message_id": message.whatsapp_message_id,
        "created_at": message.created_at.isoformat() if message.created_at else None,
    }


def _load(db: Session, tenant: Tenant, conversation_id: int) -> Conversation:
    conversation = conversation_service.get_conversation(db, tenant.id, conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversación no encontrada")
    return conversation


@router.get("")
def list_conversations(
    status: Optional[str] = None,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    return [_conversation_to_dict(item) for item in conversation_service.list_conversations(db, tenant.id, status)]


@router.get("/{conversation_id}/messages")
def list_messages(
    conversation_id: int,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    conversation = _load(db, tenant, conversation_id)
    return [_message_to_dict(item) for item in conversation_service.list_messages(db, conversation.id)]


@router.post("/{conversation_id}/close")
def close(
    conversation_id: int,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    conversation = conversation_service.close_conversation(db, _load(db, tenant, conversation_id))
    return _conversation_to_dict(conversation)


@router.post("/{conversation_id}/reactivate")
def reactivate(
    conversation_id: int,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    try:
        conversation = conversation_service.reactivate_conversation(db, _load(db, tenant, conversation_id))
    except conversation_service.ConversationStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _conversation_to_dict(conversation)


@router.post("/{conversation_id}/reply")
async def reply(
    conversation_id: int,
    payload: ReplyRequest,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
    services: BotServices = Depends(get_bot_services),
):
    conversation = _load(db, tenant, conversation_id)
    result = await services.whatsapp.send_message(conversation.whatsapp_number, payload.text)
    if not result.success:
        raise HTTPException(status_code=502, detail=result.error or "No se pudo enviar el mensaje")
    message = conversation_service.record_message(
        db,
        conversation,
        role="assistant",
        content=payload.text,
        whatsapp_message_id=result.message_id,
        meta={"source": "dashboard"},
    )
    return _message_to_dict(message)
