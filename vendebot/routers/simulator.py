from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from vendebot.core.database import get_db
from vendebot.deps import get_bot_services
from vendebot.models.tenant import Tenant
from vendebot.services.bot import BotServices
from vendebot.services.conversations import get_or_create_conversation, record_message

router = APIRouter(prefix="/simulator")


class SimulatedMessage(BaseModel):
    tenant_id: int
    whatsapp_number: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)


@router.post("/message")
async def simulate(
    payload: SimulatedMessage,
    db: Session = Depends(get_db),
    services: BotServices = Depends(get_bot_services),
):
    tenant = db.query(Tenant).filter(Tenant.id == payload.tenant_id).first()
    if tenant is None:
        raise HTTPException(status_code=404, detail="Tenant no encontrado")

    conversation = get_or_create_conversation(db, tenant.id, payload.whatsapp_number)
    record_message(db, conversation, role="user", content=payload.text, meta={"source": "simulator"})
    if conversation.status == "escalated":
        return {"conversation_id": conversation.id, "status": conversation.status, "reply": None, "tools": []}

    result = await services.customer_engine.run_turn(
        db,
        tenant_id=tenant.id,
        conversation_id=conversation.id,
        whatsapp_number=payload.whatsapp_number,
        user_message=payload.text,
    )
    db.refresh(conversation)
    record_message(db, conversation, role="assistant", content=result.text, meta={"source": "simulator"})
    return {
        "conversation_id": conversation.id,
        "status": conversation.status,
        "reply": result.text,
        "outcome": result.outcome,
        "rounds": result.rounds,
        "tools": [entry.to_dict() for entry in result.tool_trace],
    }
