from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from vendebot.core.database import get_db
from vendebot.deps import get_bot_services, get_tenant
from vendebot.models.tenant import Tenant
from vendebot.services import orders as order_service
from vendebot.services.bot import BotServices

router = APIRouter(prefix="/api/{tenant_id}/orders", tags=["orders"])
logger = logging.getLogger(__name__)


class StatusUpdate(BaseModel):
    status: str


@router.get("")
def list_orders(
    status: Optional[str] = None,
    limit: int = 50,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    return [order_service.order_to_dict(order) for order in order_service.list_orders(db, tenant.id, status, limit)]


@router.patch("/{order_id}/status")
async def update_status(
    order_id: int,
    payload: StatusUpdate,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
    services: BotServices = Depends(get_bot_services),
):
    order = order_service.get_order(db, tenant.id, order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Pedido no encontrado")
    try:
        order = order_service.update_order_status(db, order, payload.status)
    except order_service.InvalidOrderStatus as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    notified = False
    text = order_service.status_update_message(order.id, order.status)
    number = order_service.customer_number(db, order)
    if text and number:
        try:
            result = await services.whatsapp.send_message(number, text)
            notified = result.success
        except Exception:
            logger.exception("No se pudo avisar el cambio de estado order_id=%s", order.id)
    return {"order": order_service.order_to_dict(order), "notified": notified}
