# vendebot/deps.py
from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from vendebot.core.database import get_db
from vendebot.core.request_context import set_request_context
from vendebot.models.tenant import Tenant
from vendebot.services.bot import BotServices


def get_bot_services(request: Request) -> BotServices:
    services = getattr(request.app.state, "bot", None)
    if services is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Servicios no inicializados")
    return services


def get_tenant(tenant_id: int, db: Session = Depends(get_db)) -> Tenant:
    """Carga el tenant del path; 404 si no existe."""
    tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
    if tenant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant no encontrado")
    set_request_context(tenant_id=tenant.id)
    return tenant
