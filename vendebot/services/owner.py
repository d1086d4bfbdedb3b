from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from vendebot.catalog.price_calculator import normalize_unit
from vendebot.models.change_log import ChangeLog
from vendebot.models.conversation import Conversation
from vendebot.models.customer import Customer
from vendebot.models.message import Message
from vendebot.models.order import Order
from vendebot.models.product import Product
from vendebot.models.tenant import Tenant
from vendebot.services.catalog import get_product
from vendebot.whatsapp.base import WhatsAppProvider

logger = logging.getLogger(__name__)

PERIOD_LABELS = {"today": "hoy", "week": "esta semana", "month": "este mes"}


def _log_change(
    db: Session,
    *,
    tenant_id: int,
    action: str,
    description: str,
    details: dict[str, Any],
    source: str = "whatsapp",
) -> None:
    db.add(
        ChangeLog(
            tenant_id=tenant_id,
            action=action,
            description=description,
            details=details,
            source=source,
        )
    )


def update_price(db: Session, tenant_id: int, product_id: int, new_price: Decimal) -> dict[str, Any] | None:
    product = get_product(db, tenant_id, product_id)
    if product is None:
        return None

    old_price = Decimal(product.price)
    product.price = new_price
    _log_change(
        db,
        tenant_id=tenant_id,
        action="update_price",
        description=f'Precio de "{product.name}" actualizado: ${old_price:.2f} → ${new_price:.2f}/{product.unit}',
        details={
            "product_id": product.id,
            "product_name": product.name,
            "old_price": f"{old_price:.2f}",
            "new_price": f"{new_price:.2f}",
            "unit": product.unit,
        },
    )
    db.commit()
    logger.info("Precio actualizado product_id=%s %s -> %s", product.id, old_price, new_price)
    return {
        "success": True,
        "product": product.name,
        "old_price": f"${old_price:.2f}",
        "new_price": f"${new_price:.2f}",
        "unit": product.unit,
    }


def update_hours(db: Session, tenant_id: int, new_hours: str) -> dict[str, Any] | None:
    tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
    if tenant is None:
        return None

    info = dict(tenant.business_info or {})
    old_hours = info.get("hours") or "No especificado"
    info["hours"] = new_hours
    # reasignar el dict completo para que el ORM detecte el cambio en la columna JSON
    tenant.business_info = info
    _log_change(
        db,
        tenant_id=tenant_id,
        action="update_hours",
        description=f'Horario actualizado: "{old_hours}" → "{new_hours}"',
        details={"old_hours": old_hours, "new_hours": new_hours},
    )
    db.commit()
    return {"success": True, "old_hours": old_hours, "new_hours": new_hours}


def add_product(
    db: Session,
    tenant_id: int,
    *,
    name: str,
    price: Decimal,
    unit: str = "unidad",
    category: str | None = None,
    description: str | None = None,
) -> dict[str, Any]:
    unit_name = normalize_unit(unit)
    product = Product(
        tenant_id=tenant_id,
        name=name,
        price=price,
        unit=unit_name,
        category=category,
        description=description,
        in_stock=True,
    )
    db.add(product)
    db.flush()
    _log_change(
        db,
        tenant_id=tenant_id,
        action="add_product",
        description=f'Producto agregado: "{name}" a ${price:.2f}/{unit_name}',
        details={
            "product_id": product.id,
            "name": name,
            "price": f"{price:.2f}",
            "unit": unit_name,
            "category": category,
        },
    )
    db.commit()
    return {
        "success": True,
        "product_id": product.id,
        "name": name,
        "price": f"${price:.2f}",
        "unit": unit_name,
    }


def remove_product(db: Session, tenant_id: int, product_id: int) -> dict[str, Any] | None:
    product = get_product(db, tenant_id, product_id)
    if product is None:
        return None

    product.in_stock = False
    _log_change(
        db,
        tenant_id=tenant_id,
        action="remove_product",
        description=f'Producto removido del menú: "{product.name}"',
        details={"product_id": product.id, "product_name": product.name},
    )
    db.commit()
    return {
        "success": True,
        "product": product.name,
        "message": f'"{product.name}" fue sacado del menú.',
    }


def _period_start(period: str, now: datetime) -> datetime:
    if period == "week":
        return now - timedelta(days=7)
    if period == "month":
        return now - timedelta(days=30)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def sales_summary(
    db: Session,
    tenant_id: int,
    period: str = "today",
    now: datetime | None = None,
) -> dict[str, Any]:
    period = period if period in PERIOD_LABELS else "today"
    since = _period_start(period, now or datetime.now(timezone.utc))

    orders = (
        db.query(Order)
        .filter(Order.tenant_id == tenant_id, Order.created_at >= since)
        .all()
    )
    revenue = sum((Decimal(order.total_amount or 0) for order in orders), Decimal("0"))
    by_status: dict[str, int] = {}
    for order in orders:
        by_status[order.status] = by_status.get(order.status, 0) + 1

    return {
        "period": PERIOD_LABELS[period],
        "total_orders": len(orders),
        "total_revenue": f"${revenue:.2f}",
        "pending_orders": by_status.get("pending", 0),
        "confirmed_orders": by_status.get("confirmed", 0),
        "delivered_orders": by_status.get("delivered", 0),
    }


def broadcast_targets(db: Session, tenant_id: int, product_query: str | None = None) -> list[str]:
    query = db.query(Customer.whatsapp_number).filter(Customer.tenant_id == tenant_id)
    if product_query:
        query = (
            query.join(
                Conversation,
                (Conversation.customer_id == Customer.id) & (Conversation.tenant_id == tenant_id),
            )
            .join(Message, Message.conversation_id == Conversation.id)
            .filter(Message.role == "user", Message.content.ilike(f"%{product_query}%"))
        )
    return sorted({row[0] for row in query.distinct().all()})


async def broadcast(
    db: Session,
    tenant_id: int,
    whatsapp: WhatsAppProvider | None,
    *,
    message: str,
    product_query: str | None = None,
) -> dict[str, Any]:
    targets = broadcast_targets(db, tenant_id, product_query)
    sent = 0
    failed = 0
    for number in targets:
        if whatsapp is None:
            failed += 1
            continue
        try:
            result = await whatsapp.send_message(number, message)
        except Exception:
            logger.exception("Falló el envío del aviso to=%s", number)
            failed += 1
            continue
        if result.success:
            sent += 1
        else:
            failed += 1

    _log_change(
        db,
        tenant_id=tenant_id,
        action="broadcast",
        description=f'Aviso enviado a {sent} cliente(s): "{message[:100]}"',
        details={
            "message": message,
            "product_query": product_query,
            "sent": sent,
            "failed": failed,
            "total_targets": len(targets),
        },
    )
    db.commit()
    return {
        "success": True,
        "sent": sent,
        "failed": failed,
        "total": len(targets),
        "message": f"Mensaje enviado a {sent} cliente(s).",
    }
