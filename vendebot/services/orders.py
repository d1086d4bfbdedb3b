from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from sqlalchemy.orm import Session

from vendebot.catalog.price_calculator import coerce_decimal
from vendebot.core.config import APP_URL
from vendebot.models.customer import Customer
from vendebot.models.order import ORDER_STATUSES, Order
from vendebot.models.tenant import Tenant
from vendebot.payments.base import CheckoutItem, PaymentGateway
from vendebot.services.conversations import get_or_create_customer

logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")

STATUS_MESSAGES = {
    "confirmed": "✅ ¡Tu pedido #{order_id} fue confirmado! Estamos preparándolo.",
    "preparing": "👨‍🍳 Tu pedido #{order_id} se está preparando. ¡Ya falta poco!",
    "ready": "🎉 ¡Tu pedido #{order_id} está listo! Podés pasar a retirarlo o te lo enviamos.",
    "delivered": "📬 Tu pedido #{order_id} fue entregado. ¡Gracias por tu compra! Esperamos verte pronto. 😊",
    "cancelled": "❌ Tu pedido #{order_id} fue cancelado. Si tenés dudas, escribinos.",
}


class EmptyOrderError(ValueError):
    pass


class InvalidOrderStatus(ValueError):
    pass


@dataclass(frozen=True)
class OrderLine:
    product_id: int | None
    product_name: str
    quantity: Decimal
    unit_price: Decimal
    total: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": float(self.quantity),
            "unit_price": float(self.unit_price),
            "total": float(self.total),
        }


@dataclass(frozen=True)
class OrderCreated:
    order_id: int
    total_amount: Decimal
    item_count: int


@dataclass(frozen=True)
class PaymentLinkResult:
    ok: bool
    link: str | None = None
    reference_id: str | None = None
    error: str | None = None

    @classmethod
    def success(cls, link: str, reference_id: str) -> "PaymentLinkResult":
        return cls(ok=True, link=link, reference_id=reference_id)

    @classmethod
    def failure(cls, error: str) -> "PaymentLinkResult":
        return cls(ok=False, error=error)


@dataclass(frozen=True)
class OrderCreationResult:
    order: OrderCreated
    payment: PaymentLinkResult | None = None

    @property
    def payment_link(self) -> str | None:
        if self.payment is not None and self.payment.ok:
            return self.payment.link
        return None


def _money(value: Decimal) -> Decimal:
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def normalize_order_lines(items: Iterable[dict[str, Any]]) -> list[OrderLine]:
    """Normaliza los ítems recibidos.

    El total de cada línea es el informado por quien llama cuando es un número
    no negativo; si falta, se usa cantidad × precio unitario.
    """
    lines: list[OrderLine] = []
    for entry in items:
        quantity = coerce_decimal(entry.get("quantity")) or Decimal("0")
        unit_price = coerce_decimal(entry.get("unit_price")) or Decimal("0")
        quantity = max(quantity, Decimal("0"))
        unit_price = max(unit_price, Decimal("0"))
        supplied_total = coerce_decimal(entry.get("total"))
        if supplied_total is not None and supplied_total >= 0:
            line_total = supplied_total
        else:
            line_total = quantity * unit_price
        lines.append(
            OrderLine(
                product_id=_as_int(entry.get("product_id")),
                product_name=str(entry.get("product_name") or "").strip() or "Producto",
                quantity=quantity,
                unit_price=_money(unit_price),
                total=_money(line_total),
            )
        )
    return lines


def _checkout_items(lines: list[OrderLine]) -> list[CheckoutItem]:
    # MercadoPago cobra quantity × unit_price; si la línea no cierra así
    # (desperdicio, cantidades fraccionarias) se cobra como una sola unidad
    checkout_items: list[CheckoutItem] = []
    for index, line in enumerate(lines, start=1):
        item_id = str(line.product_id or index)
        is_whole = line.quantity == line.quantity.to_integral_value() and line.quantity > 0
        if is_whole and _money(line.quantity * line.unit_price) == line.total:
            checkout_items.append(
                CheckoutItem(item_id=item_id, title=line.product_name, quantity=line.quantity, unit_price=line.unit_price)
            )
        else:
            checkout_items.append(
                CheckoutItem(
                    item_id=item_id,
                    title=f"{line.product_name} ({line.quantity.normalize():f})",
                    quantity=Decimal("1"),
                    unit_price=line.total,
                )
            )
    return checkout_items


async def request_payment_link(
    db: Session,
    order: Order,
    lines: list[OrderLine],
    tenant: Tenant | None,
    payment_gateway: PaymentGateway | None,
) -> PaymentLinkResult | None:
    if payment_gateway is None or tenant is None or not tenant.mercadopago_access_token:
        return None
    try:
        checkout = await payment_gateway.create_checkout_link(
            access_token=tenant.mercadopago_access_token,
            order_id=order.id,
            items=_checkout_items(lines),
            notification_url=f"{APP_URL}/api/mercadopago/webhook",
        )
    except Exception as exc:
        logger.warning("No se pudo generar el link de pago order_id=%s error=%s", order.id, exc)
        return PaymentLinkResult.failure(str(exc))

    order.payment_link = checkout.link
    order.payment_reference = checkout.reference_id
    order.payment_status = "pending"
    try:
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.exception("No se pudo guardar el link de pago order_id=%s", order.id)
        return PaymentLinkResult.failure(str(exc))
    return PaymentLinkResult.success(checkout.link, checkout.reference_id)


async def create_order(
    db: Session,
    *,
    tenant_id: int,
    whatsapp_number: str,
    items: list[dict[str, Any]],
    notes: str | None = None,
    conversation_id: int | None = None,
    reported_total: Any = None,
    payment_gateway: PaymentGateway | None = None,
) -> OrderCreationResult:
    lines = normalize_order_lines(items)
    if not lines:
        raise EmptyOrderError("El pedido no tiene ítems")

    total_amount = _money(sum((line.total for line in lines), Decimal("0")))
    reported = coerce_decimal(reported_total)
    if reported is not None and _money(reported) != total_amount:
        logger.warning(
            "Total informado no coincide con la suma de ítems reported=%s computed=%s",
            reported,
            total_amount,
        )

    customer = get_or_create_customer(db, tenant_id, whatsapp_number)
    order = Order(
        tenant_id=tenant_id,
        customer_id=customer.id,
        conversation_id=conversation_id,
        status="pending",
        items=[line.to_dict() for line in lines],
        total_amount=total_amount,
        notes=notes,
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    logger.info("Pedido creado order_id=%s total=%s items=%s", order.id, total_amount, len(lines))

    tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
    payment = await request_payment_link(db, order, lines, tenant, payment_gateway)

    return OrderCreationResult(
        order=OrderCreated(order_id=order.id, total_amount=total_amount, item_count=len(lines)),
        payment=payment,
    )


def list_orders(db: Session, tenant_id: int, status: str | None = None, limit: int = 50) -> list[Order]:
    query = db.query(Order).filter(Order.tenant_id == tenant_id)
    if status:
        query = query.filter(Order.status == status)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()


def get_order(db: Session, tenant_id: int, order_id: int) -> Order | None:
    return db.query(Order).filter(Order.tenant_id == tenant_id, Order.id == order_id).first()


def update_order_status(db: Session, order: Order, status: str) -> Order:
    normalized = (status or "").strip().lower()
    if normalized not in ORDER_STATUSES:
        raise InvalidOrderStatus(f"Estado inválido: {status}")
    order.status = normalized
    order.updated_at = datetime.now(timezone.utc)
    db.commit()
    logger.info("Estado de pedido actualizado order_id=%s status=%s", order.id, normalized)
    return order


def status_update_message(order_id: int, status: str) -> str | None:
    template = STATUS_MESSAGES.get(status)
    if template is None:
        return None
    return template.format(order_id=order_id)


def customer_number(db: Session, order: Order) -> str | None:
    customer = db.query(Customer).filter(Customer.id == order.customer_id).first()
    return customer.whatsapp_number if customer else None


def order_to_dict(order: Order) -> dict[str, Any]:
    return {
        "id": order.id,
        "tenant_id": order.tenant_id,
        "customer_id": order.customer_id,
        "conversation_id": order.conversation_id,
        "status": order.status,
        "items": order.items or [],
        "total_amount": float(order.total_amount or 0),
        "payment_link": order.payment_link,
        "payment_status": order.payment_status,
        "notes": order.notes,
        "created_at": order.created_at.isoformat() if order.created_at else None,
    }
