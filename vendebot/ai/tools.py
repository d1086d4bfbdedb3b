from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.orm import Session

from vendebot.ai.dispatcher import ToolContext, ToolDependencies, ToolDispatcher, ToolSpec
from vendebot.catalog.price_calculator import calculate_smart_price, coerce_decimal
from vendebot.models.conversation import Conversation
from vendebot.models.tenant import Tenant
from vendebot.services import catalog, escalation, orders


class ToolName(str, Enum):
    SEARCH_PRODUCTS = "search_products"
    GET_PRODUCT = "get_product"
    CALCULATE_PRICE = "calculate_price"
    CHECK_AVAILABILITY = "check_availability"
    CREATE_ORDER = "create_order"
    GET_BUSINESS_INFO = "get_business_info"
    ESCALATE_TO_HUMAN = "escalate_to_human"


# herramientas cuyo resultado habilita mencionar un precio en el turno
PRICE_SOURCES = frozenset({ToolName.CALCULATE_PRICE.value, ToolName.GET_PRODUCT.value})

PRODUCT_NOT_FOUND = "Producto no encontrado."


def lenient_number(value: Any) -> Optional[float]:
    parsed = coerce_decimal(value)
    return float(parsed) if parsed is not None else None


def lenient_id(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    text = str(value).strip().lstrip("#")
    return int(text) if text.isdigit() else None


class _ToolArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")


class SearchProductsArgs(_ToolArgs):
    query: str = ""

    @field_validator("query", mode="before")
    @classmethod
    def coerce_query_text(cls, value: Any) -> str:
        return "" if value is None else str(value)


class GetProductArgs(_ToolArgs):
    id: Optional[int] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Optional[int]:
        return lenient_id(value)


class CalculatePriceArgs(_ToolArgs):
    product_id: Optional[int] = None
    quantity: Optional[float] = None
    width_m: Optional[float] = None
    height_m: Optional[float] = None
    grams: Optional[float] = None

    @field_validator("product_id", mode="before")
    @classmethod
    def coerce_product_id(cls, value: Any) -> Optional[int]:
        return lenient_id(value)

    @field_validator("quantity", "width_m", "height_m", "grams", mode="before")
    @classmethod
    def coerce_numbers(cls, value: Any) -> Optional[float]:
        return lenient_number(value)


class CheckAvailabilityArgs(_ToolArgs):
    product_id: Optional[int] = None

    @field_validator("product_id", mode="before")
    @classmethod
    def coerce_product_id(cls, value: Any) -> Optional[int]:
        return lenient_id(value)


class OrderItemArgs(_ToolArgs):
    product_id: Optional[int] = None
    product_name: str = ""
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    total: Optional[float] = None

    @field_validator("product_id", mode="before")
    @classmethod
    def coerce_product_id(cls, value: Any) -> Optional[int]:
        return lenient_id(value)

    @field_validator("quantity", "unit_price", "total", mode="before")
    @classmethod
    def coerce_numbers(cls, value: Any) -> Optional[float]:
        return lenient_number(value)


class CreateOrderArgs(_ToolArgs):
    items: List[OrderItemArgs] = Field(default_factory=list)
    notes: Optional[str] = None
    # total calculado por el modelo; sólo se usa para detectar diferencias
    total: Optional[float] = None

    @field_validator("total", mode="before")
    @classmethod
    def coerce_total(cls, value: Any) -> Optional[float]:
        return lenient_number(value)


class GetBusinessInfoArgs(_ToolArgs):
    pass


class EscalateToHumanArgs(_ToolArgs):
    reason: str = ""

    @field_validator("reason", mode="before")
    @classmethod
    def coerce_reason_text(cls, value: Any) -> str:
        return "" if value is None else str(value)


async def search_products(db: Session, args: SearchProductsArgs, ctx: ToolContext, deps: ToolDependencies) -> dict[str, Any]:
    results = catalog.search_products(db, ctx.tenant_id, args.query)
    if not results:
        return {"message": "No se encontraron productos con esa búsqueda.", "results": []}
    return {
        "message": f"Se encontraron {len(results)} producto(s).",
        "results": [catalog.product_summary(product) for product in results],
    }


async def get_product(db: Session, args: GetProductArgs, ctx: ToolContext, deps: ToolDependencies) -> dict[str, Any]:
    product = catalog.get_product(db, ctx.tenant_id, args.id)
    if product is None:
        return {"error": PRODUCT_NOT_FOUND}
    return catalog.product_detail(product)


async def calculate_price(db: Session, args: CalculatePriceArgs, ctx: ToolContext, deps: ToolDependencies) -> dict[str, Any]:
    product = catalog.get_product(db, ctx.tenant_id, args.product_id)
    if product is None:
        return {"error": PRODUCT_NOT_FOUND}

    quantity = args.quantity if args.quantity is not None else 1
    calculation = calculate_smart_price(
        unit_price=product.price,
        unit=product.unit,
        quantity=quantity,
        waste_percentage=product.waste_percentage,
        width_m=args.width_m,
        height_m=args.height_m,
        grams=args.grams,
    )
    result = {"product_id": product.id, "product": product.name, **calculation.to_dict()}
    if not product.in_stock:
        result["available"] = False
        result["note"] = f"{product.name} no está disponible en este momento."
    return result


async def check_availability(db: Session, args: CheckAvailabilityArgs, ctx: ToolContext, deps: ToolDependencies) -> dict[str, Any]:
    availability = catalog.check_availability(db, ctx.tenant_id, args.product_id)
    if availability is None:
        return {"error": PRODUCT_NOT_FOUND}
    name = availability["product"]
    availability["message"] = (
        f"{name} está disponible." if availability["available"] else f"{name} no está disponible en este momento."
    )
    return availability


async def create_order(db: Session, args: CreateOrderArgs, ctx: ToolContext, deps: ToolDependencies) -> dict[str, Any]:
    if not args.items:
        return {"error": "El pedido no tiene productos. Confirmá los ítems antes de crear la orden."}

    result = await orders.create_order(
        db,
        tenant_id=ctx.tenant_id,
        whatsapp_number=ctx.whatsapp_number,
        items=[item.model_dump() for item in args.items],
        notes=args.notes,
        conversation_id=ctx.conversation_id,
        reported_total=args.total,
        payment_gateway=deps.payment_gateway,
    )
    created = result.order
    total_text = f"${created.total_amount:.2f}"
    response: dict[str, Any] = {
        "success": True,
        "order_id": created.order_id,
        "total_amount": total_text,
        "item_count": created.item_count,
        "message": f"Pedido #{created.order_id} creado por {total_text}. Estado: pendiente.",
    }
    if result.payment_link:
        response["payment_link"] = result.payment_link
        response["message"] = f"Pedido #{created.order_id} creado por {total_text}. Podés pagar acá: {result.payment_link}"
    return response


async def get_business_info(db: Session, args: GetBusinessInfoArgs, ctx: ToolContext, deps: ToolDependencies) -> dict[str, Any]:
    tenant = db.query(Tenant).filter(Tenant.id == ctx.tenant_id).first()
    if tenant is None:
        return {"error": "Negocio no encontrado."}
    info = tenant.business_info or {}
    return {
        "name": tenant.business_name,
        "whatsapp_number": tenant.whatsapp_number,
        "address": info.get("address") or "No especificada",
        "hours": info.get("hours") or "No especificado",
        "delivery_zones": info.get("delivery_zones") or [],
        "description": info.get("description") or "",
    }


async def escalate_to_human(db: Session, args: EscalateToHumanArgs, ctx: ToolContext, deps: ToolDependencies) -> dict[str, Any]:
    if ctx.conversation_id is None:
        return {"error": "Conversación no encontrada."}
    conversation = db.query(Conversation).filter(Conversation.id == ctx.conversation_id).first()
    if conversation is None:
        return {"error": "Conversación no encontrada."}

    already_escalated = conversation.status == "escalated"
    message = escalation.escalate(db, ctx.conversation_id, args.reason)
    if not already_escalated:
        await escalation.notify_owner(
            db,
            deps.whatsapp,
            conversation_id=ctx.conversation_id,
            reason=args.reason,
        )
    return {"success": True, "message": message, "reason": args.reason}


_PRODUCT_ID = {"type": "integer", "description": "ID del producto"}

CUSTOMER_TOOLS = (
    ToolSpec(
        name=ToolName.SEARCH_PRODUCTS.value,
        description="Busca en el catálogo por nombre, categoría o descripción. Devuelve productos con precio y disponibilidad.",
        parameters={
            "type": "object",
            "properties": {"query": {"type": "string", "description": "Texto a buscar (nombre, categoría o palabra clave)"}},
            "required": ["query"],
        },
        args_model=SearchProductsArgs,
        handler=search_products,
    ),
    ToolSpec(
        name=ToolName.GET_PRODUCT.value,
        description="Detalle completo de un producto: precio, unidad, descripción y disponibilidad.",
        parameters={"type": "object", "properties": {"id": _PRODUCT_ID}, "required": ["id"]},
        args_model=GetProductArgs,
        handler=get_product,
    ),
    ToolSpec(
        name=ToolName.CALCULATE_PRICE.value,
        description=(
            "Calcula el precio final de un producto según su unidad (m2, kg, docena, etc.) y el "
            "porcentaje de desperdicio. Usala siempre antes de informar un total."
        ),
        parameters={
            "type": "object",
            "properties": {
                "product_id": _PRODUCT_ID,
                "quantity": {"type": "number", "description": "Cantidad pedida, en la unidad del producto (o cantidad de paños para m2)"},
                "width_m": {"type": "number", "description": "Ancho en metros (productos por m2)"},
                "height_m": {"type": "number", "description": "Alto en metros (productos por m2)"},
                "grams": {"type": "number", "description": "Peso en gramos (productos por kg)"},
            },
            "required": ["product_id", "quantity"],
        },
        args_model=CalculatePriceArgs,
        handler=calculate_price,
    ),
    ToolSpec(
        name=ToolName.CHECK_AVAILABILITY.value,
        description="Indica si un producto tiene stock en este momento.",
        parameters={"type": "object", "properties": {"product_id": _PRODUCT_ID}, "required": ["product_id"]},
        args_model=CheckAvailabilityArgs,
        handler=check_availability,
    ),
    ToolSpec(
        name=ToolName.CREATE_ORDER.value,
        description=(
            "Crea el pedido cuando el cliente confirmó productos, cantidades y precios. "
            "Los precios tienen que venir de calculate_price o get_product."
        ),
        parameters={
            "type": "object",
            "properties": {
                "items": {
                    "type": "array",
                    "description": "Ítems del pedido",
                    "items": {
                        "type": "object",
                        "properties": {
                            "product_id": _PRODUCT_ID,
                            "product_name": {"type": "string"},
                            "quantity": {"type": "number"},
                            "unit_price": {"type": "number"},
                            "total": {"type": "number"},
                        },
                        "required": ["product_id", "product_name", "quantity", "unit_price", "total"],
                    },
                },
                "notes": {"type": "string", "description": "Notas opcionales del pedido"},
            },
            "required": ["items"],
        },
        args_model=CreateOrderArgs,
        handler=create_order,
    ),
    ToolSpec(
        name=ToolName.GET_BUSINESS_INFO.value,
        description="Datos del negocio: nombre, dirección, horario, zonas de envío y descripción.",
        parameters={"type": "object", "properties": {}},
        args_model=GetBusinessInfoArgs,
        handler=get_business_info,
    ),
    ToolSpec(
        name=ToolName.ESCALATE_TO_HUMAN.value,
        description="Deriva la conversación al dueño del negocio cuando el cliente pide hablar con una persona o no podés resolver.",
        parameters={
            "type": "object",
            "properties": {"reason": {"type": "string", "description": "Motivo de la derivación"}},
            "required": ["reason"],
        },
        args_model=EscalateToHumanArgs,
        handler=escalate_to_human,
    ),
)


def build_customer_dispatcher(dependencies: ToolDependencies | None = None) -> ToolDispatcher:
    return ToolDispatcher(CUSTOMER_TOOLS, tool_names=ToolName, dependencies=dependencies)
