from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.orm import Session

from vendebot.ai.dispatcher import ToolContext, ToolDependencies, ToolDispatcher, ToolSpec
from vendebot.ai.tools import PRODUCT_NOT_FOUND, lenient_id
from vendebot.catalog.price_calculator import KNOWN_UNITS, coerce_decimal
from vendebot.services import catalog, owner


class OwnerToolName(str, Enum):
    SEARCH_PRODUCTS = "owner_search_products"
    UPDATE_PRICE = "owner_update_price"
    UPDATE_HOURS = "owner_update_hours"
    ADD_PRODUCT = "owner_add_product"
    REMOVE_PRODUCT = "owner_remove_product"
    CHECK_SALES = "owner_check_sales"
    BROADCAST = "owner_broadcast"


def _lenient_price(value: Any) -> Optional[Decimal]:
    return coerce_decimal(value)


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


class _OwnerArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")


class OwnerSearchArgs(_OwnerArgs):
    query: str = ""

    @field_validator("query", mode="before")
    @classmethod
    def coerce_query(cls, value: Any) -> str:
        return _text(value)


class OwnerUpdatePriceArgs(_OwnerArgs):
    product_id: Optional[int] = None
    new_price: Optional[Decimal] = None

    @field_validator("product_id", mode="before")
    @classmethod
    def coerce_product_id(cls, value: Any) -> Optional[int]:
        return lenient_id(value)

    @field_validator("new_price", mode="before")
    @classmethod
    def coerce_new_price(cls, value: Any) -> Optional[Decimal]:
        return _lenient_price(value)


class OwnerUpdateHoursArgs(_OwnerArgs):
    hours: str = ""

    @field_validator("hours", mode="before")
    @classmethod
    def coerce_hours(cls, value: Any) -> str:
        return _text(value)


class OwnerAddProductArgs(_OwnerArgs):
    name: str = ""
    price: Optional[Decimal] = None
    unit: str = "unidad"
    category: Optional[str] = None
    description: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def coerce_name(cls, value: Any) -> str:
        return _text(value)

    @field_validator("unit", mode="before")
    @classmethod
    def coerce_unit(cls, value: Any) -> str:
        return _text(value) or "unidad"

    @field_validator("price", mode="before")
    @classmethod
    def coerce_price(cls, value: Any) -> Optional[Decimal]:
        return _lenient_price(value)


class OwnerRemoveProductArgs(_OwnerArgs):
    product_id: Optional[int] = None

    @field_validator("product_id", mode="before")
    @classmethod
    def coerce_product_id(cls, value: Any) -> Optional[int]:
        return lenient_id(value)


class OwnerCheckSalesArgs(_OwnerArgs):
    period: str = "today"

    @field_validator("period", mode="before")
    @classmethod
    def coerce_period(cls, value: Any) -> str:
        return _text(value).lower() or "today"


class OwnerBroadcastArgs(_OwnerArgs):
    message: str = ""
    product_query: Optional[str] = None

    @field_validator("message", mode="before")
    @classmethod
    def coerce_message(cls, value: Any) -> str:
        return _text(value)

    @field_validator("product_query", mode="before")
    @classmethod
    def coerce_product_query(cls, value: Any) -> Optional[str]:
        return _text(value) or None


async def search_products(db: Session, args: OwnerSearchArgs, ctx: ToolContext, deps: ToolDependencies) -> dict[str, Any]:
    results = catalog.search_products(db, ctx.tenant_id, args.query)
    return {
        "results": [catalog.product_summary(product) for product in results],
        "message": f"Se encontraron {len(results)} producto(s).",
    }


async def update_price(db: Session, args: OwnerUpdatePriceArgs, ctx: ToolContext, deps: ToolDependencies) -> dict[str, Any]:
    if args.new_price is None or args.new_price <= 0:
        return {"error": "El precio nuevo tiene que ser un número mayor a cero."}
    result = owner.update_price(db, ctx.tenant_id, args.product_id, args.new_price)
    return result if result is not None else {"error": PRODUCT_NOT_FOUND}


async def update_hours(db: Session, args: OwnerUpdateHoursArgs, ctx: ToolContext, deps: ToolDependencies) -> dict[str, Any]:
    if not args.hours:
        return {"error": "Indicá el horario nuevo."}
    result = owner.update_hours(db, ctx.tenant_id, args.hours)
    return result if result is not None else {"error": "Negocio no encontrado."}


async def add_product(db: Session, args: OwnerAddProductArgs, ctx: ToolContext, deps: ToolDependencies) -> dict[str, Any]:
    if not args.name:
        return {"error": "Indicá el nombre del producto."}
    if args.price is None or args.price <= 0:
        return {"error": "El precio tiene que ser un número mayor a cero."}
    return owner.add_product(
        db,
        ctx.tenant_id,
        name=args.name,
        price=args.price,
        unit=args.unit,
        category=args.category,
        description=args.description,
    )


async def remove_product(db: Session, args: OwnerRemoveProductArgs, ctx: ToolContext, deps: ToolDependencies) -> dict[str, Any]:
    result = owner.remove_product(db, ctx.tenant_id, args.product_id)
    return result if result is not None else {"error": PRODUCT_NOT_FOUND}


async def check_sales(db: Session, args: OwnerCheckSalesArgs, ctx: ToolContext, deps: ToolDependencies) -> dict[str, Any]:
    return owner.sales_summary(db, ctx.tenant_id, args.period)


async def broadcast(db: Session, args: OwnerBroadcastArgs, ctx: ToolContext, deps: ToolDependencies) -> dict[str, Any]:
    if not args.message:
        return {"error": "El aviso no puede estar vacío."}
    return await owner.broadcast(
        db,
        ctx.tenant_id,
        deps.whatsapp,
        message=args.message,
        product_query=args.product_query,
    )


_PRODUCT_ID = {"type": "integer", "description": "ID del producto"}

OWNER_TOOLS = (
    ToolSpec(
        name=OwnerToolName.SEARCH_PRODUCTS.value,
        description="Busca productos del catálogo (incluye los que no tienen stock) para identificar cuál modificar.",
        parameters={
            "type": "object",
            "properties": {"query": {"type": "string", "description": "Nombre o categoría"}},
            "required": ["query"],
        },
        args_model=OwnerSearchArgs,
        handler=search_products,
    ),
    ToolSpec(
        name=OwnerToolName.UPDATE_PRICE.value,
        description="Actualiza el precio de un producto.",
        parameters={
            "type": "object",
            "properties": {
                "product_id": _PRODUCT_ID,
                "new_price": {"type": "number", "description": "Precio nuevo por unidad de venta"},
            },
            "required": ["product_id", "new_price"],
        },
        args_model=OwnerUpdatePriceArgs,
        handler=update_price,
    ),
    ToolSpec(
        name=OwnerToolName.UPDATE_HOURS.value,
        description="Cambia el horario de atención del negocio.",
        parameters={
            "type": "object",
            "properties": {"hours": {"type": "string", "description": 'Horario nuevo, ej: "Lun a Sáb 9 a 15"'}},
            "required": ["hours"],
        },
        args_model=OwnerUpdateHoursArgs,
        handler=update_hours,
    ),
    ToolSpec(
        name=OwnerToolName.ADD_PRODUCT.value,
        description="Agrega un producto nuevo al catálogo.",
        parameters={
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "price": {"type": "number"},
                "unit": {"type": "string", "enum": list(KNOWN_UNITS)},
                "category": {"type": "string"},
                "description": {"type": "string"},
            },
            "required": ["name", "price"],
        },
        args_model=OwnerAddProductArgs,
        handler=add_product,
    ),
    ToolSpec(
        name=OwnerToolName.REMOVE_PRODUCT.value,
        description="Saca un producto del menú (queda sin stock, no se borra).",
        parameters={"type": "object", "properties": {"product_id": _PRODUCT_ID}, "required": ["product_id"]},
        args_model=OwnerRemoveProductArgs,
        handler=remove_product,
    ),
    ToolSpec(
        name=OwnerToolName.CHECK_SALES.value,
        description="Resumen de pedidos y facturación del período.",
        parameters={
            "type": "object",
            "properties": {"period": {"type": "string", "enum": ["today", "week", "month"]}},
        },
        args_model=OwnerCheckSalesArgs,
        handler=check_sales,
    ),
    ToolSpec(
        name=OwnerToolName.BROADCAST.value,
        description=(
            "Envía un aviso por WhatsApp a los clientes. Con product_query sólo a quienes "
            "preguntaron por ese producto."
        ),
        parameters={
            "type": "object",
            "properties": {
                "message": {"type": "string"},
                "product_query": {"type": "string"},
            },
            "required": ["message"],
        },
        args_model=OwnerBroadcastArgs,
        handler=broadcast,
    ),
)


def build_owner_dispatcher(dependencies: ToolDependencies | None = None) -> ToolDispatcher:
    return ToolDispatcher(
        OWNER_TOOLS,
        tool_names=OwnerToolName,
        dependencies=dependencies,
        unknown_label="Unknown owner tool",
    )
