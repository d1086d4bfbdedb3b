"""Precio inteligente por tipo de unidad.

Convierte (unidad, cantidad, dimensiones, gramos, desperdicio) en el importe a
cobrar. Es una función pura: no toca la base ni lanza excepciones, porque los
argumentos llegan desde llamadas de herramientas generadas por el modelo y no
siempre vienen bien tipados.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

KNOWN_UNITS = ("unidad", "kg", "m2", "m_lineal", "litro", "docena", "combo")

_ZERO = Decimal("0")
_ONE = Decimal("1")
_HUNDRED = Decimal("100")
_THOUSAND = Decimal("1000")
_CENTS = Decimal("0.01")
_QUANTITY_STEP = Decimal("0.0001")

_UNIT_LABELS = {
    "unidad": "unidad(es)",
    "kg": "kg",
    "m2": "m²",
    "m_lineal": "m lineal",
    "litro": "litro(s)",
    "docena": "docena(s)",
    "combo": "combo(s)",
}


@dataclass(frozen=True)
class PriceCalculation:
    unit: str
    unit_price: Decimal
    base_quantity: Decimal
    quantity_with_waste: Decimal
    waste_percentage: Decimal
    subtotal: Decimal
    total: Decimal
    breakdown: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit": self.unit,
            "unit_price": float(self.unit_price),
            "base_quantity": float(self.base_quantity),
            "quantity_with_waste": float(self.quantity_with_waste),
            "waste_percentage": float(self.waste_percentage),
            "subtotal": float(self.subtotal),
            "total": float(self.total),
            "total_formatted": f"${self.total:.2f}",
            "breakdown": self.breakdown,
        }


def coerce_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip().replace("$", "")
        if "," in text and "." not in text:
            text = text.replace(",", ".")
        if not text:
            return None
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None
    if not parsed.is_finite():
        return None
    return parsed


def _non_negative(value: Any) -> Decimal:
    parsed = coerce_decimal(value)
    if parsed is None or parsed < _ZERO:
        return _ZERO
    return parsed


def _positive_or_none(value: Any) -> Decimal | None:
    parsed = coerce_decimal(value)
    if parsed is None or parsed <= _ZERO:
        return None
    return parsed


def _money(value: Decimal) -> Decimal:
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def _quantity(value: Decimal) -> Decimal:
    return value.quantize(_QUANTITY_STEP, rounding=ROUND_HALF_UP)


def _fmt(value: Decimal) -> str:
    # 3 -> "3", 2.50 -> "2.5"
    return format(value.normalize(), "f")


def normalize_unit(unit: Any) -> str:
    text = str(unit or "").strip().lower()
    return text if text in KNOWN_UNITS else "unidad"


def calculate_smart_price(
    unit_price: Any,
    unit: Any,
    quantity: Any,
    waste_percentage: Any = 0,
    width_m: Any = None,
    height_m: Any = None,
    grams: Any = None,
) -> PriceCalculation:
    price = _non_negative(unit_price)
    requested = _non_negative(quantity)
    waste = _non_negative(waste_percentage)
    width = _positive_or_none(width_m)
    height = _positive_or_none(height_m)
    weight_grams = _positive_or_none(grams)
    unit_name = normalize_unit(unit)

    if unit_name == "m2" and width is not None and height is not None:
        area = width * height
        panels = requested if requested > _ZERO else _ONE
        base = area * panels
        breakdown = f"{_fmt(width)}m × {_fmt(height)}m = {area:.2f}m²"
        if panels > _ONE:
            breakdown += f" × {_fmt(panels)} = {base:.2f}m²"
    elif unit_name == "m2":
        base = requested
        breakdown = f"{_fmt(requested)}m²"
    elif unit_name == "kg" and weight_grams is not None:
        base = weight_grams / _THOUSAND
        breakdown = f"{_fmt(weight_grams)}g = {_fmt(base)}kg"
    elif unit_name == "kg":
        base = requested
        breakdown = f"{_fmt(requested)}kg"
    elif unit_name == "docena":
        # la docena se cobra por docena; las 12 unidades son sólo informativas
        base = requested
        breakdown = f"{_fmt(requested)} docena(s) ({_fmt(requested * 12)} unidades)"
    elif unit_name == "m_lineal":
        base = requested
        breakdown = f"{_fmt(requested)}m lineal"
    elif unit_name == "litro":
        base = requested
        breakdown = f"{_fmt(requested)} litro(s)"
    elif unit_name == "combo":
        base = requested
        breakdown = f"{_fmt(requested)} combo(s)"
    else:
        base = requested
        breakdown = f"{_fmt(requested)} unidad(es)"

    if waste > _ZERO:
        with_waste = base * (_ONE + waste / _HUNDRED)
        breakdown += f" + {_fmt(waste)}% desperdicio = {_quantity(with_waste):.4f} {_UNIT_LABELS[unit_name]}"
    else:
        with_waste = base

    # las cantidades se redondean sólo para mostrarlas
    subtotal = _money(base * price)
    total = _money(with_waste * price)
    breakdown += f" × ${price:.2f} = ${total:.2f}"

    return PriceCalculation(
        unit=unit_name,
        unit_price=_money(price),
        base_quantity=_quantity(base),
        quantity_with_waste=_quantity(with_waste),
        waste_percentage=waste,
        subtotal=subtotal,
        total=total,
        breakdown=breakdown,
    )
