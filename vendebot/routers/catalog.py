from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from vendebot.catalog.price_calculator import calculate_smart_price
from vendebot.core.database import get_db
from vendebot.deps import get_tenant
from vendebot.models.tenant import Tenant
from vendebot.services import catalog

router = APIRouter(prefix="/api/{tenant_id}", tags=["catalog"])


class CalculateRequest(BaseModel):
    product_id: int
    quantity: float = Field(default=1, ge=0)
    width_m: Optional[float] = Field(default=None, gt=0)
    height_m: Optional[float] = Field(default=None, gt=0)
    grams: Optional[float] = Field(default=None, gt=0)


@router.post("/catalog/calculate")
def calculate(
    payload: CalculateRequest,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    product = catalog.get_product(db, tenant.id, payload.product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Producto no encontrado")
    calculation = calculate_smart_price(
        unit_price=product.price,
        unit=product.unit,
        quantity=payload.quantity,
        waste_percentage=product.waste_percentage,
        width_m=payload.width_m,
        height_m=payload.height_m,
        grams=payload.grams,
    )
    return {"product": catalog.product_summary(product), "calculation": calculation.to_dict()}


@router.get("/products")
def list_products(
    q: str = "",
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    return [catalog.product_summary(product) for product in catalog.search_products(db, tenant.id, q)]


@router.get("/products/{product_id}")
def product_detail(
    product_id: int,
    tenant: Tenant = Depends(get_tenant),
    db: Session = Depends(get_db),
):
    product = catalog.get_product(db, tenant.id, product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Producto no encontrado")
    return catalog.product_detail(product)
