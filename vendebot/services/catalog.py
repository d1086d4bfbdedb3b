from __future__ import annotations

from typing import Any

from sqlalchemy import or_
from sqlalchemy.orm import Session

from vendebot.models.product import Product

SEARCH_LIMIT = 10


def _like_pattern(query: str) -> str:
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def search_products(db: Session, tenant_id: int, query: str, limit: int = SEARCH_LIMIT) -> list[Product]:
    cleaned = (query or "").strip()
    products = db.query(Product).filter(Product.tenant_id == tenant_id)
    if cleaned:
        pattern = _like_pattern(cleaned)
        products = products.filter(
            or_(
                Product.name.ilike(pattern, escape="\\"),
                Product.description.ilike(pattern, escape="\\"),
                Product.category.ilike(pattern, escape="\\"),
            )
        )
    return products.order_by(Product.name.asc(), Product.id.asc()).limit(min(limit, SEARCH_LIMIT)).all()


def get_product(db: Session, tenant_id: int, product_id: int | None) -> Product | None:
    if product_id is None:
        return None
    return (
        db.query(Product)
        .filter(Product.tenant_id == tenant_id, Product.id == product_id)
        .first()
    )


def check_availability(db: Session, tenant_id: int, product_id: int | None) -> dict[str, Any] | None:
    product = get_product(db, tenant_id, product_id)
    if product is None:
        return None
    return {"product": product.name, "available": bool(product.in_stock)}


def product_summary(product: Product) -> dict[str, Any]:
    return {
        "id": product.id,
        "name": product.name,
        "description": product.description,
        "price": f"${product.price:.2f}",
        "unit": product.unit,
        "category": product.category,
        "available": bool(product.in_stock),
    }


def product_detail(product: Product) -> dict[str, Any]:
    detail = product_summary(product)
    detail["waste_percentage"] = float(product.waste_percentage or 0)
    detail["image_url"] = product.image_url
    return detail
