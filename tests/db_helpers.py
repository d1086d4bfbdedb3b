from __future__ import annotations

import asyncio
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from vendebot.core.database import Base
import vendebot.models  # noqa: F401
from vendebot.models.product import Product
from vendebot.models.tenant import Tenant
from tests.fixtures_data import CATALOG, OWNER_NUMBER, TENANT_BUSINESS_INFO, TENANT_NUMBER


def build_session_factory() -> sessionmaker:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def seed_tenant(
    db: Session,
    *,
    tenant_id: int = 1,
    whatsapp_number: str = TENANT_NUMBER,
    owner_phone_number: str | None = OWNER_NUMBER,
    mercadopago_access_token: str | None = None,
    with_catalog: bool = True,
) -> Tenant:
    tenant = Tenant(
        id=tenant_id,
        business_name=f"Negocio {tenant_id}",
        whatsapp_number=whatsapp_number,
        business_info=dict(TENANT_BUSINESS_INFO),
        owner_phone_number=owner_phone_number,
        mercadopago_access_token=mercadopago_access_token,
        is_active=True,
    )
    db.add(tenant)
    db.flush()
    if with_catalog:
        for entry in CATALOG:
            db.add(Product(tenant_id=tenant_id, **entry))
    db.commit()
    return tenant


def build_db(**seed_kwargs: Any) -> Session:
    db = build_session_factory()()
    seed_tenant(db, **seed_kwargs)
    return db


def product_id(db: Session, name: str, tenant_id: int = 1) -> int:
    product = db.query(Product).filter(Product.tenant_id == tenant_id, Product.name == name).one()
    return product.id


def run(coro):
    return asyncio.run(coro)
