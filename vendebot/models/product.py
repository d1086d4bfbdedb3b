from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, func

from vendebot.core.database import Base

PRODUCT_UNITS = ("unidad", "kg", "m2", "m_lineal", "litro", "docena", "combo")


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (Index("ix_products_tenant_category", "tenant_id", "category"),)

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    unit = Column(String(20), nullable=False, default="unidad")
    waste_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    category = Column(String(120), nullable=True)
    image_url = Column(String, nullable=True)
    in_stock = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
