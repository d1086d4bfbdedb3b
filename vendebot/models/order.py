import sqlalchemy as sa
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from vendebot.core.database import Base

ORDER_STATUSES = ("pending", "confirmed", "preparing", "ready", "delivered", "cancelled")


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    conversation_id = Column(Integer, ForeignKey("conversations.id"), nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    # [{"product_id", "product_name", "quantity", "unit_price", "total"}]
    items = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    payment_link = Column(String, nullable=True)
    payment_reference = Column(String, nullable=True)
    payment_status = Column(String(30), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    customer = relationship("Customer", back_populates="orders")
