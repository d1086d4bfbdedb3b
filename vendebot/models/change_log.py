import sqlalchemy as sa
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB

from vendebot.core.database import Base

CHANGE_LOG_ACTIONS = ("update_price", "update_hours", "add_product", "remove_product", "broadcast")


class ChangeLog(Base):
    __tablename__ = "change_logs"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), index=True, nullable=False)
    action = Column(String(30), nullable=False)
    description = Column(Text, nullable=False)
    details = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)
    source = Column(String(20), nullable=False, default="whatsapp")  # whatsapp / dashboard
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
