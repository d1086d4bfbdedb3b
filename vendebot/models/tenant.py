import sqlalchemy as sa
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB

from vendebot.core.database import Base


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True)
    business_name = Column(String(160), nullable=False)
    # número de WhatsApp del negocio, usado para rutear los mensajes entrantes
    whatsapp_number = Column(String(30), unique=True, index=True, nullable=True)
    # {"address", "hours", "delivery_zones": [...], "description"}
    business_info = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)
    bot_personality = Column(Text, nullable=True)
    mercadopago_access_token = Column(String, nullable=True)
    owner_phone_number = Column(String(30), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
