import sqlalchemy as sa
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from vendebot.core.database import Base

MESSAGE_ROLES = ("user", "assistant", "system", "tool")
MESSAGE_TYPES = ("text", "image", "audio", "location", "interactive")


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id"), index=True, nullable=False)
    role = Column(String(20), nullable=False)
    content = Column(Text, nullable=False, default="")
    message_type = Column(String(20), nullable=False, default="text")
    whatsapp_message_id = Column(String, index=True, nullable=True)
    # "metadata" es un nombre reservado en los modelos declarativos
    meta = Column("metadata", JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    conversation = relationship("Conversation", back_populates="messages")
