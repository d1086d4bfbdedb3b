import sqlalchemy as sa
from sqlalchemy import Column, DateTime, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB

from vendebot.core.database import Base


class AITurnLog(Base):
    __tablename__ = "ai_turn_logs"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, index=True, nullable=False)
    conversation_id = Column(Integer, index=True, nullable=True)
    channel = Column(String(20), nullable=False, default="customer")  # customer / owner
    provider = Column(String(30), nullable=False)
    rounds = Column(Integer, nullable=False, default=0)
    outcome = Column(String(40), nullable=False)  # text / round_budget_exhausted / model_error / ...
    # [{"name", "arguments", "ok"}]
    tool_trace = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
