from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect
from sqlalchemy.dialects import postgresql


revision = "0001_vendebot_schema"
down_revision = None
branch_labels = None
depends_on = None


def _json_type(bind):
    if bind.dialect.name == "sqlite":
        return sa.JSON()
    return postgresql.JSONB(astext_type=sa.Text())


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    json_type = _json_type(bind)
    tables = set(inspect(bind).get_table_names())

    if "tenants" not in tables:
        op.create_table(
            "tenants",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("business_name", sa.String(length=160), nullable=False),
            sa.Column("whatsapp_number", sa.String(length=30), nullable=True),
            sa.Column("business_info", json_type, nullable=True),
            sa.Column("bot_personality", sa.Text(), nullable=True),
            sa.Column("mercadopago_access_token", sa.String(), nullable=True),
            sa.Column("owner_phone_number", sa.String(length=30), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
        )
        op.create_index("ix_tenants_whatsapp_number", "tenants", ["whatsapp_number"], unique=True)

    if "products" not in tables:
        op.create_table(
            "products",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("price", sa.Numeric(12, 2), nullable=False),
            sa.Column("unit", sa.String(length=20), nullable=False, server_default="unidad"),
            sa.Column("waste_percentage", sa.Numeric(5, 2), nullable=False, server_default="0"),
            sa.Column("category", sa.String(length=120), nullable=True),
            sa.Column("image_url", sa.String(), nullable=True),
            sa.Column("in_stock", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
        )
        op.create_index("ix_products_tenant_id", "products", ["tenant_id"], unique=False)
        op.create_index("ix_products_tenant_category", "products", ["tenant_id", "category"], unique=False)

    if "customers" not in tables:
        op.create_table(
            "customers",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
            sa.Column("whatsapp_number", sa.String(length=30), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.UniqueConstraint("tenant_id", "whatsapp_number", name="uq_customers_tenant_number"),
        )
        op.create_index("ix_customers_tenant_id", "customers", ["tenant_id"], unique=False)
        op.create_index("ix_customers_whatsapp_number", "customers", ["whatsapp_number"], unique=False)

    if "conversations" not in tables:
        op.create_table(
            "conversations",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
            sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=False),
            sa.Column("whatsapp_number", sa.String(length=30), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
            sa.Column("summary", sa.Text(), nullable=True),
            *_timestamps(),
        )
        op.create_index("ix_conversations_tenant_id", "conversations", ["tenant_id"], unique=False)
        op.create_index("ix_conversations_whatsapp_number", "conversations", ["whatsapp_number"], unique=False)
        op.create_index(
            "ix_conversations_tenant_number_status",
            "conversations",
            ["tenant_id", "whatsapp_number", "status"],
            unique=False,
        )

    if "messages" not in tables:
        op.create_table(
            "messages",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("conversation_id", sa.Integer(), sa.ForeignKey("conversations.id"), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("message_type", sa.String(length=20), nullable=False, server_default="text"),
            sa.Column("whatsapp_message_id", sa.String(), nullable=True),
            sa.Column("metadata", json_type, nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        op.create_index("ix_messages_conversation_id", "messages", ["conversation_id"], unique=False)
        op.create_index("ix_messages_whatsapp_message_id", "messages", ["whatsapp_message_id"], unique=False)

    if "orders" not in tables:
        op.create_table(
            "orders",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
            sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=False),
            sa.Column("conversation_id", sa.Integer(), sa.ForeignKey("conversations.id"), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("items", json_type, nullable=False),
            sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("payment_link", sa.String(), nullable=True),
            sa.Column("payment_reference", sa.String(), nullable=True),
            sa.Column("payment_status", sa.String(length=30), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            *_timestamps(),
        )
        op.create_index("ix_orders_tenant_id", "orders", ["tenant_id"], unique=False)

    if "change_logs" not in tables:
        op.create_table(
            "change_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=False),
            sa.Column("action", sa.String(length=30), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("details", json_type, nullable=True),
            sa.Column("source", sa.String(length=20), nullable=False, server_default="whatsapp"),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        op.create_index("ix_change_logs_tenant_id", "change_logs", ["tenant_id"], unique=False)

    if "processed_messages" not in tables:
        op.create_table(
            "processed_messages",
            sa.Column("message_id", sa.String(), primary_key=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )

    if "ai_turn_logs" not in tables:
        op.create_table(
            "ai_turn_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("conversation_id", sa.Integer(), nullable=True),
            sa.Column("channel", sa.String(length=20), nullable=False),
            sa.Column("provider", sa.String(length=30), nullable=False),
            sa.Column("rounds", sa.Integer(), nullable=False),
            sa.Column("outcome", sa.String(length=40), nullable=False),
            sa.Column("tool_trace", json_type, nullable=True),
            sa.Column("error", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        op.create_index("ix_ai_turn_logs_tenant_id", "ai_turn_logs", ["tenant_id"], unique=False)
        op.create_index("ix_ai_turn_logs_conversation_id", "ai_turn_logs", ["conversation_id"], unique=False)


def downgrade() -> None:
    bind = op.get_bind()
    tables = set(inspect(bind).get_table_names())
    for table_name in (
        "ai_turn_logs",
        "processed_messages",
        "change_logs",
        "orders",
        "messages",
        "conversations",
        "customers",
        "products",
        "tenants",
    ):
        if table_name in tables:
            op.drop_table(table_name)
