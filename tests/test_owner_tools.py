from datetime import datetime, timedelta, timezone
from decimal import Decimal

from vendebot.ai.dispatcher import ToolContext, ToolDependencies
from vendebot.ai.owner_tools import build_owner_dispatcher
from vendebot.models.change_log import ChangeLog
from vendebot.models.order import Order
from vendebot.models.product import Product
from vendebot.models.tenant import Tenant
from vendebot.services import owner
from vendebot.services.conversations import get_or_create_conversation, get_or_create_customer, record_message
from vendebot.whatsapp.mock_provider import MockWhatsAppProvider
from tests.db_helpers import build_db, product_id, run
from tests.fixtures_data import OWNER_NUMBER

CTX = ToolContext(tenant_id=1, whatsapp_number=OWNER_NUMBER)


def _dispatch(db, name, args, whatsapp=None):
    dispatcher = build_owner_dispatcher(ToolDependencies(whatsapp=whatsapp))
    return run(dispatcher.dispatch(db, name, args, CTX))


def test_update_price_writes_change_log():
    db = build_db()
    tomato_id = product_id(db, "Tomate perita")

    result = _dispatch(db, "owner_update_price", {"product_id": tomato_id, "new_price": "$2500"})

    assert result["old_price"] == "$1000.00"
    assert result["new_price"] == "$2500.00"
    assert Decimal(db.query(Product).filter(Product.id == tomato_id).one().price) == Decimal("2500")
    log = db.query(ChangeLog).one()
    assert log.action == "update_price"
    assert log.source == "whatsapp"
    assert log.details["product_id"] == tomato_id


def test_update_price_rejects_non_positive_price():
    db = build_db()

    result = _dispatch(db, "owner_update_price", {"product_id": 1, "new_price": 0})

    assert "error" in result
    assert db.query(ChangeLog).count() == 0


def test_update_hours_replaces_business_info_hours():
    db = build_db()

    result = _dispatch(db, "owner_update_hours", {"hours": "Hoy cerramos a las 15"})

    tenant = db.query(Tenant).one()
    assert result["old_hours"] == "Lun a Sáb de 9 a 19"
    assert tenant.business_info["hours"] == "Hoy cerramos a las 15"
    assert tenant.business_info["address"] == "Av. Corrientes 1234, CABA"


def test_add_and_remove_product():
    db = build_db()

    added = _dispatch(db, "owner_add_product", {"name": "Empanadas de humita", "price": 800, "unit": "DOCENA"})
    removed = _dispatch(db, "owner_remove_product", {"product_id": added["product_id"]})

    product = db.query(Product).filter(Product.id == added["product_id"]).one()
    assert added["unit"] == "docena"
    assert removed["success"] is True
    assert product.in_stock is False
    assert [log.action for log in db.query(ChangeLog).order_by(ChangeLog.id).all()] == ["add_product", "remove_product"]


def test_remove_unknown_product():
    db = build_db()

    assert _dispatch(db, "owner_remove_product", {"product_id": 999}) == {"error": "Producto no encontrado."}


def test_sales_summary_counts_orders_in_period():
    db = build_db()
    customer = get_or_create_customer(db, 1, "+5491150000001")
    now = datetime.now(timezone.utc)
    db.add(Order(tenant_id=1, customer_id=customer.id, status="pending", items=[], total_amount=Decimal("100")))
    db.add(Order(tenant_id=1, customer_id=customer.id, status="delivered", items=[], total_amount=Decimal("250.50")))
    db.add(
        Order(
            tenant_id=1,
            customer_id=customer.id,
            status="delivered",
            items=[],
            total_amount=Decimal("999"),
            created_at=now - timedelta(days=40),
        )
    )
    db.commit()

    summary = owner.sales_summary(db, 1, "month", now=now + timedelta(seconds=5))

    assert summary["period"] == "este mes"
    assert summary["total_orders"] == 2
    assert summary["total_revenue"] == "$350.50"
    assert summary["pending_orders"] == 1
    assert summary["delivered_orders"] == 1


def test_broadcast_targets_customers_who_asked_about_product():
    db = build_db()
    asked = get_or_create_conversation(db, 1, "+5491150000001")
    record_message(db, asked, role="user", content="¿Tienen sushi?")
    other = get_or_create_conversation(db, 1, "+5491150000002")
    record_message(db, other, role="user", content="Hola")
    whatsapp = MockWhatsAppProvider()

    result = _dispatch(
        db,
        "owner_broadcast",
        {"message": "¡Llegó el sushi!", "product_query": "sushi"},
        whatsapp=whatsapp,
    )

    assert result["sent"] == 1
    assert [message["to"] for message in whatsapp.sent] == ["+5491150000001"]
    log = db.query(ChangeLog).one()
    assert log.action == "broadcast"
    assert log.details["total_targets"] == 1


def test_broadcast_requires_message():
    db = build_db()

    assert "error" in _dispatch(db, "owner_broadcast", {"message": "  "})
