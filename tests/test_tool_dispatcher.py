import json
from decimal import Decimal
from enum import Enum

import pytest

from vendebot.ai.dispatcher import TOOL_FAILURE_MESSAGE, ToolContext, ToolDependencies, ToolDispatcher, ToolSpec
from vendebot.ai.owner_tools import (
    OWNER_TOOLS,
    OwnerAddProductArgs,
    OwnerBroadcastArgs,
    OwnerCheckSalesArgs,
    OwnerToolName,
    build_owner_dispatcher,
)
from vendebot.ai.tools import (
    CUSTOMER_TOOLS,
    CalculatePriceArgs,
    CreateOrderArgs,
    GetProductArgs,
    ToolName,
    build_customer_dispatcher,
)
from vendebot.models.conversation import Conversation
from vendebot.models.order import Order
from vendebot.payments.mock_provider import MockPaymentGateway
from vendebot.services.conversations import get_or_create_conversation
from vendebot.whatsapp.mock_provider import MockWhatsAppProvider
from tests.db_helpers import build_db, product_id, run
from tests.fixtures_data import CUSTOMER_NUMBER, OWNER_NUMBER


def _ctx(conversation_id=None):
    return ToolContext(tenant_id=1, whatsapp_number=CUSTOMER_NUMBER, conversation_id=conversation_id)


def test_registry_covers_every_tool_name():
    assert {spec.name for spec in CUSTOMER_TOOLS} == {member.value for member in ToolName}
    assert {spec.name for spec in OWNER_TOOLS} == {member.value for member in OwnerToolName}


def test_registry_mismatch_is_rejected():
    class Names(str, Enum):
        ONLY = "only"

    with pytest.raises(ValueError):
        ToolDispatcher(CUSTOMER_TOOLS, tool_names=Names)


def test_schemas_are_openai_function_tools():
    schemas = build_customer_dispatcher().schemas()

    assert len(schemas) == 7
    assert all(schema["type"] == "function" for schema in schemas)
    assert {schema["function"]["name"] for schema in schemas} == {member.value for member in ToolName}
    json.dumps(schemas)


def test_unknown_tool_returns_structured_error():
    db = build_db()

    result = run(build_customer_dispatcher().dispatch(db, "delete_everything", "{}", _ctx()))

    assert result == {"error": "Unknown tool: delete_everything"}


def test_unknown_owner_tool_uses_owner_label():
    db = build_db()

    result = run(build_owner_dispatcher().dispatch(db, "search_products", "{}", _ctx()))

    assert result == {"error": "Unknown owner tool: search_products"}


def test_malformed_json_returns_error():
    db = build_db()

    result = run(build_customer_dispatcher().dispatch(db, "get_product", "{not json", _ctx()))

    assert result["error"].startswith("Argumentos inválidos para get_product")


def test_non_object_arguments_return_error():
    db = build_db()

    result = run(build_customer_dispatcher().dispatch(db, "get_product", "[1, 2]", _ctx()))

    assert "error" in result


def test_lenient_arguments_are_coerced():
    args = GetProductArgs.model_validate({"id": "#3", "extra": "ignored"})

    assert args.id == 3


def test_lenient_order_and_owner_arguments_are_coerced():
    order = CreateOrderArgs.model_validate(
        {"items": [{"product_id": "2", "quantity": "1,5", "unit_price": "$1000"}], "total": "abc"}
    )
    price = CalculatePriceArgs.model_validate({"product_id": 4.0, "width_m": "0,5", "grams": True})
    product = OwnerAddProductArgs.model_validate({"name": "  Cinta  ", "price": "$2,5", "unit": None})
    sales = OwnerCheckSalesArgs.model_validate({"period": " WEEK "})
    broadcast = OwnerBroadcastArgs.model_validate({"message": None, "product_query": "   "})

    assert order.items[0].product_id == 2
    assert order.items[0].quantity == 1.5
    assert order.items[0].unit_price == 1000.0
    assert order.total is None
    assert price.product_id == 4
    assert price.width_m == 0.5
    assert price.grams is None
    assert product.name == "Cinta"
    assert product.price == Decimal("2.5")
    assert product.unit == "unidad"
    assert sales.period == "week"
    assert broadcast.message == ""
    assert broadcast.product_query is None


def test_handler_exception_is_contained():
    class Names(str, Enum):
        BOOM = "boom"

    async def boom(db, args, ctx, deps):
        raise RuntimeError("kaboom")

    dispatcher = ToolDispatcher(
        [ToolSpec(name="boom", description="", parameters={}, args_model=GetProductArgs, handler=boom)],
        tool_names=Names,
    )
    db = build_db()

    assert run(dispatcher.dispatch(db, "boom", None, _ctx())) == {"error": TOOL_FAILURE_MESSAGE}


def test_search_and_get_product():
    db = build_db()
    dispatcher = build_customer_dispatcher()

    search = run(dispatcher.dispatch(db, "search_products", '{"query": "tomate"}', _ctx()))
    detail = run(dispatcher.dispatch(db, "get_product", {"id": search["results"][0]["id"]}, _ctx()))
    missing = run(dispatcher.dispatch(db, "get_product", '{"id": 999}', _ctx()))
    empty = run(dispatcher.dispatch(db, "search_products", '{"query": "zzz"}', _ctx()))

    assert search["message"] == "Se encontraron 1 producto(s)."
    assert detail["name"] == "Tomate perita"
    assert detail["price"] == "$1000.00"
    assert missing == {"error": "Producto no encontrado."}
    assert empty["results"] == []


def test_calculate_price_uses_product_unit_and_waste():
    db = build_db()
    dispatcher = build_customer_dispatcher()

    area = run(
        dispatcher.dispatch(
            db,
            "calculate_price",
            json.dumps({"product_id": product_id(db, "Césped en panes"), "quantity": 1, "width_m": 3, "height_m": "2,5"}),
            _ctx(),
        )
    )
    tiles = run(
        dispatcher.dispatch(
            db,
            "calculate_price",
            {"product_id": product_id(db, "Cerámico 30x30"), "quantity": 10},
            _ctx(),
        )
    )

    assert area["total"] == 750.0
    assert area["base_quantity"] == 7.5
    assert tiles["quantity_with_waste"] == 11.0
    assert tiles["total_formatted"] == "$1100.00"


def test_check_availability_message():
    db = build_db()

    result = run(
        build_customer_dispatcher().dispatch(
            db, "check_availability", {"product_id": product_id(db, "Sushi especial")}, _ctx()
        )
    )

    assert result["available"] is False
    assert result["message"] == "Sushi especial no está disponible en este momento."


def test_create_order_tool_returns_payment_link():
    db = build_db(mercadopago_access_token="APP_USR-test")
    conversation = get_or_create_conversation(db, 1, CUSTOMER_NUMBER)
    dispatcher = build_customer_dispatcher(ToolDependencies(payment_gateway=MockPaymentGateway()))
    args = {
        "items": [{"product_id": 3, "product_name": "Empanadas de carne", "quantity": 2, "unit_price": 4500, "total": 9000}],
        "total": 1,
    }

    result = run(dispatcher.dispatch(db, "create_order", json.dumps(args), _ctx(conversation.id)))

    assert result["success"] is True
    assert result["total_amount"] == "$9000.00"
    assert "Podés pagar acá: https://mpago.test/checkout/" in result["message"]
    order = db.query(Order).one()
    assert order.conversation_id == conversation.id


def test_create_order_tool_rejects_empty_items():
    db = build_db()

    result = run(build_customer_dispatcher().dispatch(db, "create_order", '{"items": []}', _ctx()))

    assert "error" in result
    assert db.query(Order).count() == 0


def test_business_info_defaults():
    db = build_db()
    dispatcher = build_customer_dispatcher()

    info = run(dispatcher.dispatch(db, "get_business_info", None, _ctx()))

    assert info["address"] == "Av. Corrientes 1234, CABA"
    assert info["delivery_zones"] == ["Palermo", "Almagro"]


def test_escalate_tool_notifies_owner_once():
    db = build_db()
    conversation = get_or_create_conversation(db, 1, CUSTOMER_NUMBER)
    whatsapp = MockWhatsAppProvider()
    dispatcher = build_customer_dispatcher(ToolDependencies(whatsapp=whatsapp))

    first = run(dispatcher.dispatch(db, "escalate_to_human", '{"reason": "reclamo"}', _ctx(conversation.id)))
    second = run(dispatcher.dispatch(db, "escalate_to_human", '{"reason": "reclamo"}', _ctx(conversation.id)))

    assert first["success"] is True and second["success"] is True
    assert [message["to"] for message in whatsapp.sent] == [OWNER_NUMBER]
    assert db.query(Conversation).one().status == "escalated"
