import json

from sqlalchemy.exc import OperationalError

import vendebot.ai.engine as engine_module
from vendebot.ai.base import LLMError
from vendebot.ai.dispatcher import ToolDependencies
from vendebot.ai.engine import (
    EMPTY_REPLY_TEXT,
    MODEL_ERROR_TEXT,
    OUTCOME_STORAGE_ERROR,
    ROUNDS_EXHAUSTED_TEXT,
    TENANT_MISSING_TEXT,
    ConversationEngine,
    mentions_price,
)
from vendebot.ai.mock_provider import MockLLMClient
from vendebot.ai.prompts import GROUNDING_CORRECTION
from vendebot.ai.tools import build_customer_dispatcher
from vendebot.models.ai_turn_log import AITurnLog
from vendebot.models.conversation import Conversation
from vendebot.services.conversations import get_or_create_conversation, record_message
from vendebot.whatsapp.mock_provider import MockWhatsAppProvider
from tests.db_helpers import build_db, run
from tests.fixtures_data import CUSTOMER_NUMBER, OWNER_NUMBER
from tests.llm_helpers import ScriptedLLM, text_turn, tool_call


def _engine(client, max_rounds=5, whatsapp=None):
    dispatcher = build_customer_dispatcher(ToolDependencies(whatsapp=whatsapp))
    return ConversationEngine(client, dispatcher, max_rounds=max_rounds)


def _turn(engine, db, conversation_id=None, text="Hola"):
    return run(
        engine.run_turn(
            db,
            tenant_id=1,
            conversation_id=conversation_id,
            whatsapp_number=CUSTOMER_NUMBER,
            user_message=text,
        )
    )


def test_plain_text_reply():
    db = build_db()
    client = ScriptedLLM(text_turn("¡Hola! ¿En qué te ayudo?"))

    result = _turn(_engine(client), db)

    assert result.text == "¡Hola! ¿En qué te ayudo?"
    assert result.outcome == "text"
    assert result.rounds == 1
    system, user = client.calls[0]
    assert system["role"] == "system" and "Negocio 1" in system["content"]
    assert user == {"role": "user", "content": "Hola"}


def test_tool_results_are_fed_back_with_call_ids():
    db = build_db()
    client = ScriptedLLM(
        tool_call("get_product", {"id": 2}, call_id="abc"),
        text_turn("El tomate sale $1000.00 el kg."),
    )

    result = _turn(_engine(client), db)

    assert result.text == "El tomate sale $1000.00 el kg."
    assert result.called("get_product")
    second_call = client.calls[1]
    assert second_call[-2]["tool_calls"][0]["id"] == "abc"
    tool_message = second_call[-1]
    assert tool_message["role"] == "tool" and tool_message["tool_call_id"] == "abc"
    assert json.loads(tool_message["content"])["name"] == "Tomate perita"


def test_round_cap_calls_model_exactly_max_rounds_times():
    db = build_db()
    client = ScriptedLLM(tool_call("search_products", {"query": "tomate"}))

    result = _turn(_engine(client, max_rounds=3), db)

    assert len(client.calls) == 3
    assert result.text == ROUNDS_EXHAUSTED_TEXT
    assert result.outcome == "round_budget_exhausted"
    assert result.rounds == 3


def test_model_failure_returns_apology():
    db = build_db()
    client = ScriptedLLM(LLMError("sin choices"))

    result = _turn(_engine(client), db)

    assert result.text == MODEL_ERROR_TEXT
    assert result.outcome == "model_error"


def test_empty_text_becomes_thinking_emoji():
    db = build_db()

    result = _turn(_engine(ScriptedLLM(text_turn("   "))), db)

    assert result.text == EMPTY_REPLY_TEXT


def test_missing_tenant_short_circuits():
    db = build_db()
    client = ScriptedLLM(text_turn("no debería llamarse"))
    engine = _engine(client)

    result = run(
        engine.run_turn(db, tenant_id=42, conversation_id=None, whatsapp_number=CUSTOMER_NUMBER, user_message="Hola")
    )

    assert result.text == TENANT_MISSING_TEXT
    assert client.calls == []


def test_storage_failure_loading_context_returns_apology(monkeypatch):
    db = build_db()
    conversation = get_or_create_conversation(db, 1, CUSTOMER_NUMBER)
    client = ScriptedLLM(text_turn("no debería llamarse"))

    def broken_history(*_args, **_kwargs):
        raise OperationalError("SELECT messages", {}, Exception("database is locked"))

    monkeypatch.setattr(engine_module, "load_history", broken_history)

    result = _turn(_engine(client), db, conversation_id=conversation.id)

    assert result.text == MODEL_ERROR_TEXT
    assert result.outcome == OUTCOME_STORAGE_ERROR
    assert result.rounds == 0
    assert client.calls == []
    assert db.query(Conversation).filter(Conversation.id == conversation.id).one().status == "active"


def test_unknown_tool_does_not_break_the_turn():
    db = build_db()
    client = ScriptedLLM(tool_call("hack_the_planet", {}), text_turn("No puedo hacer eso."))

    result = _turn(_engine(client), db)

    assert result.text == "No puedo hacer eso."
    assert result.tool_trace[0].ok is False
    assert json.loads(client.calls[1][-1]["content"]) == {"error": "Unknown tool: hack_the_planet"}


def test_ungrounded_price_triggers_correction_round():
    db = build_db()
    client = ScriptedLLM(
        text_turn("El tomate sale $900."),
        tool_call("get_product", {"id": 2}),
        text_turn("El tomate sale $1000.00 el kg."),
    )

    result = _turn(_engine(client), db)

    assert result.text == "El tomate sale $1000.00 el kg."
    assert result.rounds == 3
    assert client.calls[1][-1] == {"role": "system", "content": GROUNDING_CORRECTION}


def test_persistent_ungrounded_price_ends_with_fallback():
    db = build_db()
    client = ScriptedLLM(text_turn("Sale 900 pesos."))

    result = _turn(_engine(client, max_rounds=2), db)

    assert result.text == ROUNDS_EXHAUSTED_TEXT
    assert len(client.calls) == 2


def test_failed_price_lookup_does_not_ground_the_reply():
    db = build_db()
    client = ScriptedLLM(tool_call("get_product", {"id": 999}), text_turn("Sale $10."), text_turn("No lo tenemos."))

    result = _turn(_engine(client), db)

    assert result.text == "No lo tenemos."


def test_history_is_loaded_and_current_message_not_duplicated():
    db = build_db()
    conversation = get_or_create_conversation(db, 1, CUSTOMER_NUMBER)
    record_message(db, conversation, role="user", content="Hola")
    record_message(db, conversation, role="assistant", content="¡Hola!")
    record_message(db, conversation, role="user", content="¿Tienen tomate?")
    client = ScriptedLLM(text_turn("Sí."))

    _turn(_engine(client), db, conversation_id=conversation.id, text="¿Tienen tomate?")

    contents = [message["content"] for message in client.calls[0][1:]]
    assert contents == ["Hola", "¡Hola!", "¿Tienen tomate?"]


def test_turn_is_recorded_in_ai_turn_logs():
    db = build_db()
    client = ScriptedLLM(tool_call("get_product", {"id": 2}), text_turn("$1000.00 el kg."))

    _turn(_engine(client), db)

    log = db.query(AITurnLog).one()
    assert log.provider == "scripted"
    assert log.channel == "customer"
    assert log.rounds == 2
    assert log.tool_trace == [{"name": "get_product", "arguments": '{"id": 2}', "ok": True}]


def test_escalation_through_engine():
    db = build_db()
    conversation = get_or_create_conversation(db, 1, CUSTOMER_NUMBER)
    whatsapp = MockWhatsAppProvider()
    client = ScriptedLLM(tool_call("escalate_to_human", {"reason": "pide una persona"}), text_turn("Te derivo con el dueño."))

    result = _turn(_engine(client, whatsapp=whatsapp), db, conversation_id=conversation.id, text="Quiero hablar con una persona")

    assert result.called("escalate_to_human")
    assert db.query(Conversation).one().status == "escalated"
    assert whatsapp.sent[0]["to"] == OWNER_NUMBER


def test_mock_client_grounds_prices_with_get_product():
    db = build_db()
    engine = _engine(MockLLMClient())

    result = _turn(engine, db, text="Hola, ¿cuánto sale el tomate?")

    assert result.outcome == "text"
    assert result.called("search_products", "get_product")
    assert "$1000.00" in result.text


def test_mentions_price():
    assert mentions_price("Sale $1.500")
    assert mentions_price("son 300 pesos")
    assert mentions_price("Sale ARS 1500")
    assert mentions_price("ars1500 en total")
    assert not mentions_price("Tenemos 3 colores")
    assert not mentions_price(None)
