import pytest

from vendebot.models.conversation import Conversation
from vendebot.models.customer import Customer
from vendebot.services import conversations, escalation
from vendebot.whatsapp.mock_provider import MockWhatsAppProvider
from tests.db_helpers import build_db, run
from tests.fixtures_data import CUSTOMER_NUMBER, OWNER_NUMBER


def test_inbound_reuses_open_conversation():
    db = build_db()

    first = conversations.get_or_create_conversation(db, 1, CUSTOMER_NUMBER, "Ana")
    second = conversations.get_or_create_conversation(db, 1, CUSTOMER_NUMBER)

    assert first.id == second.id
    assert first.status == "active"
    customer = db.query(Customer).one()
    assert customer.name == "Ana"


def test_closed_conversation_is_not_reused():
    db = build_db()
    first = conversations.get_or_create_conversation(db, 1, CUSTOMER_NUMBER)
    conversations.close_conversation(db, first)

    second = conversations.get_or_create_conversation(db, 1, CUSTOMER_NUMBER)

    assert second.id != first.id
    assert db.query(Customer).count() == 1


def test_escalated_conversation_keeps_receiving_messages():
    db = build_db()
    conversation = conversations.get_or_create_conversation(db, 1, CUSTOMER_NUMBER)
    escalation.escalate(db, conversation.id, "quiere hablar con el dueño")

    again = conversations.get_or_create_conversation(db, 1, CUSTOMER_NUMBER)

    assert again.id == conversation.id
    assert again.status == "escalated"


def test_escalate_is_idempotent():
    db = build_db()
    conversation = conversations.get_or_create_conversation(db, 1, CUSTOMER_NUMBER)

    first = escalation.escalate(db, conversation.id, "reclamo")
    second = escalation.escalate(db, conversation.id, "reclamo")

    assert first == second == escalation.ESCALATION_CONFIRMATION
    assert db.query(Conversation).filter(Conversation.id == conversation.id).one().status == "escalated"


def test_escalate_unknown_conversation_raises():
    db = build_db()

    with pytest.raises(escalation.ConversationNotFound):
        escalation.escalate(db, 999, "x")


def test_notify_owner_sends_to_owner_number():
    db = build_db()
    conversation = conversations.get_or_create_conversation(db, 1, CUSTOMER_NUMBER)
    whatsapp = MockWhatsAppProvider()

    sent = run(escalation.notify_owner(db, whatsapp, conversation_id=conversation.id, reason="reclamo"))

    assert sent is True
    notification = whatsapp.sent[0]
    assert notification["to"] == OWNER_NUMBER
    assert CUSTOMER_NUMBER in notification["body"] and "reclamo" in notification["body"]


def test_notify_owner_without_owner_number_is_a_noop():
    db = build_db(owner_phone_number=None)
    conversation = conversations.get_or_create_conversation(db, 1, CUSTOMER_NUMBER)
    whatsapp = MockWhatsAppProvider()

    assert run(escalation.notify_owner(db, whatsapp, conversation_id=conversation.id, reason=None)) is False
    assert whatsapp.sent == []


def test_reactivate_hands_conversation_back_to_bot():
    db = build_db()
    conversation = conversations.get_or_create_conversation(db, 1, CUSTOMER_NUMBER)
    escalation.escalate(db, conversation.id, "x")

    conversations.reactivate_conversation(db, conversation)

    assert conversation.status == "active"


def test_reactivate_refuses_when_number_has_another_open_conversation():
    db = build_db()
    old = conversations.get_or_create_conversation(db, 1, CUSTOMER_NUMBER)
    conversations.close_conversation(db, old)
    conversations.get_or_create_conversation(db, 1, CUSTOMER_NUMBER)

    with pytest.raises(conversations.ConversationStateError):
        conversations.reactivate_conversation(db, old)


def test_history_is_chronological_and_limited_to_user_and_assistant():
    db = build_db()
    conversation = conversations.get_or_create_conversation(db, 1, CUSTOMER_NUMBER)
    for index in range(25):
        conversations.record_message(db, conversation, role="user", content=f"u{index}")
        conversations.record_message(db, conversation, role="assistant", content=f"a{index}")
    conversations.record_message(db, conversation, role="system", content="nota interna")

    history = conversations.load_history(db, conversation.id, limit=20)

    assert len(history) == 20
    assert [message.content for message in history[-2:]] == ["u24", "a24"]
    assert all(message.role in ("user", "assistant") for message in history)
