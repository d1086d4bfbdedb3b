import json
import logging

import pytest

from vendebot.core import config, startup_checks
from vendebot.core.logging_setup import JsonFormatter, mask_secrets
from vendebot.core.request_context import clear_request_context, get_request_context, set_request_context
from vendebot.whatsapp.backoff import SenderBackoff


class _Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_sender_backoff_grows_and_resets():
    clock = _Clock()
    backoff = SenderBackoff(threshold=2, max_delay=4.0, reset_after=60.0, clock=clock)

    backoff.failure("123")
    assert backoff.delay("123") == 0.0
    backoff.failure("123")
    assert backoff.delay("123") == 1.0
    for _ in range(5):
        backoff.failure("123")
    assert backoff.delay("123") == 4.0

    clock.now = 120.0
    assert backoff.delay("123") == 0.0

    backoff.failure("456")
    backoff.failure("456")
    backoff.success("456")
    assert backoff.delay("456") == 0.0


def test_request_context_is_merged_and_cleared():
    clear_request_context()
    set_request_context(request_id="req-1")
    set_request_context(tenant_id=3, conversation_id=9)

    assert get_request_context() == {"request_id": "req-1", "tenant_id": "3", "conversation_id": "9"}

    clear_request_context()
    assert get_request_context() == {"request_id": None, "tenant_id": None, "conversation_id": None}


def test_json_formatter_includes_context_and_masks_secrets():
    set_request_context(request_id="req-2", tenant_id=1)
    record = logging.LogRecord("vendebot.test", logging.INFO, __file__, 1, "token=%s", ("abc123",), None)
    record.rounds = 2

    payload = json.loads(JsonFormatter().format(record))
    clear_request_context()

    assert payload["message"] == "token=***"
    assert payload["request_id"] == "req-2"
    assert payload["tenant_id"] == "1"
    assert payload["rounds"] == 2
    assert "outcome" not in payload


def test_mask_secrets_covers_bearer_and_mercadopago_tokens():
    masked = mask_secrets('Authorization: Bearer sk-123 {"access_token": "APP_USR-999"}')

    assert "sk-123" not in masked
    assert "APP_USR-999" not in masked


def test_sqlite_is_rejected_in_production(monkeypatch):
    monkeypatch.setattr(config, "IS_PROD", True)
    monkeypatch.setattr(config, "DATABASE_URL", "sqlite:///./vendebot.db")

    with pytest.raises(RuntimeError):
        startup_checks.validate_database_environment()


def test_missing_whatsapp_credentials_are_reported(monkeypatch, caplog):
    monkeypatch.setattr(config, "WHATSAPP_PROVIDER", "twilio")
    monkeypatch.setattr(config, "TWILIO_ACCOUNT_SID", "")
    monkeypatch.setattr(config, "TWILIO_AUTH_TOKEN", "")
    monkeypatch.setattr(config, "TWILIO_WHATSAPP_FROM", "+1")

    with caplog.at_level(logging.WARNING, logger="vendebot.core.startup_checks"):
        startup_checks.warn_on_mock_providers()

    assert "TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN" in caplog.text
