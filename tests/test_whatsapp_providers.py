from vendebot.whatsapp.base import (
    AudioContent,
    ImageContent,
    InteractiveReplyContent,
    LocationContent,
    TextContent,
    content_to_text,
    number_digits,
    sanitize_payload,
)
from vendebot.whatsapp.cloud_provider import CloudWhatsAppProvider, compute_meta_signature, parse_cloud_webhook
from vendebot.whatsapp.mock_provider import MockWhatsAppProvider
from vendebot.whatsapp.twilio_provider import (
    TwilioWhatsAppProvider,
    compute_twilio_signature,
    parse_twilio_webhook,
)
from tests.db_helpers import run


def _cloud_payload(*messages):
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "changes": [
                    {
                        "value": {
                            "metadata": {"display_phone_number": "5491100000000"},
                            "contacts": [{"profile": {"name": "Ana"}}],
                            "messages": list(messages),
                        }
                    }
                ]
            }
        ],
    }


def test_twilio_text_message_is_normalized():
    messages = parse_twilio_webhook(
        {
            "MessageSid": "SM1",
            "From": "whatsapp:+5491155550000",
            "To": "whatsapp:+5491100000000",
            "Body": "  Hola  ",
            "ProfileName": "Ana",
        }
    )

    assert len(messages) == 1
    message = messages[0]
    assert message.from_number == "+5491155550000"
    assert message.to_number == "+5491100000000"
    assert message.content == TextContent(text="Hola")
    assert message.contact_name == "Ana"
    assert message.provider == "twilio"


def test_twilio_media_and_location():
    audio = parse_twilio_webhook(
        {"MessageSid": "SM2", "From": "whatsapp:+1", "NumMedia": "1", "MediaContentType0": "audio/ogg", "MediaUrl0": "u"}
    )[0]
    image = parse_twilio_webhook(
        {"MessageSid": "SM3", "From": "whatsapp:+1", "NumMedia": "1", "MediaContentType0": "image/jpeg", "Body": "mirá"}
    )[0]
    location = parse_twilio_webhook(
        {"MessageSid": "SM4", "From": "whatsapp:+1", "Latitude": "-34.6", "Longitude": "-58.4"}
    )[0]

    assert isinstance(audio.content, AudioContent)
    assert isinstance(image.content, ImageContent) and image.content.caption == "mirá"
    assert location.content == LocationContent(latitude=-34.6, longitude=-58.4)


def test_twilio_status_callback_has_no_messages():
    assert parse_twilio_webhook({"MessageStatus": "delivered"}) == []


def test_twilio_signature_validation():
    provider = TwilioWhatsAppProvider(account_sid="AC1", auth_token="secreto", from_number="+1")
    params = {"From": "whatsapp:+1", "Body": "Hola", "MessageSid": "SM1"}
    url = "https://bot.example.com/webhook/whatsapp"
    signature = compute_twilio_signature("secreto", url, params)

    assert provider.validate_webhook(raw_body=b"", payload=params, headers={"X-Twilio-Signature": signature}, url=url)
    assert not provider.validate_webhook(raw_body=b"", payload=params, headers={"X-Twilio-Signature": "x"}, url=url)
    assert not provider.validate_webhook(raw_body=b"", payload=params, headers={}, url=url)


def test_twilio_send_without_credentials_fails_softly():
    provider = TwilioWhatsAppProvider(account_sid="", auth_token="", from_number="")

    result = run(provider.send_message("+1", "hola"))

    assert result.success is False


def test_cloud_webhook_parses_supported_types_and_skips_others():
    messages = parse_cloud_webhook(
        _cloud_payload(
            {"id": "wamid.1", "from": "5491155550000", "timestamp": "1700000000", "type": "text", "text": {"body": "Hola"}},
            {
                "id": "wamid.2",
                "from": "5491155550000",
                "type": "interactive",
                "interactive": {"button_reply": {"id": "si", "title": "Sí, confirmo"}},
            },
            {"id": "wamid.3", "from": "5491155550000", "type": "sticker", "sticker": {}},
        )
    )

    assert [message.message_id for message in messages] == ["wamid.1", "wamid.2"]
    assert messages[0].to_number == "5491100000000"
    assert messages[0].contact_name == "Ana"
    assert messages[0].timestamp is not None
    assert messages[1].content == InteractiveReplyContent(reply_id="si", title="Sí, confirmo")


def test_cloud_status_update_has_no_messages():
    payload = {"entry": [{"changes": [{"value": {"statuses": [{"id": "wamid.1", "status": "read"}]}}]}]}

    assert parse_cloud_webhook(payload) == []


def test_cloud_signature_validation():
    provider = CloudWhatsAppProvider(access_token="t", phone_number_id="1", app_secret="app-secret")
    raw_body = b'{"entry": []}'
    signature = compute_meta_signature("app-secret", raw_body)

    assert provider.validate_webhook(raw_body=raw_body, payload={}, headers={"X-Hub-Signature-256": signature}, url="")
    assert not provider.validate_webhook(raw_body=b"{}", payload={}, headers={"X-Hub-Signature-256": signature}, url="")
    assert not provider.validate_webhook(raw_body=raw_body, payload={}, headers={}, url="")


def test_mock_provider_records_sent_messages():
    provider = MockWhatsAppProvider()

    result = run(provider.send_message("+5491155550000", "Hola"))

    assert result.success is True
    assert provider.sent == [{"to": "+5491155550000", "body": "Hola", "message_id": result.message_id}]
    assert provider.parse_webhook({}) == []


def test_content_to_text_placeholders():
    assert content_to_text(TextContent(text="hola")) == "hola"
    assert content_to_text(ImageContent()) == "[Imagen]"
    assert content_to_text(ImageContent(caption="foto del patio")) == "foto del patio"
    assert content_to_text(AudioContent()) == "[Audio]"
    assert content_to_text(LocationContent(latitude=-34.6, longitude=-58.4)) == "[Ubicación: -34.6, -58.4]"
    assert content_to_text(InteractiveReplyContent(reply_id="si")) == "si"


def test_number_digits_and_payload_masking():
    assert number_digits("whatsapp:+54 9 11 5555-0000") == "5491155550000"
    assert sanitize_payload({"token": "abcdef123", "nested": [{"access_token": "xy"}], "Body": "hola"}) == {
        "token": "****f123",
        "nested": [{"access_token": "****"}],
        "Body": "hola",
    }
