from unittest import mock

import pytest
from django.core.exceptions import ImproperlyConfigured
from django.db import DatabaseError
from django.test import override_settings

from billing.models import AuditLog, Message
from billing.services.messaging import normalize_phone, send_whatsapp_message
from billing.tests.fakes import FakeWhatsAppProvider
from billing.whatsapp import (
    WhatsAppProviderError,
    WhatsAppProviderNotConfiguredError,
    WhatsAppRegistry,
    build_whatsapp_registry,
    get_whatsapp_registry,
)

TEMPLATE = "charge_reminder_d3"
BODY = "Olá Maria, sua mensalidade de R$ 49,90 vence em 3 dias."


@pytest.fixture
def decrypted_phone():
    with mock.patch(
        "billing.services.messaging.decrypt_field",
        return_value="+55 (11) 99999-0000",
    ) as patched:
        yield patched


@pytest.fixture
def provider():
    return FakeWhatsAppProvider()


@pytest.fixture
def whatsapp_registry(provider):
    registry = WhatsAppRegistry()
    registry.register(provider)
    return registry.freeze()


@pytest.fixture
def member(make_member):
    return make_member()


def _send(tenant, member, registry, **kwargs):
    return send_whatsapp_message(tenant.id, member.id, member.phone, TEMPLATE, BODY, registry=registry, **kwargs)


class TestWhatsAppRegistry:
    def test_get_without_provider_raises(self):
        with pytest.raises(WhatsAppProviderNotConfiguredError):
            WhatsAppRegistry().get()

    def test_register_replaces_previous_provider(self):
        registry = WhatsAppRegistry()
        first, second = FakeWhatsAppProvider(), FakeWhatsAppProvider()

        registry.register(first)
        registry.register(second)

        assert registry.get() is second

    def test_frozen_registry_rejects_registration(self, whatsapp_registry):
        with pytest.raises(RuntimeError):
            whatsapp_registry.register(FakeWhatsAppProvider())

    def test_build_from_dotted_path(self):
        registry = build_whatsapp_registry("billing.tests.fakes.FakeWhatsAppProvider")

        assert registry.frozen
        assert registry.name == "fakechat"
        assert isinstance(registry.get(), FakeWhatsAppProvider)

    @pytest.mark.parametrize("path", ["billing.tests.fakes.NoSuchProvider", "billing.tests.fakes.FakeGateway"])
    def test_build_rejects_bad_provider_path(self, path):
        with pytest.raises(ImproperlyConfigured):
            build_whatsapp_registry(path)

    @override_settings(WHATSAPP_PROVIDER="")
    def test_build_without_provider_is_empty(self):
        registry = build_whatsapp_registry()

        assert registry.frozen
        assert registry.name is None

    def test_app_registry_is_frozen(self):
        assert get_whatsapp_registry().frozen


@pytest.mark.parametrize(
    "raw,expected",
    [("+55 (11) 99999-0000", "5511999990000"), ("5511999990000", "5511999990000"), ("", "")],
)
def test_normalize_phone_keeps_digits_only(raw, expected):
    assert normalize_phone(raw) == expected


@pytest.mark.django_db
def test_sent_message_is_recorded_with_audit_entry(tenant, member, provider, whatsapp_registry, decrypted_phone):
    result = _send(tenant, member, whatsapp_registry)

    assert result.status == Message.Status.SENT
    assert result.provider_message_id == "wamid.1"
    assert result.fail_reason is None

    message = Message.objects.get()
    assert str(message.id) == result.message_id
    assert message.status == Message.Status.SENT
    assert message.channel == Message.Channel.WHATSAPP
    assert message.template == TEMPLATE
    assert message.sent_at is not None

    request = provider.sent[0]
    assert request.phone == "5511999990000"
    assert request.body == BODY
    assert request.idempotency_key == result.message_id
    decrypted_phone.assert_called_once()
    assert bytes(decrypted_phone.call_args.args[1]) == b"enc-phone"

    audit = AuditLog.objects.get(action=AuditLog.Action.MESSAGE_SENT)
    assert audit.actor_id == "system:job"
    assert audit.member_id == member.id
    assert audit.entity_type == "Message"
    assert audit.entity_id == result.message_id
    assert audit.metadata == {
        "channel": "WHATSAPP",
        "template": TEMPLATE,
        "status": "SENT",
        "providerMessageId": "wamid.1",
        "failReason": None,
    }


@pytest.mark.django_db
def test_provider_error_is_recorded_as_failed(tenant, member, decrypted_phone):
    registry = WhatsAppRegistry()
    registry.register(FakeWhatsAppProvider(fail_with=WhatsAppProviderError("401 invalid client token", "fakechat")))

    result = _send(tenant, member, registry.freeze(), actor_id="user-7")

    assert result.status == Message.Status.FAILED
    assert result.fail_reason == "401 invalid client token"
    assert result.provider_message_id is None

    message = Message.objects.get()
    assert message.status == Message.Status.FAILED
    assert message.fail_reason == "401 invalid client token"
    assert message.sent_at is None

    audit = AuditLog.objects.get(action=AuditLog.Action.MESSAGE_SENT)
    assert audit.actor_id == "user-7"
    assert audit.metadata["status"] == "FAILED"
    assert audit.metadata["failReason"] == "401 invalid client token"


@pytest.mark.django_db
def test_unexpected_provider_exception_is_recorded_as_failed(tenant, member, decrypted_phone):
    registry = WhatsAppRegistry()
    registry.register(FakeWhatsAppProvider(fail_with=TimeoutError()))

    result = _send(tenant, member, registry.freeze())

    assert result.status == Message.Status.FAILED
    assert result.fail_reason == "Unknown provider error"


@pytest.mark.django_db
def test_missing_provider_is_recorded_as_failed(tenant, member, decrypted_phone):
    result = _send(tenant, member, WhatsAppRegistry().freeze())

    assert result.status == Message.Status.FAILED
    assert "No WhatsApp provider registered" in result.fail_reason
    assert Message.objects.get().status == Message.Status.FAILED


@pytest.mark.django_db
def test_decryption_failure_propagates_without_writes(tenant, member, provider, whatsapp_registry, decrypted_phone):
    decrypted_phone.side_effect = DatabaseError("wrong key or corrupt data")

    with pytest.raises(DatabaseError):
        _send(tenant, member, whatsapp_registry)

    assert provider.sent == []
    assert not Message.objects.exists()
    assert not AuditLog.objects.filter(action=AuditLog.Action.MESSAGE_SENT).exists()
