import json
from datetime import timedelta
from unittest import mock

import pytest
from django.urls import reverse
from django.utils import timezone
from rest_framework.test import APIClient

from billing.gateways import GatewayRegistry
from billing.gateways.asaas import AsaasGateway
from billing.models import WebhookEventLog
from billing.tasks import process_webhook_event_async

SECRET = "test-asaas-webhook-secret"
CHARGE_ID = "2b1f4e7c-0f5e-4b8a-9d7a-7f2a1c3e9b10"


def _body(event="PAYMENT_RECEIVED", payment_id="pay_123"):
    return json.dumps(
        {
            "event": event,
            "payment": {"id": payment_id, "externalReference": CHARGE_ID, "value": 49.9},
        }
    )


@pytest.fixture
def registry():
    registry = GatewayRegistry()
    registry.register(AsaasGateway(api_key="asaas-key", webhook_secret=SECRET, session=mock.MagicMock()))
    registry.freeze()
    with mock.patch("billing.views_webhook.get_gateway_registry", return_value=registry):
        yield registry


@pytest.fixture
def apply_async():
    with mock.patch.object(process_webhook_event_async, "apply_async") as patched:
        yield patched


@pytest.fixture
def post(registry):
    client = APIClient()

    def _post(body, gateway="asaas", token=SECRET):
        headers = {"HTTP_ASAAS_ACCESS_TOKEN": token} if token is not None else {}
        return client.post(
            reverse("billing:gateway-webhook", kwargs={"gateway": gateway}),
            data=body,
            content_type="application/json",
            **headers,
        )

    return _post


@pytest.mark.django_db
def test_valid_webhook_is_logged_and_enqueued(post, apply_async):
    response = post(_body())

    assert response.status_code == 200
    assert response.json() == {"received": True}

    entry = WebhookEventLog.objects.get()
    assert entry.task_id == "webhook:asaas:pay_123"
    assert entry.gateway_name == "asaas"
    assert entry.event_type == "PAYMENT_RECEIVED"
    assert entry.status == WebhookEventLog.Status.RECEIVED
    assert entry.payload["external_reference"] == CHARGE_ID

    apply_async.assert_called_once()
    call = apply_async.call_args
    assert call.kwargs["task_id"] == "webhook:asaas:pay_123"
    payload = call.kwargs["kwargs"]["payload"]
    assert payload["gateway_name"] == "asaas"
    assert payload["event"]["gateway_tx_id"] == "pay_123"
    assert payload["event"]["amount_cents"] == 4990
    assert "tenant_id" not in payload


@pytest.mark.django_db
def test_redelivery_is_acknowledged_without_second_job(post, apply_async):
    first = post(_body())
    second = post(_body())

    assert first.status_code == second.status_code == 200
    assert apply_async.call_count == 1
    assert WebhookEventLog.objects.count() == 1


@pytest.mark.django_db
def test_redelivery_after_processing_within_window_is_ignored(post, apply_async):
    post(_body())
    WebhookEventLog.objects.update(status=WebhookEventLog.Status.PROCESSED, handled=True)

    post(_body())

    assert apply_async.call_count == 1


@pytest.mark.django_db
def test_redelivery_outside_window_is_enqueued_again(post, apply_async):
    post(_body())
    WebhookEventLog.objects.update(
        status=WebhookEventLog.Status.PROCESSED,
        last_received_at=timezone.now() - timedelta(days=2),
    )

    post(_body())

    assert apply_async.call_count == 2


@pytest.mark.django_db
def test_failed_webhook_is_enqueued_again_on_redelivery(post, apply_async):
    post(_body())
    WebhookEventLog.objects.update(
        status=WebhookEventLog.Status.FAILED,
        last_error="deadlock detected",
        tenant_id="a" * 25,
    )

    response = post(_body())

    assert response.status_code == 200
    assert apply_async.call_count == 2
    assert apply_async.call_args.kwargs["kwargs"]["payload"]["tenant_id"] == "a" * 25
    entry = WebhookEventLog.objects.get()
    assert entry.status == WebhookEventLog.Status.RECEIVED
    assert entry.last_error == ""


@pytest.mark.django_db
def test_distinct_transactions_get_distinct_jobs(post, apply_async):
    post(_body(payment_id="pay_1"))
    post(_body(payment_id="pay_2"))

    task_ids = sorted(call.kwargs["task_id"] for call in apply_async.call_args_list)
    assert task_ids == ["webhook:asaas:pay_1", "webhook:asaas:pay_2"]


@pytest.mark.django_db
@pytest.mark.parametrize("token", [None, "", "wrong-token"])
def test_bad_token_is_rejected_before_enqueue(post, apply_async, token):
    response = post(_body(), token=token)

    assert response.status_code == 401
    assert response.json()["code"] == "invalid_signature"
    apply_async.assert_not_called()
    assert not WebhookEventLog.objects.exists()


@pytest.mark.django_db
def test_unknown_gateway(post, apply_async):
    response = post(_body(), gateway="pagseguro")

    assert response.status_code == 404
    assert response.json()["code"] == "unknown_gateway"
    apply_async.assert_not_called()


@pytest.mark.django_db
def test_authentic_but_malformed_body(post, apply_async):
    response = post("{not json")

    assert response.status_code == 500
    assert response.json()["code"] == "parse_error"
    apply_async.assert_not_called()


@pytest.mark.django_db
def test_queue_outage_returns_500_and_marks_receipt_failed(post, apply_async):
    apply_async.side_effect = ConnectionError("redis unavailable")

    response = post(_body())

    assert response.status_code == 500
    assert response.json()["code"] == "enqueue_failed"
    entry = WebhookEventLog.objects.get()
    assert entry.status == WebhookEventLog.Status.FAILED
    assert entry.last_error.startswith("enqueue failed:")

    # The provider's redelivery must get through once the queue is back.
    apply_async.side_effect = None
    assert post(_body()).status_code == 200
    assert WebhookEventLog.objects.get().status == WebhookEventLog.Status.RECEIVED


@pytest.mark.django_db
def test_get_is_not_allowed(registry):
    response = APIClient().get(reverse("billing:gateway-webhook", kwargs={"gateway": "asaas"}))

    assert response.status_code == 405
