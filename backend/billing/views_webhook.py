"""Gateway webhook endpoint: authenticate, normalize and enqueue."""
from __future__ import annotations

import logging

from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from rest_framework.views import APIView

from billing.gateways import (
    GatewayNotFoundError,
    WebhookParseError,
    WebhookSignatureError,
    get_gateway_registry,
)
from billing.observability.metrics import WEBHOOKS_RECEIVED
from billing.services.webhooks import WebhookEnqueueError, enqueue_webhook_event

logger = logging.getLogger(__name__)


@method_decorator(csrf_exempt, name="dispatch")
class GatewayWebhookView(APIView):
    """Receive a provider webhook and queue it for asynchronous reconciliation."""

    authentication_classes = []
    permission_classes = []
    http_method_names = ["post"]

    def post(self, request, gateway: str, *args, **kwargs):  # noqa: D401 - DRF signature
        # Read the raw bytes before anything touches request.data; signatures cover the exact body.
        raw_body = request.body

        try:
            adapter = get_gateway_registry().get(gateway)
        except GatewayNotFoundError:
            logger.warning("Webhook for unknown gateway %r rejected.", gateway)
            WEBHOOKS_RECEIVED.labels(gateway="unknown", result="unknown_gateway").inc()
            return JsonResponse({"code": "unknown_gateway", "message": f"Unknown gateway: {gateway}"}, status=404)

        try:
            event = adapter.parse_webhook(raw_body, request.headers)
        except WebhookSignatureError as exc:
            logger.warning("Webhook signature rejected for %s: %s", adapter.name, exc)
            WEBHOOKS_RECEIVED.labels(gateway=adapter.name, result="invalid_signature").inc()
            return JsonResponse({"code": "invalid_signature", "message": "Invalid webhook signature."}, status=401)
        except WebhookParseError as exc:
            logger.error("Malformed %s webhook payload: %s", adapter.name, exc)
            WEBHOOKS_RECEIVED.labels(gateway=adapter.name, result="parse_error").inc()
            return JsonResponse({"code": "parse_error", "message": "Could not parse webhook."}, status=500)

        try:
            _, enqueued = enqueue_webhook_event(adapter.name, event)
        except WebhookEnqueueError as exc:
            logger.error("Webhook from %s could not be queued: %s", adapter.name, exc)
            WEBHOOKS_RECEIVED.labels(gateway=adapter.name, result="enqueue_failed").inc()
            return JsonResponse({"code": "enqueue_failed", "message": "Webhook could not be queued."}, status=500)

        WEBHOOKS_RECEIVED.labels(gateway=adapter.name, result="queued" if enqueued else "duplicate").inc()
        return JsonResponse({"received": True}, status=200)
