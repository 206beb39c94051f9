"""Durable intake of normalized gateway webhooks onto the webhook queue."""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional, Tuple

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from billing.gateways import WebhookEvent
from billing.models import WebhookEventLog

logger = logging.getLogger(__name__)

DEFAULT_DEDUP_WINDOW_SECONDS = 24 * 60 * 60


class WebhookEnqueueError(RuntimeError):
    """Raised when an authenticated webhook could not be handed to the queue."""


def build_webhook_task_id(gateway_name: str, gateway_tx_id: str) -> str:
    return f"webhook:{gateway_name}:{gateway_tx_id}"


def build_webhook_payload(gateway_name: str, event: WebhookEvent, received_at, tenant_id: Optional[str] = None) -> dict:
    payload = {
        "gateway_name": gateway_name,
        "event": event.to_dict(),
        "received_at": received_at.isoformat(),
    }
    if tenant_id:
        payload["tenant_id"] = tenant_id
    return payload


def _dedup_window() -> timedelta:
    return timedelta(seconds=getattr(settings, "WEBHOOK_DEDUP_WINDOW_SECONDS", DEFAULT_DEDUP_WINDOW_SECONDS))


def _reserve_receipt(task_id: str, gateway_name: str, event: WebhookEvent, received_at) -> Tuple[WebhookEventLog, bool]:
    """Create or refresh the receipt row; returns ``(entry, should_enqueue)``."""

    cutoff = received_at - _dedup_window()

    with transaction.atomic():
        entry = WebhookEventLog.objects.select_for_update().filter(task_id=task_id).first()
        if entry:
            if entry.status != WebhookEventLog.Status.FAILED and entry.last_received_at >= cutoff:
                return entry, False

            entry.status = WebhookEventLog.Status.RECEIVED
            entry.event_type = event.type
            entry.payload = event.to_dict()
            entry.last_error = ""
            entry.outcome = ""
            entry.handled = False
            entry.processed_at = None
            entry.last_received_at = received_at
            entry.save(
                update_fields=[
                    "status",
                    "event_type",
                    "payload",
                    "last_error",
                    "outcome",
                    "handled",
                    "processed_at",
                    "last_received_at",
                ]
            )
            return entry, True

        entry = WebhookEventLog.objects.create(
            task_id=task_id,
            gateway_name=gateway_name,
            gateway_txid=event.gateway_tx_id,
            event_type=event.type,
            payload=event.to_dict(),
            status=WebhookEventLog.Status.RECEIVED,
            last_received_at=received_at,
        )
        return entry, True


def enqueue_webhook_event(gateway_name: str, event: WebhookEvent) -> Tuple[WebhookEventLog, bool]:
    """
    Persist the receipt and enqueue processing under ``webhook:<gateway>:<txid>``.

    A redelivery of the same transaction is acknowledged without a second job
    while the previous one is in flight or was handled inside the
    de-duplication window. Returns ``(entry, enqueued)``.
    """

    from billing.tasks import process_webhook_event_async

    received_at = timezone.now()
    task_id = build_webhook_task_id(gateway_name, event.gateway_tx_id)
    entry, should_enqueue = _reserve_receipt(task_id, gateway_name, event, received_at)
    if not should_enqueue:
        logger.info("Webhook %s already queued (status=%s); skipping enqueue.", task_id, entry.status)
        return entry, False

    payload = build_webhook_payload(gateway_name, event, received_at, entry.tenant_id or None)
    try:
        process_webhook_event_async.apply_async(kwargs={"payload": payload}, task_id=task_id)
    except Exception as exc:
        logger.exception("Failed to enqueue webhook %s", task_id)
        entry.status = WebhookEventLog.Status.FAILED
        entry.last_error = f"enqueue failed: {exc}"
        entry.save(update_fields=["status", "last_error"])
        raise WebhookEnqueueError(f"Could not enqueue webhook {task_id}") from exc

    logger.info("Queued webhook %s (%s) for processing.", task_id, event.type)
    return entry, True
