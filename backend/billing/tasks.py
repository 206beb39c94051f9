"""Celery tasks for monthly charge generation and gateway webhook processing."""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from celery import shared_task
from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

from billing.constants import CHARGE_GENERATION_ATTEMPTS, SYSTEM_CRON_ACTOR, WEBHOOK_ATTEMPTS
from billing.gateways import get_gateway_registry
from billing.models import WebhookEventLog
from billing.observability.metrics import WEBHOOK_OUTCOMES
from billing.services.charges import generate_monthly_charges, get_billing_key, resolve_billing_period
from billing.services.retry import GenerationAttempt, generation_backoff_delay, handle_generation_failure
from billing.tasks_webhooks import WebhookJob, WebhookOutcome, process_event
from tenants.models import Tenant

logger = logging.getLogger(__name__)

GENERATION_JOB_CACHE_PREFIX = "billing:jobs:"


@shared_task(queue="charge_dispatch")
def dispatch_monthly_charges(billing_period: Optional[str] = None) -> Dict[str, int]:
    """Fan out one generation job per tenant for the billing period."""

    period = resolve_billing_period(billing_period)
    window = getattr(settings, "CHARGE_GENERATION_DEDUP_WINDOW_SECONDS", 7 * 24 * 60 * 60)
    stats = {"tenants": 0, "enqueued": 0, "skipped": 0}

    for tenant_id in Tenant.objects.order_by("created_at", "id").values_list("id", flat=True):
        stats["tenants"] += 1
        job_id = get_billing_key(tenant_id, period)

        # cache.add is atomic, so a second cron tick for the same period finds the key.
        if not cache.add(f"{GENERATION_JOB_CACHE_PREFIX}{job_id}", timezone.now().isoformat(), timeout=window):
            logger.info("Generation job %s already enqueued; skipping.", job_id)
            stats["skipped"] += 1
            continue

        try:
            generate_tenant_charges.apply_async(
                kwargs={
                    "tenant_id": tenant_id,
                    "actor_id": SYSTEM_CRON_ACTOR,
                    "billing_period": period.key,
                },
                task_id=job_id,
            )
        except Exception:
            cache.delete(f"{GENERATION_JOB_CACHE_PREFIX}{job_id}")
            raise
        stats["enqueued"] += 1

    logger.info(
        "Monthly charge fan-out for %s: %s tenants, %s enqueued, %s skipped.",
        period.key,
        stats["tenants"],
        stats["enqueued"],
        stats["skipped"],
    )
    return stats


@shared_task(bind=True, queue="charge_generation", max_retries=CHARGE_GENERATION_ATTEMPTS - 1)
def generate_tenant_charges(
    self,
    tenant_id: str,
    actor_id: str = SYSTEM_CRON_ACTOR,
    billing_period: Optional[str] = None,
) -> Dict[str, Any]:
    """Generate and dispatch the period's charges for one tenant, retrying with a fixed backoff table."""

    try:
        period_key = resolve_billing_period(billing_period).key
        result = generate_monthly_charges(
            tenant_id,
            actor_id,
            billing_period=period_key,
            registry=get_gateway_registry(),
        )
    except Exception as exc:
        attempt = GenerationAttempt(
            tenant_id=tenant_id,
            billing_period=billing_period,
            attempts_made=self.request.retries + 1,
            max_attempts=CHARGE_GENERATION_ATTEMPTS,
        )
        if handle_generation_failure(attempt, exc):
            raise
        delay = generation_backoff_delay(attempt.attempts_made)
        raise self.retry(exc=exc, countdown=int(delay.total_seconds()))

    logger.info(
        "Generated charges for tenant %s (%s): generated=%s skipped=%s errors=%s gateway_errors=%s",
        tenant_id,
        period_key,
        result.generated,
        result.skipped,
        len(result.errors),
        len(result.gateway_errors),
    )
    return result.as_dict()


def _mark_webhook_processing(task_id: str) -> Optional[WebhookEventLog]:
    log_entry = WebhookEventLog.objects.filter(task_id=task_id).first()
    if log_entry is None:
        return None
    log_entry.status = WebhookEventLog.Status.PROCESSING
    log_entry.attempts += 1
    log_entry.save(update_fields=["status", "attempts"])
    return log_entry


def _mark_webhook_completed(log_entry: Optional[WebhookEventLog], job: WebhookJob, outcome: WebhookOutcome) -> None:
    if not log_entry:
        return
    log_entry.status = WebhookEventLog.Status.PROCESSED
    log_entry.outcome = outcome.reason or outcome.status
    log_entry.tenant_id = job.tenant_id or ""
    log_entry.last_error = ""
    log_entry.handled = True
    log_entry.processed_at = timezone.now()
    log_entry.save(update_fields=["status", "outcome", "tenant_id", "last_error", "handled", "processed_at"])


def _note_webhook_retry(log_entry: Optional[WebhookEventLog], job: WebhookJob, error: str) -> None:
    # Still in flight: a redelivery during the backoff must not enqueue a second job.
    if not log_entry:
        return
    log_entry.status = WebhookEventLog.Status.RECEIVED
    log_entry.tenant_id = job.tenant_id or ""
    log_entry.last_error = error
    log_entry.save(update_fields=["status", "tenant_id", "last_error"])


def _mark_webhook_failed(log_entry: Optional[WebhookEventLog], job: WebhookJob, error: str) -> None:
    if not log_entry:
        return
    log_entry.status = WebhookEventLog.Status.FAILED
    log_entry.tenant_id = job.tenant_id or ""
    log_entry.last_error = error
    log_entry.handled = False
    log_entry.processed_at = None
    log_entry.save(update_fields=["status", "tenant_id", "last_error", "handled", "processed_at"])


@shared_task(bind=True, queue="webhooks", max_retries=WEBHOOK_ATTEMPTS - 1)
def process_webhook_event_async(self, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Reconcile a queued gateway webhook; handler errors retry with exponential backoff."""

    job = WebhookJob.from_payload(payload)
    task_id = self.request.id or f"webhook:{job.gateway_name}:{job.event.gateway_tx_id}"
    log_entry = _mark_webhook_processing(task_id)

    try:
        outcome = process_event(job)
    except Exception as exc:
        logger.warning("Webhook %s failed (attempt %s): %s", task_id, self.request.retries + 1, exc)
        if self.request.retries >= self.max_retries:
            _mark_webhook_failed(log_entry, job, str(exc))
        else:
            _note_webhook_retry(log_entry, job, str(exc))
        WEBHOOK_OUTCOMES.labels(gateway=job.gateway_name or "unknown", outcome="error").inc()
        # The resolved tenant rides along so the retry skips the tenant scan.
        raise self.retry(exc=exc, countdown=2 ** self.request.retries, kwargs={"payload": job.to_payload()})

    _mark_webhook_completed(log_entry, job, outcome)
    WEBHOOK_OUTCOMES.labels(gateway=job.gateway_name or "unknown", outcome=outcome.reason or outcome.status).inc()
    logger.info("Processed webhook %s: %s", task_id, outcome.reason or outcome.status)
    return outcome.as_dict()


@shared_task(queue="maintenance")
def cleanup_webhook_event_logs(days: int = 7) -> int:
    """Remove handled webhook receipts older than ``days`` days."""

    cutoff = timezone.now() - timedelta(days=days)
    deleted, _ = WebhookEventLog.objects.filter(
        status=WebhookEventLog.Status.PROCESSED,
        handled=True,
        processed_at__lt=cutoff,
    ).delete()

    logger.info("Cleaned up %s processed webhook events older than %s days.", deleted, days)
    return deleted
