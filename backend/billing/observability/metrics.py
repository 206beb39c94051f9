"""Prometheus metrics helpers for the billing pipeline."""
from __future__ import annotations

from prometheus_client import Counter, Histogram

BILLING_REQUEST_COUNT = Counter(
    "billing_request_total",
    "Number of billing API requests",
    labelnames=("endpoint", "method", "status"),
)

BILLING_REQUEST_LATENCY = Histogram(
    "billing_request_duration_seconds",
    "Latency of billing API requests",
    labelnames=("endpoint", "method"),
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 15, 60),
)

CHARGES_GENERATED = Counter(
    "billing_charges_generated_total",
    "Charges created by monthly generation",
)

CHARGES_SKIPPED = Counter(
    "billing_charges_skipped_total",
    "Members skipped because a charge already exists for the period",
)

GATEWAY_DISPATCH_FAILURES = Counter(
    "billing_gateway_dispatch_failure_total",
    "Charges that could not be registered at a payment gateway",
    labelnames=("gateway", "reason"),
)

CHARGES_MARKED_PENDING_RETRY = Counter(
    "billing_charges_pending_retry_total",
    "Charges moved to PENDING_RETRY after generation retries were exhausted",
)

WEBHOOKS_RECEIVED = Counter(
    "billing_webhooks_received_total",
    "Inbound gateway webhooks by ingestion result",
    labelnames=("gateway", "result"),
)

WEBHOOK_OUTCOMES = Counter(
    "billing_webhook_outcomes_total",
    "Processed webhook jobs by outcome",
    labelnames=("gateway", "outcome"),
)

PAYMENTS_CONFIRMED = Counter(
    "billing_payments_confirmed_total",
    "Payments reconciled from gateway webhooks",
    labelnames=("gateway",),
)

WHATSAPP_MESSAGES = Counter(
    "billing_whatsapp_messages_total",
    "Dunning messages by delivery status",
    labelnames=("provider", "status"),
)
