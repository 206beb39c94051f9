"""Gateway webhook handler implementations and helpers."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.utils import timezone

from billing.constants import SYSTEM_WEBHOOK_ACTOR
from billing.gateways import WebhookEvent, WebhookEventType
from billing.models import AuditLog, Charge, Member, Payment
from billing.observability.metrics import PAYMENTS_CONFIRMED
from tenants.models import Tenant
from tenants.scope import InvalidTenantIdError, tenant_scope

logger = logging.getLogger(__name__)


class ChargeNotFoundError(LookupError):
    """Raised when the charge referenced by a webhook is missing from its tenant."""


@dataclass(frozen=True)
class WebhookOutcome:
    """Outcome of processing one webhook job."""

    status: str
    reason: str = ""
    tenant_id: Optional[str] = None
    result: Dict[str, Any] = field(default_factory=dict)

    PROCESSED = "processed"
    SKIPPED = "skipped"

    UNKNOWN_EVENT_TYPE = "unknown_event_type"
    NO_EXTERNAL_REFERENCE = "no_external_reference"
    CHARGE_NOT_FOUND = "charge_not_found"
    DUPLICATE_GATEWAY_TXID = "duplicate_gateway_txid"
    UNHANDLED_EVENT_TYPE = "unhandled_event_type"
    CHARGE_ALREADY_PAID = "charge_already_paid"

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"status": self.status}
        if self.reason:
            payload["reason"] = self.reason
        if self.tenant_id:
            payload["tenant_id"] = self.tenant_id
        if self.result:
            payload["result"] = self.result
        return payload


@dataclass
class WebhookJob:
    """Queue payload for a webhook; ``tenant_id`` is filled in once resolved."""

    gateway_name: str
    event: WebhookEvent
    received_at: str
    tenant_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "WebhookJob":
        return cls(
            gateway_name=payload.get("gateway_name") or "",
            event=WebhookEvent.from_dict(payload.get("event") or {}),
            received_at=payload.get("received_at") or timezone.now().isoformat(),
            tenant_id=payload.get("tenant_id") or None,
        )

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "gateway_name": self.gateway_name,
            "event": self.event.to_dict(),
            "received_at": self.received_at,
        }
        if self.tenant_id:
            payload["tenant_id"] = self.tenant_id
        return payload


def _as_charge_id(value: Optional[str]) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


def resolve_tenant_for_charge(charge_reference: str) -> Optional[str]:
    """Scan tenants in creation order for the one that owns ``charge_reference``."""

    charge_id = _as_charge_id(charge_reference)
    if charge_id is None:
        return None

    for tenant_id in Tenant.objects.order_by("created_at", "id").values_list("id", flat=True):
        try:
            with tenant_scope(tenant_id):
                if Charge.objects.filter(pk=charge_id).exists():
                    return tenant_id
        except (DatabaseError, InvalidTenantIdError, ValidationError) as exc:
            # A tenant without a provisioned schema must not block the others.
            logger.warning("Skipping tenant %s while resolving charge %s: %s", tenant_id, charge_reference, exc)
    return None


def has_existing_payment(tenant_id: str, gateway_tx_id: str) -> bool:
    with tenant_scope(tenant_id):
        return Payment.objects.filter(gateway_txid=gateway_tx_id).exists()


def handle_payment_received(
    tenant_id: str,
    event: WebhookEvent,
    actor_id: str = SYSTEM_WEBHOOK_ACTOR,
) -> Dict[str, Any]:
    """
    Settle the referenced charge in one tenant transaction.

    Creates the Payment, marks the charge PAID, reactivates an OVERDUE member
    and appends a PAYMENT_CONFIRMED audit entry. A charge that is already PAID
    is a no-op. Any error rolls everything back and propagates.
    """

    charge_id = _as_charge_id(event.external_reference)
    if charge_id is None:
        raise ChargeNotFoundError(f"Charge {event.external_reference!r} not found in tenant {tenant_id}")

    with tenant_scope(tenant_id):
        charge = Charge.objects.select_for_update().select_related("member").filter(pk=charge_id).first()
        if charge is None:
            raise ChargeNotFoundError(f"Charge {charge_id} not found in tenant {tenant_id}")

        if charge.status == Charge.Status.PAID:
            logger.info("Charge %s already paid; ignoring %s", charge.id, event.gateway_tx_id)
            return {"skipped": True, "reason": WebhookOutcome.CHARGE_ALREADY_PAID}

        paid_at = timezone.now()
        amount_cents = event.amount_cents if event.amount_cents is not None else charge.amount_cents

        payment = Payment.objects.create(
            charge=charge,
            paid_at=paid_at,
            method=charge.method,
            amount_cents=amount_cents,
            gateway_txid=event.gateway_tx_id,
        )

        Charge.objects.filter(pk=charge.pk).update(status=Charge.Status.PAID, updated_at=paid_at)

        member_status_updated = False
        if charge.member.status == Member.Status.OVERDUE:
            Member.objects.filter(pk=charge.member_id).update(status=Member.Status.ACTIVE, updated_at=paid_at)
            member_status_updated = True

        AuditLog.objects.create(
            member_id=charge.member_id,
            actor_id=actor_id,
            action=AuditLog.Action.PAYMENT_CONFIRMED,
            entity_id=str(payment.id),
            entity_type="Payment",
            metadata={
                "chargeId": str(charge.id),
                "paymentId": str(payment.id),
                "amountCents": amount_cents,
                "gatewayTxid": event.gateway_tx_id,
                "memberStatusUpdated": member_status_updated,
                "paidAt": paid_at.isoformat(),
            },
        )

    return {
        "skipped": False,
        "paymentId": str(payment.id),
        "chargeId": str(charge.id),
        "memberId": str(charge.member_id),
        "amountCents": amount_cents,
        "memberStatusUpdated": member_status_updated,
    }


def _handle_payment_received(job: WebhookJob) -> WebhookOutcome:
    result = handle_payment_received(job.tenant_id, job.event)
    if result.get("skipped"):
        return WebhookOutcome(status=WebhookOutcome.SKIPPED, reason=result["reason"], tenant_id=job.tenant_id)

    PAYMENTS_CONFIRMED.labels(gateway=job.gateway_name or "unknown").inc()
    return WebhookOutcome(status=WebhookOutcome.PROCESSED, tenant_id=job.tenant_id, result=result)


EVENT_HANDLERS = {
    WebhookEventType.PAYMENT_RECEIVED: _handle_payment_received,
}


def process_event(job: WebhookJob) -> WebhookOutcome:
    """
    Apply the guard clauses, then route the event to its handler.

    Guard outcomes are returned as SKIPPED and never retried. ``job.tenant_id``
    is set once the owning tenant is found so a retry can skip the scan.
    """

    event = job.event

    if event.type == WebhookEventType.UNKNOWN:
        logger.info("Ignoring unknown %s webhook %s", job.gateway_name, event.gateway_tx_id)
        return WebhookOutcome(status=WebhookOutcome.SKIPPED, reason=WebhookOutcome.UNKNOWN_EVENT_TYPE)

    if not event.external_reference:
        logger.warning("%s webhook %s has no external reference", job.gateway_name, event.gateway_tx_id)
        return WebhookOutcome(status=WebhookOutcome.SKIPPED, reason=WebhookOutcome.NO_EXTERNAL_REFERENCE)

    if not job.tenant_id:
        tenant_id = resolve_tenant_for_charge(event.external_reference)
        if tenant_id is None:
            logger.warning("No tenant owns charge %s (webhook %s)", event.external_reference, event.gateway_tx_id)
            return WebhookOutcome(status=WebhookOutcome.SKIPPED, reason=WebhookOutcome.CHARGE_NOT_FOUND)
        job.tenant_id = tenant_id

    if has_existing_payment(job.tenant_id, event.gateway_tx_id):
        logger.info("Payment for %s already recorded in tenant %s", event.gateway_tx_id, job.tenant_id)
        return WebhookOutcome(
            status=WebhookOutcome.SKIPPED,
            reason=WebhookOutcome.DUPLICATE_GATEWAY_TXID,
            tenant_id=job.tenant_id,
        )

    handler = EVENT_HANDLERS.get(event.type)
    if handler is None:
        logger.info("No handler for %s webhook %s (%s)", job.gateway_name, event.gateway_tx_id, event.type)
        return WebhookOutcome(
            status=WebhookOutcome.SKIPPED,
            reason=WebhookOutcome.UNHANDLED_EVENT_TYPE,
            tenant_id=job.tenant_id,
        )

    return handler(job)
