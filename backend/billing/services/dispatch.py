"""Register a freshly generated charge with the payment gateway for its method."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Union

from django.utils import timezone

from billing.constants import OFFLINE_METHODS
from billing.gateways import CreateChargeInput, GatewayCustomer, GatewayNotFoundError, GatewayRegistry
from billing.models import Charge, Member
from billing.observability.metrics import GATEWAY_DISPATCH_FAILURES
from billing.services.crypto import decrypt_member_contact
from tenants.scope import tenant_scope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchSuccess:
    external_id: str
    gateway_name: str
    meta: Dict[str, Any] = field(default_factory=dict)

    ok = True


@dataclass(frozen=True)
class DispatchFailure:
    error: str

    ok = False


DispatchResult = Union[DispatchSuccess, DispatchFailure]


def dispatch_charge_to_gateway(
    tenant_id: str,
    charge: Charge,
    member: Member,
    *,
    registry: GatewayRegistry,
) -> DispatchResult:
    """
    Create ``charge`` at the gateway serving its method and store the provider ids.

    Business failures come back as ``DispatchFailure`` and leave the charge
    PENDING for a later retry. The charge id is the idempotency key, so a retry
    never bills the member twice. If the gateway accepted the charge but the
    local update failed, the failure message carries the gateway id for manual
    reconciliation; the charge is never re-created at the gateway from here.
    Errors decrypting member PII propagate.
    """

    if charge.method in OFFLINE_METHODS:
        return DispatchSuccess(external_id="", gateway_name="", meta={})

    cpf, phone = decrypt_member_contact(member)

    try:
        gateway = registry.for_method(charge.method)
    except GatewayNotFoundError as exc:
        logger.warning("No gateway for charge %s (method=%s): %s", charge.id, charge.method, exc)
        GATEWAY_DISPATCH_FAILURES.labels(gateway="none", reason="no_gateway").inc()
        return DispatchFailure(error=str(exc))

    request = CreateChargeInput(
        amount_cents=charge.amount_cents,
        due_date=charge.due_date,
        method=charge.method,
        description=f"Mensalidade {charge.due_date:%m/%Y}",
        customer=GatewayCustomer(name=member.name, cpf=cpf, phone=phone, email=member.email or None),
        idempotency_key=str(charge.id),
    )

    try:
        result = gateway.create_charge(request)
    except Exception as exc:
        logger.error(
            "Gateway %s failed to create charge %s (method=%s): %s",
            gateway.name,
            charge.id,
            charge.method,
            exc,
        )
        GATEWAY_DISPATCH_FAILURES.labels(gateway=gateway.name, reason="gateway_error").inc()
        return DispatchFailure(error=str(exc) or exc.__class__.__name__)

    try:
        with tenant_scope(tenant_id):
            updated = Charge.objects.filter(pk=charge.pk).update(
                external_id=result.external_id,
                gateway_name=gateway.name,
                gateway_meta=result.meta,
                updated_at=timezone.now(),
            )
    except Exception as exc:
        updated = 0
        persist_error = str(exc) or exc.__class__.__name__
    else:
        persist_error = "charge row not found"

    if not updated:
        logger.critical(
            "Charge %s was created at %s as %s but could not be stored locally: %s",
            charge.id,
            gateway.name,
            result.external_id,
            persist_error,
        )
        GATEWAY_DISPATCH_FAILURES.labels(gateway=gateway.name, reason="persist_failed").inc()
        return DispatchFailure(
            error=(
                f"Charge created at gateway {gateway.name} with external id {result.external_id} "
                f"but the local update failed: {persist_error}"
            )
        )

    charge.external_id = result.external_id
    charge.gateway_name = gateway.name
    charge.gateway_meta = result.meta
    return DispatchSuccess(external_id=result.external_id, gateway_name=gateway.name, meta=dict(result.meta))
