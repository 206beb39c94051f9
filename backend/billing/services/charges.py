"""Monthly charge generation and retry bookkeeping for a single tenant."""
from __future__ import annotations

import calendar
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from typing import Any, Dict, List, Union

from django.db.models import F
from django.utils import timezone

from billing.constants import SYSTEM_JOB_ACTOR
from billing.gateways import GatewayRegistry
from billing.models import AuditLog, Charge, Member, MemberPlan, Plan
from billing.observability.logging import log_billing_event
from billing.observability.metrics import CHARGES_GENERATED, CHARGES_MARKED_PENDING_RETRY, CHARGES_SKIPPED
from billing.services.dispatch import DispatchSuccess, dispatch_charge_to_gateway
from tenants.scope import tenant_scope, validate_tenant_id

logger = logging.getLogger(__name__)

_YEAR_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


class NoActivePlanError(RuntimeError):
    """Raised when a tenant has no active plan to bill against."""

    code = "NO_ACTIVE_PLAN"


class InvalidBillingPeriodError(ValueError):
    """Raised when a billing period or due date cannot be parsed."""


@dataclass(frozen=True)
class BillingPeriod:
    """A calendar month in UTC."""

    year: int
    month: int

    @property
    def key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def start(self) -> datetime:
        return datetime(self.year, self.month, 1, tzinfo=dt_timezone.utc)

    @property
    def end(self) -> datetime:
        last_day = calendar.monthrange(self.year, self.month)[1]
        return datetime(self.year, self.month, last_day, 23, 59, 59, 999000, tzinfo=dt_timezone.utc)


@dataclass
class ChargeGenerationResult:
    generated: int = 0
    skipped: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    gateway_errors: List[Dict[str, Any]] = field(default_factory=list)
    charges: List[Dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "generated": self.generated,
            "skipped": self.skipped,
            "errors": list(self.errors),
            "gatewayErrors": list(self.gateway_errors),
            "charges": list(self.charges),
        }


def parse_datetime_utc(value: Union[str, datetime]) -> datetime:
    """Parse an ISO-8601 string (or datetime) into an aware UTC datetime."""

    if isinstance(value, datetime):
        parsed = value
    else:
        text = (value or "").strip()
        if text.endswith("Z"):
            text = f"{text[:-1]}+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise InvalidBillingPeriodError(f"Invalid ISO timestamp: {value!r}") from exc
    if timezone.is_naive(parsed):
        return parsed.replace(tzinfo=dt_timezone.utc)
    return parsed.astimezone(dt_timezone.utc)


def resolve_billing_period(value: Union[str, datetime, None] = None) -> BillingPeriod:
    """Resolve ``YYYY-MM`` or any ISO timestamp to its UTC month; default is the current month."""

    if value is None or value == "":
        now = timezone.now().astimezone(dt_timezone.utc)
        return BillingPeriod(now.year, now.month)

    if isinstance(value, str):
        match = _YEAR_MONTH_RE.match(value.strip())
        if match:
            year, month = int(match.group(1)), int(match.group(2))
            if not 1 <= month <= 12:
                raise InvalidBillingPeriodError(f"Invalid billing period: {value!r}")
            return BillingPeriod(year, month)

    moment = parse_datetime_utc(value)
    return BillingPeriod(moment.year, moment.month)


def default_due_date(period: BillingPeriod) -> datetime:
    return period.end


def resolve_due_date(period: BillingPeriod, due_date: Union[str, datetime, None] = None) -> datetime:
    """Explicit due dates must fall inside ``period``; the duplicate guard only looks there."""

    if not due_date:
        return default_due_date(period)
    moment = parse_datetime_utc(due_date)
    if not period.start <= moment <= period.end:
        raise InvalidBillingPeriodError(
            f"Due date {moment.isoformat()} is outside billing period {period.key}."
        )
    return moment


def get_billing_key(tenant_id: str, period: BillingPeriod) -> str:
    """Deterministic job id for one tenant's generation run in a period."""
    return f"generate-{tenant_id}-{period.key}"


def assert_tenant_has_active_plan(tenant_id: str) -> None:
    with tenant_scope(tenant_id):
        if not Plan.objects.filter(is_active=True).exists():
            raise NoActivePlanError(
                "Club has no active plan. Create at least one active plan before generating charges."
            )


def has_existing_charge(member_id, period: BillingPeriod) -> bool:
    """True when a non-cancelled charge already exists for the member in ``period``."""

    return (
        Charge.objects.filter(
            member_id=member_id,
            due_date__gte=period.start,
            due_date__lte=period.end,
        )
        .exclude(status=Charge.Status.CANCELLED)
        .exists()
    )


def _eligible_links(tenant_id: str) -> List[MemberPlan]:
    with tenant_scope(tenant_id):
        return list(
            MemberPlan.objects.select_related("member", "plan")
            .filter(
                ended_at__isnull=True,
                member__status=Member.Status.ACTIVE,
                plan__is_active=True,
            )
            .order_by("started_at", "id")
        )


def generate_monthly_charges(
    tenant_id: str,
    actor_id: str,
    *,
    billing_period: Union[str, datetime, None] = None,
    due_date: Union[str, datetime, None] = None,
    registry: GatewayRegistry,
) -> ChargeGenerationResult:
    """
    Create one PENDING charge per eligible member for the period and dispatch it.

    Each member is written in its own tenant transaction so one failure never
    rolls back another member's charge. Gateway dispatch runs after that
    transaction commits; dispatch failures are reported in ``gateway_errors``
    and leave the charge PENDING. Decryption failures are not caught.
    """

    validate_tenant_id(tenant_id)
    assert_tenant_has_active_plan(tenant_id)

    period = resolve_billing_period(billing_period)
    charge_due_date = resolve_due_date(period, due_date)

    result = ChargeGenerationResult()

    links = _eligible_links(tenant_id)
    if not links:
        logger.info("No eligible members for tenant %s in %s", tenant_id, period.key)
        return result

    for link in links:
        try:
            with tenant_scope(tenant_id):
                if has_existing_charge(link.member_id, period):
                    result.skipped += 1
                    CHARGES_SKIPPED.inc()
                    continue

                charge = Charge.objects.create(
                    member_id=link.member_id,
                    amount_cents=link.plan.price_cents,
                    due_date=charge_due_date,
                    status=Charge.Status.PENDING,
                    method=Charge.Method.PIX,
                )
                AuditLog.objects.create(
                    member_id=link.member_id,
                    actor_id=actor_id,
                    action=AuditLog.Action.CHARGE_GENERATED,
                    entity_id=str(charge.id),
                    entity_type="Charge",
                    metadata={
                        "amountCents": charge.amount_cents,
                        "dueDate": charge.due_date.isoformat(),
                        "billingPeriod": period.key,
                    },
                )
        except Exception as exc:
            logger.warning("Charge generation failed for member %s in tenant %s: %s", link.member_id, tenant_id, exc)
            result.errors.append({"memberId": str(link.member_id), "reason": str(exc) or "Unknown error"})
            continue

        result.generated += 1
        CHARGES_GENERATED.inc()
        summary: Dict[str, Any] = {
            "chargeId": str(charge.id),
            "memberId": str(link.member_id),
            "memberName": link.member.name,
            "amountCents": charge.amount_cents,
            "dueDate": charge.due_date.isoformat(),
        }
        result.charges.append(summary)

        try:
            with tenant_scope(tenant_id):
                member = Member.objects.only("id", "name", "cpf", "phone", "email").get(pk=link.member_id)
        except Exception as exc:
            logger.warning("Could not reload member %s for charge %s: %s", link.member_id, charge.id, exc)
            result.gateway_errors.append(
                {"chargeId": str(charge.id), "memberId": str(link.member_id), "reason": str(exc) or "Unknown error"}
            )
            continue

        outcome = dispatch_charge_to_gateway(tenant_id, charge, member, registry=registry)
        if isinstance(outcome, DispatchSuccess):
            summary.update(
                {
                    "externalId": outcome.external_id,
                    "gatewayName": outcome.gateway_name,
                    "gatewayMeta": outcome.meta,
                }
            )
        else:
            result.gateway_errors.append(
                {"chargeId": str(charge.id), "memberId": str(link.member_id), "reason": outcome.error}
            )

    log_billing_event(
        message="charges.generated",
        tenant_id=tenant_id,
        actor=actor_id,
        extra={
            "billing_period": period.key,
            "generated": result.generated,
            "skipped": result.skipped,
            "errors": len(result.errors),
            "gateway_errors": len(result.gateway_errors),
        },
    )
    return result


def mark_charges_pending_retry(tenant_id: str, billing_period: Union[str, datetime, None] = None) -> Dict[str, int]:
    """Move PENDING charges of the period to PENDING_RETRY; other statuses are left alone."""

    period = resolve_billing_period(billing_period)
    now = timezone.now()

    with tenant_scope(tenant_id):
        pending = Charge.objects.filter(
            status=Charge.Status.PENDING,
            due_date__gte=period.start,
            due_date__lte=period.end,
        )
        charge_ids = [str(pk) for pk in pending.values_list("id", flat=True)]
        updated = 0
        if charge_ids:
            updated = Charge.objects.filter(pk__in=charge_ids, status=Charge.Status.PENDING).update(
                status=Charge.Status.PENDING_RETRY,
                retry_count=F("retry_count") + 1,
                last_retry_at=now,
                updated_at=now,
            )
        if updated:
            AuditLog.objects.create(
                actor_id=SYSTEM_JOB_ACTOR,
                action=AuditLog.Action.CHARGES_MARKED_PENDING_RETRY,
                entity_id=period.key,
                entity_type="BillingPeriod",
                metadata={"billingPeriod": period.key, "updated": updated, "chargeIds": charge_ids},
            )

    if updated:
        CHARGES_MARKED_PENDING_RETRY.inc(updated)
        logger.warning("Marked %s charges PENDING_RETRY for tenant %s (%s)", updated, tenant_id, period.key)
    return {"updated": updated}
