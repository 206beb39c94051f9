"""Manual charge generation endpoint for club staff."""
from __future__ import annotations

from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from billing.gateways import get_gateway_registry
from billing.observability.logging import log_billing_event
from billing.observability.metrics import BILLING_REQUEST_COUNT, BILLING_REQUEST_LATENCY
from billing.serializers import ChargeGenerationRequestSerializer
from billing.services.charges import NoActivePlanError, generate_monthly_charges
from tenants.scope import InvalidTenantIdError


class BillingMetricsMixin:
    endpoint_label: str = "billing"
    method: str = "POST"

    def _record_request(self, status: int) -> None:
        BILLING_REQUEST_COUNT.labels(
            endpoint=self.endpoint_label,
            method=self.method,
            status=str(status),
        ).inc()

    def _error_response(self, *, status: int, code: str, message: str, details=None, tenant_id=None):
        self._record_request(status)
        log_billing_event(
            message=message,
            tenant_id=tenant_id,
            extra={"code": code, "details": details or {}},
        )
        return Response({"code": code, "message": message, "details": details or {}}, status=status)


class ChargeGenerationView(BillingMetricsMixin, APIView):
    """Generate the current (or requested) period's charges for the caller's club."""

    permission_classes = [IsAuthenticated]
    endpoint_label = "charges.generate"

    def post(self, request):
        with BILLING_REQUEST_LATENCY.labels(endpoint=self.endpoint_label, method=self.method).time():
            tenant = request.user.tenants.order_by("created_at", "id").first()
            if tenant is None:
                return self._error_response(
                    status=403,
                    code="no_tenant",
                    message="User is not attached to any club.",
                )

            serializer = ChargeGenerationRequestSerializer(data=request.data)
            if not serializer.is_valid():
                return self._error_response(
                    status=400,
                    code="invalid_payload",
                    message="Invalid charge generation request.",
                    details=serializer.errors,
                    tenant_id=tenant.id,
                )

            try:
                result = generate_monthly_charges(
                    tenant.id,
                    str(request.user.pk),
                    registry=get_gateway_registry(),
                    **serializer.to_service_kwargs(),
                )
            except NoActivePlanError as exc:
                return self._error_response(
                    status=422,
                    code=NoActivePlanError.code,
                    message=str(exc),
                    tenant_id=tenant.id,
                )
            except InvalidTenantIdError as exc:
                return self._error_response(status=400, code="invalid_tenant", message=str(exc))

            self._record_request(200)
            log_billing_event(
                message="charges.generate.manual",
                tenant_id=tenant.id,
                actor=str(request.user.pk),
                extra={"generated": result.generated, "skipped": result.skipped},
            )
            return Response(result.as_dict(), status=200)
