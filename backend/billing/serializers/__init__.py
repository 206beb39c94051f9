"""DRF serializers for the billing API."""
from __future__ import annotations

from typing import Any, Dict

from django.utils.translation import gettext_lazy as _
from rest_framework import serializers

from billing.services.charges import (
    InvalidBillingPeriodError,
    parse_datetime_utc,
    resolve_billing_period,
    resolve_due_date,
)


class ChargeGenerationRequestSerializer(serializers.Serializer):
    """Body of a manual charge generation request; both fields are optional."""

    billingPeriod = serializers.CharField(required=False, allow_blank=True)
    dueDate = serializers.CharField(required=False, allow_blank=True)

    def validate_billingPeriod(self, value: str) -> str:
        if not value:
            return value
        try:
            resolve_billing_period(value)
        except InvalidBillingPeriodError as exc:
            raise serializers.ValidationError(_("Use YYYY-MM or an ISO-8601 timestamp.")) from exc
        return value

    def validate_dueDate(self, value: str) -> str:
        if not value:
            return value
        try:
            parse_datetime_utc(value)
        except InvalidBillingPeriodError as exc:
            raise serializers.ValidationError(_("Use an ISO-8601 timestamp.")) from exc
        return value

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        due_date = attrs.get("dueDate")
        if due_date:
            period = resolve_billing_period(attrs.get("billingPeriod") or None)
            try:
                resolve_due_date(period, due_date)
            except InvalidBillingPeriodError as exc:
                raise serializers.ValidationError(
                    {"dueDate": _("Due date must fall inside billing period %(period)s.") % {"period": period.key}}
                ) from exc
        return attrs

    def to_service_kwargs(self) -> Dict[str, Any]:
        data = self.validated_data
        return {
            "billing_period": data.get("billingPeriod") or None,
            "due_date": data.get("dueDate") or None,
        }
