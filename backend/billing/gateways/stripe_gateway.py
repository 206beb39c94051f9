"""Stripe adapter: PIX PaymentIntents for Brazilian clubs."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional

import stripe

from .base import (
    ChargeResult,
    CreateChargeInput,
    GatewayError,
    PaymentGateway,
    WebhookEvent,
    WebhookEventType,
    WebhookParseError,
    WebhookSignatureError,
    get_header,
)

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Stripe-Signature"

_INTENT_STATUS_MAP = {
    "succeeded": "PAID",
    "canceled": "CANCELLED",
}


class StripeGateway(PaymentGateway):
    name = "stripe"
    supported_methods = frozenset({"PIX"})

    def __init__(
        self,
        *,
        secret_key: str,
        webhook_secret: str,
        currency: str = "brl",
        api_version: Optional[str] = None,
        timeout: float = 20.0,
    ) -> None:
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self.currency = currency.lower()
        self._api_version = api_version or None
        self.timeout = timeout
        # The SDK only exposes the HTTP timeout through its module-level client.
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    def _request_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {"api_key": self._secret_key}
        if self._api_version:
            options["stripe_version"] = self._api_version
        return options

    def create_charge(self, data: CreateChargeInput) -> ChargeResult:
        if not self.supports(data.method):
            raise GatewayError(f'Stripe does not support payment method "{data.method}".')

        try:
            intent = stripe.PaymentIntent.create(
                amount=data.amount_cents,
                currency=self.currency,
                payment_method_types=["pix"],
                payment_method_data={"type": "pix", "billing_details": {"name": data.customer.name, "email": data.customer.email}},
                payment_method_options={"pix": {"expires_at": int(data.due_date.timestamp())}},
                confirm=True,
                description=data.description,
                metadata={"charge_id": data.idempotency_key},
                idempotency_key=data.idempotency_key,
                **self._request_options(),
            )
        except stripe.StripeError as exc:
            raise GatewayError(f"Stripe PaymentIntent creation failed: {exc}") from exc

        qr_code = ((intent.get("next_action") or {}).get("pix_display_qr_code")) or {}
        return ChargeResult(
            external_id=intent["id"],
            status=_INTENT_STATUS_MAP.get(intent.get("status") or "", "PENDING"),
            meta={
                "pixCopyPaste": qr_code.get("data"),
                "qrCodeImageUrl": qr_code.get("image_url_png"),
                "hostedInstructionsUrl": qr_code.get("hosted_instructions_url"),
                "expiresAt": qr_code.get("expires_at"),
            },
        )

    def cancel_charge(self, external_id: str) -> None:
        try:
            stripe.PaymentIntent.cancel(external_id, **self._request_options())
        except stripe.StripeError as exc:
            raise GatewayError(f"Stripe PaymentIntent cancel failed: {exc}") from exc

    def parse_webhook(self, raw_body: bytes, headers: Mapping[str, Any]) -> WebhookEvent:
        sig_header = get_header(headers, SIGNATURE_HEADER)
        if not sig_header:
            raise WebhookSignatureError("stripe: Stripe-Signature header is missing")

        try:
            payload = raw_body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise WebhookParseError("stripe: webhook body is not valid UTF-8") from exc

        # Verify over the exact bytes before parsing anything.
        try:
            stripe.WebhookSignature.verify_header(
                payload,
                sig_header,
                self._webhook_secret,
                tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
            )
        except stripe.SignatureVerificationError as exc:
            raise WebhookSignatureError("stripe: webhook signature verification failed") from exc

        try:
            body = json.loads(payload)
        except ValueError as exc:
            raise WebhookParseError("stripe: failed to parse webhook body") from exc
        if not isinstance(body, dict):
            raise WebhookParseError("stripe: webhook body must be a JSON object")

        return _normalize_event(body)


def _normalize_event(body: Dict[str, Any]) -> WebhookEvent:
    event_type = body.get("type")
    obj = (body.get("data") or {}).get("object") or {}
    metadata = obj.get("metadata") or {}

    if event_type == "payment_intent.succeeded":
        return WebhookEvent(
            type=WebhookEventType.PAYMENT_RECEIVED,
            gateway_tx_id=obj.get("id") or "",
            external_reference=metadata.get("charge_id"),
            amount_cents=obj.get("amount_received"),
            raw_payload=body,
        )

    if event_type == "charge.refunded":
        return WebhookEvent(
            type=WebhookEventType.PAYMENT_REFUNDED,
            gateway_tx_id=obj.get("id") or "",
            external_reference=metadata.get("charge_id"),
            amount_cents=obj.get("amount_refunded"),
            raw_payload=body,
        )

    return WebhookEvent(
        type=WebhookEventType.UNKNOWN,
        gateway_tx_id=obj.get("id") or body.get("id") or "",
        external_reference=metadata.get("charge_id"),
        raw_payload=body,
    )
