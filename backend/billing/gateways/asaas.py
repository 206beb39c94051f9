"""Asaas payment gateway adapter (PIX, boleto and cards)."""
from __future__ import annotations

import hmac
import json
import logging
from typing import Any, Dict, Mapping, Optional

import requests

from .base import (
    ChargeResult,
    CreateChargeInput,
    GatewayCustomer,
    GatewayError,
    PaymentGateway,
    WebhookEvent,
    WebhookEventType,
    WebhookParseError,
    WebhookSignatureError,
    get_header,
)

logger = logging.getLogger(__name__)

SANDBOX_BASE_URL = "https://sandbox.asaas.com/api/v3"
PRODUCTION_BASE_URL = "https://www.asaas.com/api/v3"

WEBHOOK_TOKEN_HEADER = "asaas-access-token"

METHOD_TO_BILLING_TYPE = {
    "PIX": "PIX",
    "CREDIT_CARD": "CREDIT_CARD",
    "DEBIT_CARD": "DEBIT_CARD",
    "BOLETO": "BOLETO",
}

EVENT_TYPE_MAP = {
    "PAYMENT_RECEIVED": WebhookEventType.PAYMENT_RECEIVED,
    "PAYMENT_CONFIRMED": WebhookEventType.PAYMENT_RECEIVED,
    "PAYMENT_OVERDUE": WebhookEventType.PAYMENT_OVERDUE,
    "PAYMENT_REFUNDED": WebhookEventType.PAYMENT_REFUNDED,
    "PAYMENT_CHARGEBACK_REQUESTED": WebhookEventType.PAYMENT_REFUNDED,
}

_STATUS_MAP = {
    "RECEIVED": "PAID",
    "CONFIRMED": "PAID",
    "RECEIVED_IN_CASH": "PAID",
    "OVERDUE": "OVERDUE",
    "REFUNDED": "CANCELLED",
    "DELETED": "CANCELLED",
}


class AsaasGateway(PaymentGateway):
    name = "asaas"
    supported_methods = frozenset(METHOD_TO_BILLING_TYPE)

    def __init__(
        self,
        *,
        api_key: str,
        webhook_secret: str,
        sandbox: bool = True,
        timeout: float = 20.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = SANDBOX_BASE_URL if sandbox else PRODUCTION_BASE_URL
        self.timeout = timeout
        self._webhook_secret = webhook_secret
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "access_token": api_key,
                "Content-Type": "application/json",
                "User-Agent": "club-billing",
            }
        )

    # ------------------------------------------------------------------
    # Charges
    # ------------------------------------------------------------------
    def create_charge(self, data: CreateChargeInput) -> ChargeResult:
        billing_type = METHOD_TO_BILLING_TYPE.get(data.method)
        if billing_type is None:
            raise GatewayError(f'Asaas does not support payment method "{data.method}".')

        # A previous attempt may have reached Asaas before failing locally.
        payment = self._find_payment_by_reference(data.idempotency_key)
        if payment is None:
            customer_id = self._ensure_customer(data.customer)
            payment = self._request(
                "POST",
                "/payments",
                json={
                    "customer": customer_id,
                    "billingType": billing_type,
                    "value": data.amount_cents / 100,
                    "dueDate": data.due_date.date().isoformat(),
                    "description": data.description,
                    "externalReference": data.idempotency_key,
                },
            )
        else:
            logger.info(
                "Reusing Asaas payment %s for idempotency key %s",
                payment.get("id"),
                data.idempotency_key,
            )

        external_id = payment.get("id")
        if not external_id:
            raise GatewayError("Asaas response did not include a payment id.")

        return ChargeResult(
            external_id=external_id,
            status=_STATUS_MAP.get(payment.get("status") or "", "PENDING"),
            meta=self._build_meta(data.method, payment),
        )

    def cancel_charge(self, external_id: str) -> None:
        self._request("DELETE", f"/payments/{external_id}")

    def _find_payment_by_reference(self, reference: str) -> Optional[Dict[str, Any]]:
        body = self._request("GET", "/payments", params={"externalReference": reference})
        for payment in body.get("data") or []:
            if not payment.get("deleted"):
                return payment
        return None

    def _ensure_customer(self, customer: GatewayCustomer) -> str:
        body = self._request("GET", "/customers", params={"cpfCnpj": customer.cpf})
        existing = body.get("data") or []
        if existing:
            return existing[0]["id"]

        payload = {
            "name": customer.name,
            "cpfCnpj": customer.cpf,
            "mobilePhone": customer.phone,
        }
        if customer.email:
            payload["email"] = customer.email
        created = self._request("POST", "/customers", json=payload)
        return created["id"]

    def _build_meta(self, method: str, payment: Dict[str, Any]) -> Dict[str, Any]:
        if method == "PIX":
            qr_code = payment.get("pixQrCode") or self._request("GET", f"/payments/{payment['id']}/pixQrCode")
            return {
                "qrCodeBase64": qr_code.get("encodedImage"),
                "pixCopyPaste": qr_code.get("payload"),
            }
        if method == "BOLETO":
            return {
                "bankSlipUrl": payment.get("bankSlipUrl"),
                "invoiceUrl": payment.get("invoiceUrl"),
            }
        if method in {"CREDIT_CARD", "DEBIT_CARD"}:
            return {"invoiceUrl": payment.get("invoiceUrl")}
        return {}

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise GatewayError(f"Asaas request {method} {path} failed: {exc}") from exc

        if not response.ok:
            raise GatewayError(f"Asaas request {method} {path} failed [{response.status_code}]: {response.text}")

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise GatewayError(f"Asaas returned a non-JSON body for {method} {path}.") from exc

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------
    def parse_webhook(self, raw_body: bytes, headers: Mapping[str, Any]) -> WebhookEvent:
        self._verify_token(get_header(headers, WEBHOOK_TOKEN_HEADER))

        try:
            body = json.loads(raw_body)
        except (TypeError, ValueError) as exc:
            raise WebhookParseError("asaas: failed to parse webhook body") from exc
        if not isinstance(body, dict):
            raise WebhookParseError("asaas: webhook body must be a JSON object")

        payment = body.get("payment") or {}
        value = payment.get("value")

        return WebhookEvent(
            type=EVENT_TYPE_MAP.get(body.get("event"), WebhookEventType.UNKNOWN),
            gateway_tx_id=payment.get("nossoNumero") or payment.get("id") or "",
            external_reference=payment.get("externalReference"),
            amount_cents=round(value * 100) if isinstance(value, (int, float)) else None,
            raw_payload=body,
        )

    def _verify_token(self, token: Optional[str]) -> None:
        if not token:
            raise WebhookSignatureError("asaas: missing webhook access token")
        if not hmac.compare_digest(token.encode("utf-8"), self._webhook_secret.encode("utf-8")):
            raise WebhookSignatureError("asaas: invalid webhook access token")
