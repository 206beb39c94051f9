"""Payment gateway adapter contract shared by every provider integration."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, Mapping, Optional


class GatewayError(RuntimeError):
    """Raised when a provider call fails (network, HTTP status or payload shape)."""


class WebhookError(GatewayError):
    """Base class for inbound webhook rejections."""


class WebhookSignatureError(WebhookError):
    """Raised when a webhook fails the provider authenticity check."""


class WebhookParseError(WebhookError):
    """Raised when an authentic webhook body cannot be decoded."""


class GatewayNotFoundError(LookupError):
    """Raised when no registered gateway matches a name or payment method."""


class GatewayAlreadyRegisteredError(RuntimeError):
    """Raised when two gateways are registered under the same name."""


class WebhookEventType:
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    PAYMENT_OVERDUE = "PAYMENT_OVERDUE"
    PAYMENT_REFUNDED = "PAYMENT_REFUNDED"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class GatewayCustomer:
    name: str
    cpf: str
    phone: str
    email: Optional[str] = None


@dataclass(frozen=True)
class CreateChargeInput:
    amount_cents: int
    due_date: datetime
    method: str
    description: str
    customer: GatewayCustomer
    idempotency_key: str


@dataclass(frozen=True)
class ChargeResult:
    external_id: str
    status: str
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WebhookEvent:
    """Provider-neutral webhook event."""

    type: str
    gateway_tx_id: str
    external_reference: Optional[str] = None
    amount_cents: Optional[int] = None
    raw_payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WebhookEvent":
        return cls(
            type=data.get("type") or WebhookEventType.UNKNOWN,
            gateway_tx_id=data.get("gateway_tx_id") or "",
            external_reference=data.get("external_reference") or None,
            amount_cents=data.get("amount_cents"),
            raw_payload=dict(data.get("raw_payload") or {}),
        )


def get_header(headers: Mapping[str, Any], name: str) -> Optional[str]:
    """Case-insensitive header lookup; multi-valued headers yield their first value."""

    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                value = candidate
                break
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    return value


class PaymentGateway(ABC):
    """Adapter around one payment provider."""

    name: str = ""
    supported_methods: FrozenSet[str] = frozenset()

    def supports(self, method: str) -> bool:
        return method in self.supported_methods

    @abstractmethod
    def create_charge(self, data: CreateChargeInput) -> ChargeResult:
        """Create the charge at the provider; ``idempotency_key`` must dedupe retries."""

    @abstractmethod
    def cancel_charge(self, external_id: str) -> None:
        """Cancel a previously created charge."""

    @abstractmethod
    def parse_webhook(self, raw_body: bytes, headers: Mapping[str, Any]) -> WebhookEvent:
        """Authenticate and normalize a webhook delivery."""
