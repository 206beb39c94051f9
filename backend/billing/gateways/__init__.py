"""Payment gateway adapters and the start-up registry bootstrap."""
from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, Optional

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from .base import (
    ChargeResult,
    CreateChargeInput,
    GatewayAlreadyRegisteredError,
    GatewayCustomer,
    GatewayError,
    GatewayNotFoundError,
    PaymentGateway,
    WebhookEvent,
    WebhookEventType,
    WebhookParseError,
    WebhookSignatureError,
)
from .registry import GatewayRegistry

logger = logging.getLogger(__name__)

__all__ = [
    "ChargeResult",
    "CreateChargeInput",
    "GatewayAlreadyRegisteredError",
    "GatewayCustomer",
    "GatewayError",
    "GatewayNotFoundError",
    "GatewayRegistry",
    "PaymentGateway",
    "WebhookEvent",
    "WebhookEventType",
    "WebhookParseError",
    "WebhookSignatureError",
    "build_gateway_registry",
    "get_gateway_registry",
]


def _require(name: str) -> str:
    value = getattr(settings, name, "")
    if not value:
        raise ImproperlyConfigured(f"{name} must be set to enable this payment gateway.")
    return value


def _build_asaas() -> PaymentGateway:
    from .asaas import AsaasGateway

    return AsaasGateway(
        api_key=_require("ASAAS_API_KEY"),
        webhook_secret=_require("ASAAS_WEBHOOK_SECRET"),
        sandbox=getattr(settings, "ASAAS_SANDBOX", True),
        timeout=getattr(settings, "PAYMENT_GATEWAY_TIMEOUT_SECONDS", 20.0),
    )


def _build_stripe() -> PaymentGateway:
    from .stripe_gateway import StripeGateway

    return StripeGateway(
        secret_key=_require("STRIPE_SECRET_KEY"),
        webhook_secret=_require("STRIPE_WEBHOOK_SECRET"),
        currency=getattr(settings, "STRIPE_CURRENCY", "brl"),
        api_version=getattr(settings, "STRIPE_API_VERSION", "") or None,
        timeout=getattr(settings, "PAYMENT_GATEWAY_TIMEOUT_SECONDS", 20.0),
    )


GATEWAY_FACTORIES: Dict[str, Callable[[], PaymentGateway]] = {
    "asaas": _build_asaas,
    "stripe": _build_stripe,
}


def build_gateway_registry(names: Optional[Iterable[str]] = None) -> GatewayRegistry:
    """Instantiate the configured gateways in order and freeze the registry."""

    if names is None:
        names = getattr(settings, "PAYMENT_GATEWAYS", [])

    registry = GatewayRegistry()
    for name in names:
        factory = GATEWAY_FACTORIES.get(name.lower())
        if factory is None:
            raise ImproperlyConfigured(
                f'Unknown payment gateway "{name}". Known gateways: {", ".join(GATEWAY_FACTORIES)}'
            )
        registry.register(factory())

    if not registry.names():
        logger.warning("No payment gateways configured; only offline payment methods can be dispatched.")
    return registry.freeze()


def get_gateway_registry() -> GatewayRegistry:
    """Return the registry built when the billing app started."""

    from django.apps import apps

    return apps.get_app_config("billing").gateway_registry
