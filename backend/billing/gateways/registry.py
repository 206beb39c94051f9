"""Lookup of configured payment gateways by name or payment method."""
from __future__ import annotations

import logging
from typing import Dict, List

from .base import GatewayAlreadyRegisteredError, GatewayNotFoundError, PaymentGateway

logger = logging.getLogger(__name__)


class GatewayRegistry:
    """Ordered set of gateways; the first registered gateway supporting a method wins."""

    def __init__(self) -> None:
        self._gateways: Dict[str, PaymentGateway] = {}
        self._frozen = False

    def register(self, gateway: PaymentGateway) -> None:
        if self._frozen:
            raise RuntimeError("Gateway registry is frozen; register gateways during start-up.")
        key = gateway.name.lower()
        if key in self._gateways:
            raise GatewayAlreadyRegisteredError(f'Gateway "{gateway.name}" is already registered.')
        self._gateways[key] = gateway
        logger.info("Registered payment gateway %s (methods=%s)", key, sorted(gateway.supported_methods))

    def freeze(self) -> "GatewayRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> PaymentGateway:
        gateway = self._gateways.get((name or "").lower())
        if gateway is None:
            raise GatewayNotFoundError(
                f'Gateway "{name}" not found. Available: {self._available()}'
            )
        return gateway

    def for_method(self, method: str) -> PaymentGateway:
        for gateway in self._gateways.values():
            if gateway.supports(method):
                return gateway
        raise GatewayNotFoundError(
            f'No gateway supports payment method "{method}". Available: {self._available()}'
        )

    def names(self) -> List[str]:
        return list(self._gateways)

    def __contains__(self, name: str) -> bool:
        return (name or "").lower() in self._gateways

    def _available(self) -> str:
        return ", ".join(self._gateways) or "none"
