"""Holder for the single active WhatsApp provider."""
from __future__ import annotations

import logging
from typing import Optional

from .base import WhatsAppProvider, WhatsAppProviderNotConfiguredError

logger = logging.getLogger(__name__)


class WhatsAppRegistry:
    """A club talks to members through exactly one provider at a time."""

    def __init__(self) -> None:
        self._provider: Optional[WhatsAppProvider] = None
        self._frozen = False

    def register(self, provider: WhatsAppProvider) -> None:
        if self._frozen:
            raise RuntimeError("WhatsApp registry is frozen; register the provider during start-up.")
        if self._provider is not None:
            logger.info("Replacing WhatsApp provider %s with %s", self._provider.name, provider.name)
        self._provider = provider
        logger.info("Registered WhatsApp provider %s", provider.name)

    def freeze(self) -> "WhatsAppRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self) -> WhatsAppProvider:
        if self._provider is None:
            raise WhatsAppProviderNotConfiguredError(
                "No WhatsApp provider registered. Set WHATSAPP_PROVIDER to a provider class path."
            )
        return self._provider

    @property
    def name(self) -> Optional[str]:
        return self._provider.name if self._provider is not None else None
