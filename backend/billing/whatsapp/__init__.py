"""WhatsApp providers for dunning messages and their start-up bootstrap."""
from __future__ import annotations

import logging
from typing import Optional

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from .base import (
    SendMessageInput,
    SendMessageResult,
    WhatsAppProvider,
    WhatsAppProviderError,
    WhatsAppProviderNotConfiguredError,
)
from .registry import WhatsAppRegistry

logger = logging.getLogger(__name__)

__all__ = [
    "SendMessageInput",
    "SendMessageResult",
    "WhatsAppProvider",
    "WhatsAppProviderError",
    "WhatsAppProviderNotConfiguredError",
    "WhatsAppRegistry",
    "build_whatsapp_registry",
    "get_whatsapp_registry",
]


def build_whatsapp_registry(provider_path: Optional[str] = None) -> WhatsAppRegistry:
    """Instantiate the provider class named by ``WHATSAPP_PROVIDER`` and freeze the registry."""

    if provider_path is None:
        provider_path = getattr(settings, "WHATSAPP_PROVIDER", "")

    registry = WhatsAppRegistry()
    if provider_path:
        try:
            provider_class = import_string(provider_path)
        except ImportError as exc:
            raise ImproperlyConfigured(f'Cannot import WhatsApp provider "{provider_path}": {exc}') from exc
        if not (isinstance(provider_class, type) and issubclass(provider_class, WhatsAppProvider)):
            raise ImproperlyConfigured(f'"{provider_path}" is not a WhatsAppProvider subclass.')
        registry.register(provider_class())
    else:
        logger.warning("No WhatsApp provider configured; dunning messages will be recorded as FAILED.")
    return registry.freeze()


def get_whatsapp_registry() -> WhatsAppRegistry:
    """Return the registry built when the billing app started."""

    from django.apps import apps

    return apps.get_app_config("billing").whatsapp_registry
