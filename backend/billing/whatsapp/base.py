"""WhatsApp provider contract used for member dunning messages."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict


class WhatsAppProviderError(RuntimeError):
    """Raised by providers on any send failure."""

    def __init__(self, message: str, provider_name: str = "") -> None:
        super().__init__(message)
        self.provider_name = provider_name


class WhatsAppProviderNotConfiguredError(LookupError):
    """Raised when a message is sent before a provider was registered."""


@dataclass(frozen=True)
class SendMessageInput:
    # Digits only, country code first and no leading "+".
    phone: str
    body: str
    idempotency_key: str


@dataclass(frozen=True)
class SendMessageResult:
    provider_message_id: str
    raw_response: Dict[str, Any] = field(default_factory=dict)


class WhatsAppProvider(ABC):
    """Adapter around one WhatsApp messaging provider."""

    name: str = ""

    @abstractmethod
    def send_message(self, data: SendMessageInput) -> SendMessageResult:
        """Send ``data.body`` to one recipient; raise ``WhatsAppProviderError`` on failure."""
