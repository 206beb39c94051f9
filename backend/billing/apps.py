import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class BillingConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'billing'
    verbose_name = 'Club Billing'

    gateway_registry = None
    whatsapp_registry = None

    def ready(self):
        from .gateways import build_gateway_registry
        from .services.crypto import get_encryption_key
        from .whatsapp import build_whatsapp_registry

        # Missing PII key or gateway credentials abort startup.
        get_encryption_key()
        self.gateway_registry = build_gateway_registry()
        self.whatsapp_registry = build_whatsapp_registry()
        logger.info(
            "Billing ready with gateways: %s; WhatsApp provider: %s",
            ", ".join(self.gateway_registry.names()) or "none",
            self.whatsapp_registry.name or "none",
        )
