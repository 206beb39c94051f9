"""WhatsApp dunning: send one message to a member and record the outcome."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from django.utils import timezone

from billing.constants import SYSTEM_JOB_ACTOR
from billing.models import AuditLog, Message
from billing.observability.metrics import WHATSAPP_MESSAGES
from billing.services.crypto import decrypt_field
from billing.whatsapp import SendMessageInput, WhatsAppRegistry, get_whatsapp_registry
from tenants.scope import tenant_scope

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


@dataclass(frozen=True)
class SendWhatsAppMessageResult:
    message_id: str
    status: str
    provider_message_id: Optional[str] = None
    fail_reason: Optional[str] = None


def normalize_phone(phone: str) -> str:
    return _NON_DIGITS.sub("", phone or "")


def send_whatsapp_message(
    tenant_id: str,
    member_id,
    encrypted_phone: bytes,
    template: str,
    rendered_body: str,
    *,
    actor_id: str = SYSTEM_JOB_ACTOR,
    registry: Optional[WhatsAppRegistry] = None,
) -> SendWhatsAppMessageResult:
    """
    Send ``rendered_body`` to a member over WhatsApp and persist a Message row.

    Provider failures, including a missing provider, are stored as FAILED and
    returned rather than raised. Decryption failures propagate. The Message id
    is the provider idempotency key. Callers enforce per-club rate limits.
    """

    registry = registry or get_whatsapp_registry()

    with tenant_scope(tenant_id) as connection:
        phone = decrypt_field(connection, encrypted_phone)

    with tenant_scope(tenant_id):
        message = Message.objects.create(
            member_id=member_id,
            channel=Message.Channel.WHATSAPP,
            template=template,
            status=Message.Status.PENDING,
        )

        provider_name = registry.name or "none"
        provider_message_id = None
        fail_reason = None
        try:
            provider = registry.get()
            sent = provider.send_message(
                SendMessageInput(
                    phone=normalize_phone(phone),
                    body=rendered_body,
                    idempotency_key=str(message.id),
                )
            )
        except Exception as exc:
            fail_reason = str(exc) or "Unknown provider error"
            status = Message.Status.FAILED
            logger.warning("WhatsApp message %s to member %s failed: %s", message.id, member_id, fail_reason)
        else:
            status = Message.Status.SENT
            provider_message_id = sent.provider_message_id

        message.status = status
        update_fields = ["status"]
        if status == Message.Status.SENT:
            message.sent_at = timezone.now()
            update_fields.append("sent_at")
        else:
            message.fail_reason = fail_reason
            update_fields.append("fail_reason")
        message.save(update_fields=update_fields)

        AuditLog.objects.create(
            member_id=member_id,
            actor_id=actor_id,
            action=AuditLog.Action.MESSAGE_SENT,
            entity_id=str(message.id),
            entity_type="Message",
            metadata={
                "channel": Message.Channel.WHATSAPP,
                "template": template,
                "status": status,
                "providerMessageId": provider_message_id,
                "failReason": fail_reason,
            },
        )

    WHATSAPP_MESSAGES.labels(provider=provider_name, status=status).inc()
    return SendWhatsAppMessageResult(
        message_id=str(message.id),
        status=status,
        provider_message_id=provider_message_id,
        fail_reason=fail_reason,
    )
