"""Billing models: club plans, members, monthly charges, payments, dunning messages and the webhook receipt log.

Everything except ``WebhookEventLog`` lives in the tenant schema selected by
``tenants.scope.tenant_scope``.
"""
import uuid

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone


class Plan(models.Model):
    """A membership plan priced in integer minor units (centavos)."""

    class Interval(models.TextChoices):
        MONTHLY = "monthly", "Monthly"
        QUARTERLY = "quarterly", "Quarterly"
        ANNUAL = "annual", "Annual"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=120)
    description = models.TextField(blank=True)
    price_cents = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text="Price per interval in minor currency units.",
    )
    interval = models.CharField(max_length=16, choices=Interval.choices, default=Interval.MONTHLY)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "plans"
        ordering = ["name"]

    def __str__(self):
        return f"Plan<{self.name}:{self.price_cents}>"


class Member(models.Model):
    """A club member; ``cpf`` and ``phone`` are stored pgcrypto-encrypted."""

    class Status(models.TextChoices):
        ACTIVE = "ACTIVE", "Active"
        INACTIVE = "INACTIVE", "Inactive"
        OVERDUE = "OVERDUE", "Overdue"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    cpf = models.BinaryField(help_text="pgp_sym_encrypt(cpf, MEMBER_ENCRYPTION_KEY)")
    phone = models.BinaryField(help_text="pgp_sym_encrypt(phone, MEMBER_ENCRYPTION_KEY)")
    email = models.EmailField(blank=True, null=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)
    joined_at = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "members"
        ordering = ["created_at", "id"]
        indexes = [models.Index(fields=["status"], name="members_status_idx")]

    def __str__(self):
        return f"Member<{self.name}:{self.status}>"


class MemberPlan(models.Model):
    """Subscription link between a member and a plan; open while ``ended_at`` is null."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    member = models.ForeignKey(Member, on_delete=models.CASCADE, related_name="plan_links")
    plan = models.ForeignKey(Plan, on_delete=models.PROTECT, related_name="member_links")
    started_at = models.DateTimeField(default=timezone.now)
    ended_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "member_plans"
        ordering = ["started_at", "id"]
        constraints = [
            models.UniqueConstraint(fields=["member", "plan"], name="member_plans_member_plan_uniq"),
        ]

    def __str__(self):
        return f"MemberPlan<{self.member_id}:{self.plan_id}>"


class Charge(models.Model):
    """One billing-period charge for a member."""

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PAID = "PAID", "Paid"
        OVERDUE = "OVERDUE", "Overdue"
        CANCELLED = "CANCELLED", "Cancelled"
        PENDING_RETRY = "PENDING_RETRY", "Pending retry"

    class Method(models.TextChoices):
        PIX = "PIX", "PIX"
        CREDIT_CARD = "CREDIT_CARD", "Credit card"
        DEBIT_CARD = "DEBIT_CARD", "Debit card"
        BOLETO = "BOLETO", "Boleto"
        CASH = "CASH", "Cash"
        BANK_TRANSFER = "BANK_TRANSFER", "Bank transfer"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    member = models.ForeignKey(Member, on_delete=models.PROTECT, related_name="charges")
    amount_cents = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    due_date = models.DateTimeField()
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    method = models.CharField(max_length=16, choices=Method.choices, default=Method.PIX)
    gateway_name = models.CharField(max_length=50, blank=True, null=True)
    external_id = models.CharField(
        max_length=255,
        blank=True,
        null=True,
        help_text="Identifier assigned by the payment gateway.",
    )
    gateway_meta = models.JSONField(
        blank=True,
        null=True,
        help_text="Provider artefacts such as PIX QR code or boleto URL.",
    )
    retry_count = models.PositiveIntegerField(default=0)
    last_retry_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "charges"
        ordering = ["-due_date", "id"]
        indexes = [
            models.Index(fields=["member", "due_date"], name="charges_member_due_idx"),
            models.Index(fields=["status", "due_date"], name="charges_status_due_idx"),
            models.Index(fields=["external_id"], name="charges_external_id_idx"),
        ]

    def __str__(self):
        return f"Charge<{self.id}:{self.status}>"


class Payment(models.Model):
    """Confirmed settlement of a charge. Rows are immutable once written."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    charge = models.OneToOneField(Charge, on_delete=models.PROTECT, related_name="payment")
    paid_at = models.DateTimeField()
    method = models.CharField(max_length=16, choices=Charge.Method.choices)
    amount_cents = models.PositiveIntegerField()
    gateway_txid = models.CharField(max_length=255, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "payments"
        ordering = ["-paid_at"]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Payment records are immutable and cannot be updated.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Payment records are immutable and cannot be deleted.")

    def __str__(self):
        return f"Payment<{self.gateway_txid}:{self.amount_cents}>"


class Message(models.Model):
    """One outbound dunning message and its delivery result."""

    class Channel(models.TextChoices):
        WHATSAPP = "WHATSAPP", "WhatsApp"
        EMAIL = "EMAIL", "Email"

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        SENT = "SENT", "Sent"
        FAILED = "FAILED", "Failed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    member = models.ForeignKey(Member, on_delete=models.CASCADE, related_name="messages")
    channel = models.CharField(max_length=16, choices=Channel.choices)
    template = models.CharField(max_length=100, help_text="Template id, e.g. charge_reminder_d3.")
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    sent_at = models.DateTimeField(null=True, blank=True)
    fail_reason = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "messages"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["member"], name="messages_member_idx"),
            models.Index(fields=["status"], name="messages_status_idx"),
        ]

    def __str__(self):
        return f"Message<{self.channel}:{self.template}:{self.status}>"


class AuditLog(models.Model):
    """Append-only trail of billing actions inside a tenant."""

    class Action(models.TextChoices):
        CHARGE_GENERATED = "CHARGE_GENERATED", "Charge generated"
        CHARGES_MARKED_PENDING_RETRY = "CHARGES_MARKED_PENDING_RETRY", "Charges marked pending retry"
        PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED", "Payment confirmed"
        MESSAGE_SENT = "MESSAGE_SENT", "Message sent"

    id = models.BigAutoField(primary_key=True)
    member = models.ForeignKey(
        Member,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_entries",
    )
    actor_id = models.CharField(max_length=255, help_text="User id or system actor (system:cron, system:webhook).")
    action = models.CharField(max_length=40, choices=Action.choices)
    entity_id = models.CharField(max_length=255, blank=True)
    entity_type = models.CharField(max_length=50)
    metadata = models.JSONField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "audit_log"
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["entity_type", "entity_id"], name="audit_log_entity_idx"),
            models.Index(fields=["action"], name="audit_log_action_idx"),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Audit log entries are append-only.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Audit log entries are append-only.")

    def __str__(self):
        return f"AuditLog<{self.action}:{self.entity_type}:{self.entity_id}>"


class WebhookEventLog(models.Model):
    """Receipt log for gateway webhooks, keyed by the queue task id."""

    class Status(models.TextChoices):
        RECEIVED = "received", "Received"
        PROCESSING = "processing", "Processing"
        PROCESSED = "processed", "Processed"
        FAILED = "failed", "Failed"

    id = models.BigAutoField(primary_key=True)
    task_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Deterministic id webhook:<gateway>:<gateway tx id>.",
    )
    gateway_name = models.CharField(max_length=50)
    gateway_txid = models.CharField(max_length=255, blank=True)
    event_type = models.CharField(max_length=40, blank=True)
    payload = models.JSONField(blank=True, null=True, help_text="Normalized webhook event.")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.RECEIVED)
    outcome = models.CharField(max_length=64, blank=True, help_text="Handler result or guard reason.")
    tenant_id = models.CharField(max_length=30, blank=True, help_text="Tenant resolved for this event.")
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)
    handled = models.BooleanField(default=False, help_text="True once the event has been fully processed.")
    last_received_at = models.DateTimeField(default=timezone.now)
    processed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "billing_webhook_event_log"
        verbose_name = "Webhook event log"
        verbose_name_plural = "Webhook event logs"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="webhook_event_status_idx"),
            models.Index(fields=["gateway_name", "event_type"], name="webhook_event_gw_type_idx"),
        ]

    def __str__(self):
        return f"WebhookEventLog<{self.task_id}:{self.status}>"
