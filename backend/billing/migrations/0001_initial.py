import uuid

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Plan",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=120)),
                ("description", models.TextField(blank=True)),
                ("price_cents", models.PositiveIntegerField(help_text="Price per interval in minor currency units.", validators=[django.core.validators.MinValueValidator(1)])),
                ("interval", models.CharField(choices=[("monthly", "Monthly"), ("quarterly", "Quarterly"), ("annual", "Annual")], default="monthly", max_length=16)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "plans",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Member",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=200)),
                ("cpf", models.BinaryField(help_text="pgp_sym_encrypt(cpf, MEMBER_ENCRYPTION_KEY)")),
                ("phone", models.BinaryField(help_text="pgp_sym_encrypt(phone, MEMBER_ENCRYPTION_KEY)")),
                ("email", models.EmailField(blank=True, max_length=254, null=True)),
                ("status", models.CharField(choices=[("ACTIVE", "Active"), ("INACTIVE", "Inactive"), ("OVERDUE", "Overdue")], default="ACTIVE", max_length=16)),
                ("joined_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "members",
                "ordering": ["created_at", "id"],
                "indexes": [models.Index(fields=["status"], name="members_status_idx")],
            },
        ),
        migrations.CreateModel(
            name="MemberPlan",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("started_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("ended_at", models.DateTimeField(blank=True, null=True)),
                ("member", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="plan_links", to="billing.member")),
                ("plan", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="member_links", to="billing.plan")),
            ],
            options={
                "db_table": "member_plans",
                "ordering": ["started_at", "id"],
                "constraints": [models.UniqueConstraint(fields=("member", "plan"), name="member_plans_member_plan_uniq")],
            },
        ),
        migrations.CreateModel(
            name="Charge",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("amount_cents", models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ("due_date", models.DateTimeField()),
                ("status", models.CharField(choices=[("PENDING", "Pending"), ("PAID", "Paid"), ("OVERDUE", "Overdue"), ("CANCELLED", "Cancelled"), ("PENDING_RETRY", "Pending retry")], default="PENDING", max_length=16)),
                ("method", models.CharField(choices=[("PIX", "PIX"), ("CREDIT_CARD", "Credit card"), ("DEBIT_CARD", "Debit card"), ("BOLETO", "Boleto"), ("CASH", "Cash"), ("BANK_TRANSFER", "Bank transfer")], default="PIX", max_length=16)),
                ("gateway_name", models.CharField(blank=True, max_length=50, null=True)),
                ("external_id", models.CharField(blank=True, help_text="Identifier assigned by the payment gateway.", max_length=255, null=True)),
                ("gateway_meta", models.JSONField(blank=True, help_text="Provider artefacts such as PIX QR code or boleto URL.", null=True)),
                ("retry_count", models.PositiveIntegerField(default=0)),
                ("last_retry_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("member", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="charges", to="billing.member")),
            ],
            options={
                "db_table": "charges",
                "ordering": ["-due_date", "id"],
                "indexes": [
                    models.Index(fields=["member", "due_date"], name="charges_member_due_idx"),
                    models.Index(fields=["status", "due_date"], name="charges_status_due_idx"),
                    models.Index(fields=["external_id"], name="charges_external_id_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("paid_at", models.DateTimeField()),
                ("method", models.CharField(choices=[("PIX", "PIX"), ("CREDIT_CARD", "Credit card"), ("DEBIT_CARD", "Debit card"), ("BOLETO", "Boleto"), ("CASH", "Cash"), ("BANK_TRANSFER", "Bank transfer")], max_length=16)),
                ("amount_cents", models.PositiveIntegerField()),
                ("gateway_txid", models.CharField(max_length=255, unique=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("charge", models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name="payment", to="billing.charge")),
            ],
            options={
                "db_table": "payments",
                "ordering": ["-paid_at"],
            },
        ),
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("actor_id", models.CharField(help_text="User id or system actor (system:cron, system:webhook).", max_length=255)),
                ("action", models.CharField(choices=[("CHARGE_GENERATED", "Charge generated"), ("CHARGES_MARKED_PENDING_RETRY", "Charges marked pending retry"), ("PAYMENT_CONFIRMED", "Payment confirmed")], max_length=40)),
                ("entity_id", models.CharField(blank=True, max_length=255)),
                ("entity_type", models.CharField(max_length=50)),
                ("metadata", models.JSONField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("member", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="audit_entries", to="billing.member")),
            ],
            options={
                "db_table": "audit_log",
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["entity_type", "entity_id"], name="audit_log_entity_idx"),
                    models.Index(fields=["action"], name="audit_log_action_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEventLog",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("task_id", models.CharField(help_text="Deterministic id webhook:<gateway>:<gateway tx id>.", max_length=255, unique=True)),
                ("gateway_name", models.CharField(max_length=50)),
                ("gateway_txid", models.CharField(blank=True, max_length=255)),
                ("event_type", models.CharField(blank=True, max_length=40)),
                ("payload", models.JSONField(blank=True, help_text="Normalized webhook event.", null=True)),
                ("status", models.CharField(choices=[("received", "Received"), ("processing", "Processing"), ("processed", "Processed"), ("failed", "Failed")], default="received", max_length=20)),
                ("outcome", models.CharField(blank=True, help_text="Handler result or guard reason.", max_length=64)),
                ("tenant_id", models.CharField(blank=True, help_text="Tenant resolved for this event.", max_length=30)),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("last_error", models.TextField(blank=True)),
                ("handled", models.BooleanField(default=False, help_text="True once the event has been fully processed.")),
                ("last_received_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "verbose_name": "Webhook event log",
                "verbose_name_plural": "Webhook event logs",
                "db_table": "billing_webhook_event_log",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status"], name="webhook_event_status_idx"),
                    models.Index(fields=["gateway_name", "event_type"], name="webhook_event_gw_type_idx"),
                ],
            },
        ),
    ]
