import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("billing", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Message",
            fields=[
                (
                    "id",
                    models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False),
                ),
                (
                    "channel",
                    models.CharField(choices=[("WHATSAPP", "WhatsApp"), ("EMAIL", "Email")], max_length=16),
                ),
                (
                    "template",
                    models.CharField(help_text="Template id, e.g. charge_reminder_d3.", max_length=100),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("PENDING", "Pending"), ("SENT", "Sent"), ("FAILED", "Failed")],
                        default="PENDING",
                        max_length=16,
                    ),
                ),
                ("sent_at", models.DateTimeField(blank=True, null=True)),
                ("fail_reason", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "member",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="messages",
                        to="billing.member",
                    ),
                ),
            ],
            options={
                "db_table": "messages",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["member"], name="messages_member_idx"),
                    models.Index(fields=["status"], name="messages_status_idx"),
                ],
            },
        ),
        migrations.AlterField(
            model_name="auditlog",
            name="action",
            field=models.CharField(
                choices=[
                    ("CHARGE_GENERATED", "Charge generated"),
                    ("CHARGES_MARKED_PENDING_RETRY", "Charges marked pending retry"),
                    ("PAYMENT_CONFIRMED", "Payment confirmed"),
                    ("MESSAGE_SENT", "Message sent"),
                ],
                max_length=40,
            ),
        ),
    ]
