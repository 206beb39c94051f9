import django.core.validators
from django.conf import settings
from django.db import migrations, models

import tenants.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Tenant",
            fields=[
                ("id", models.CharField(default=tenants.models.generate_tenant_id, editable=False, help_text="Schema-safe identifier for the club", max_length=30, primary_key=True, serialize=False, validators=[django.core.validators.RegexValidator("^[a-z0-9]{20,30}$", "Tenant id must be 20-30 lowercase alphanumerics.")])),
                ("name", models.CharField(help_text="Club display name", max_length=200)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("staff", models.ManyToManyField(blank=True, help_text="Users allowed to operate billing for this club", related_name="tenants", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Tenant",
                "verbose_name_plural": "Tenants",
                "db_table": "tenants_tenant",
                "ordering": ["created_at", "id"],
            },
        ),
    ]
