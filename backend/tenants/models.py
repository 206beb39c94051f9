import secrets
import string

from django.conf import settings
from django.core.validators import RegexValidator
from django.db import models

TENANT_ID_PATTERN = r"^[a-z0-9]{20,30}$"
TENANT_ID_LENGTH = 25
TENANT_SCHEMA_PREFIX = "clube_"

_ALPHABET = string.ascii_lowercase + string.digits


def generate_tenant_id() -> str:
    """
    Generate a collision-resistant tenant identifier.

    The identifier always starts with a letter and is made only of lowercase
    letters and digits, so it can be embedded verbatim in a schema name.
    """
    head = secrets.choice(string.ascii_lowercase)
    tail = "".join(secrets.choice(_ALPHABET) for _ in range(TENANT_ID_LENGTH - 1))
    return head + tail


class Tenant(models.Model):
    """
    Tenant model - one club using the billing platform.

    Each tenant owns an isolated PostgreSQL schema holding its members,
    plans, charges, payments and audit log. Staff users attached to the
    tenant may trigger charge generation manually.
    """

    id = models.CharField(
        primary_key=True,
        max_length=30,
        default=generate_tenant_id,
        editable=False,
        validators=[RegexValidator(TENANT_ID_PATTERN, "Tenant id must be 20-30 lowercase alphanumerics.")],
        help_text="Schema-safe identifier for the club",
    )
    name = models.CharField(max_length=200, help_text="Club display name")
    staff = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        related_name="tenants",
        blank=True,
        help_text="Users allowed to operate billing for this club",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "tenants_tenant"
        ordering = ["created_at", "id"]
        verbose_name = "Tenant"
        verbose_name_plural = "Tenants"

    def __str__(self):
        return f"{self.name} ({self.id})"

    @property
    def schema_name(self) -> str:
        return f"{TENANT_SCHEMA_PREFIX}{self.id}"
