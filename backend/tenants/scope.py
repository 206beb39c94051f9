"""Per-tenant unit of work: transaction plus schema selection."""
from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from typing import Iterator

from django.db import DEFAULT_DB_ALIAS, connections, transaction

from tenants.models import TENANT_ID_PATTERN, TENANT_SCHEMA_PREFIX

logger = logging.getLogger(__name__)

_TENANT_ID_RE = re.compile(TENANT_ID_PATTERN)


class InvalidTenantIdError(ValueError):
    """Raised when a tenant id does not match the schema-safe format."""


def validate_tenant_id(tenant_id) -> str:
    if not isinstance(tenant_id, str) or not _TENANT_ID_RE.match(tenant_id):
        raise InvalidTenantIdError(f"Invalid tenant id: {tenant_id!r}")
    return tenant_id


def schema_name_for(tenant_id: str) -> str:
    return f"{TENANT_SCHEMA_PREFIX}{validate_tenant_id(tenant_id)}"


def activate_tenant_schema(connection, tenant_id: str) -> None:
    """
    Point the current transaction at the tenant schema.

    ``SET LOCAL`` only lasts until the enclosing transaction ends, so a pooled
    connection never carries one tenant's search path into another unit of
    work. Backends without schemas (SQLite in tests) keep a single namespace.
    """
    schema = schema_name_for(tenant_id)
    if connection.vendor != "postgresql":
        return
    with connection.cursor() as cursor:
        cursor.execute(f'SET LOCAL search_path TO "{schema}", public')


@contextmanager
def tenant_scope(tenant_id: str, *, using: str = DEFAULT_DB_ALIAS) -> Iterator:
    """Run the block inside one transaction bound to ``tenant_id``'s schema."""

    validate_tenant_id(tenant_id)
    with transaction.atomic(using=using):
        connection = connections[using]
        activate_tenant_schema(connection, tenant_id)
        yield connection
