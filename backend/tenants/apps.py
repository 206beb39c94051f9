"""
Django application configuration for the tenants app.

A tenant is one club. Its members, plans, charges, payments and audit trail
live in a dedicated PostgreSQL schema named ``clube_<tenant id>``; the
``Tenant`` row itself lives in the shared public schema.
"""

from django.apps import AppConfig


class TenantsConfig(AppConfig):
    """Application configuration for the tenants Django app."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'tenants'
    verbose_name = 'Club Tenants'
