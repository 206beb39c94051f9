"""Billing API views."""
from .charges import ChargeGenerationView

__all__ = ["ChargeGenerationView"]
