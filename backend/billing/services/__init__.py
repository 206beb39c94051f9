"""Billing domain services: charge generation, gateway dispatch and webhook intake."""
