"""
Payments app configuration.

This app owns the money side of an order:
- Three-bucket escrow accounts and their stage history
- Stage payment requests to the Hubtel gateway
- Webhook verification and deduplication
- The milestone auto-approval sweep
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
