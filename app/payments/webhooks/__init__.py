"""
Webhook handling for payment-provider callbacks.

Callbacks are verified, validated, deduplicated by
(transaction id, status) and applied in one transaction.

Usage:
    # In urls.py
    from payments.webhooks.views import HubtelWebhookView

    urlpatterns = [
        path("webhooks/hubtel/", HubtelWebhookView.as_view(), name="hubtel_webhook"),
    ]
"""

from payments.webhooks.guard import WebhookIdempotencyGuard
from payments.webhooks.handlers import handle_payment_webhook

__all__ = [
    "WebhookIdempotencyGuard",
    "handle_payment_webhook",
]
