"""
URL configuration for the payments app.

Routes:
    - POST /escrow/<order_id>/initiate/ - Request the deposit payment
    - GET /escrow/<order_id>/ - Escrow status
    - GET /escrow/<order_id>/reconciliation/ - Admin reconciliation report
    - POST /webhooks/hubtel/ - Hubtel payment callback
    - GET /cron/auto-approve-milestones/ - Auto-approval sweep trigger

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("payments/", include("payments.urls")),
    ]
"""

from django.urls import path

from payments.views import (
    AutoApproveMilestonesCronView,
    EscrowInitiateView,
    EscrowReconciliationView,
    EscrowStatusView,
)
from payments.webhooks.views import HubtelWebhookView

app_name = "payments"

urlpatterns = [
    # Escrow
    path(
        "escrow/<uuid:order_id>/",
        EscrowStatusView.as_view(),
        name="escrow_status",
    ),
    path(
        "escrow/<uuid:order_id>/initiate/",
        EscrowInitiateView.as_view(),
        name="escrow_initiate",
    ),
    path(
        "escrow/<uuid:order_id>/reconciliation/",
        EscrowReconciliationView.as_view(),
        name="escrow_reconciliation",
    ),
    # Webhook endpoints
    path("webhooks/hubtel/", HubtelWebhookView.as_view(), name="hubtel_webhook"),
    # Scheduled jobs
    path(
        "cron/auto-approve-milestones/",
        AutoApproveMilestonesCronView.as_view(),
        name="cron_auto_approve_milestones",
    ),
]
