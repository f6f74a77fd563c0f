"""
URL configuration for the Django application.

The `urlpatterns` list routes URLs to views. This is the root URL configuration
that includes all app-specific routes.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/orders/                - Milestone endpoints
        {order_id}/milestones/     - Submit a milestone (tailor)
        {order_id}/milestones/pending/ - Pending milestones with urgency
        milestones/{id}/approve/   - Approve or reject a milestone
    /api/v1/payments/              - Payment endpoints
        escrow/{order_id}/         - Escrow status
        escrow/{order_id}/initiate/ - Request the deposit payment
        escrow/{order_id}/reconciliation/ - Escrow reconciliation (staff)
        webhooks/hubtel/           - Hubtel payment callback (POST)
        cron/auto-approve-milestones/ - Auto-approval sweep trigger

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # Orders and milestones
    path("orders/", include("orders.urls")),
    # Payments
    path("payments/", include("payments.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Escrow Settlement Admin"
admin.site.site_title = "Settlement Admin"
admin.site.index_title = "Orders, milestones and escrow"
