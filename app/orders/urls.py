"""
URL configuration for the orders app.

Routes:
    - POST /<order_id>/milestones/ - Submit milestone photos (tailor)
    - GET /<order_id>/milestones/pending/ - Pending milestones with urgency
    - POST /milestones/<milestone_id>/approve/ - Approve or reject a milestone

All routes are prefixed with /api/v1/orders/ when included in the main URLconf.
"""

from django.urls import path

from orders.views import MilestoneResolveView, MilestoneSubmitView, PendingMilestonesView

app_name = "orders"

urlpatterns = [
    path(
        "<uuid:order_id>/milestones/",
        MilestoneSubmitView.as_view(),
        name="milestone_submit",
    ),
    path(
        "<uuid:order_id>/milestones/pending/",
        PendingMilestonesView.as_view(),
        name="milestone_pending",
    ),
    path(
        "milestones/<uuid:milestone_id>/approve/",
        MilestoneResolveView.as_view(),
        name="milestone_resolve",
    ),
]
