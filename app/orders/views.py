"""
API views for milestone submission and review.

Provides:
- MilestoneSubmitView: Tailor uploads milestone photos
- PendingMilestonesView: Pending milestones with review urgency
- MilestoneResolveView: Customer approves or rejects a milestone

Domain errors are translated with core.views.error_response, so a
failure keeps its HTTP status (400/403/404/409) and error_code.
"""

from __future__ import annotations

import logging
from dataclasses import asdict

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError
from core.views import error_response
from orders.exceptions import (
    AlreadyResolvedError,
    MilestoneNotFoundError,
    OrderNotFoundError,
)
from orders.models import Order, OrderMilestone
from orders.permissions import IsOrderParticipant
from orders.serializers import (
    MilestoneResolveSerializer,
    MilestoneSubmitSerializer,
    OrderMilestoneSerializer,
    PendingMilestoneSerializer,
)
from orders.services import MilestoneApprovalService, OrderStatusOrchestrator

logger = logging.getLogger(__name__)


class OrderParticipantMixin:
    """
    Object-level access for order-scoped views.

    Objects the requesting user may not see are reported as not found,
    so a stranger cannot tell whether an order exists.
    """

    permission_classes = [IsAuthenticated, IsOrderParticipant]

    def visible_to(self, request, obj) -> bool:
        return all(
            permission.has_object_permission(request, self, obj)
            for permission in self.get_permissions()
        )

    def get_order(self, request, order_id) -> Order:
        order = Order.objects.filter(pk=order_id).first()
        if order is None or not self.visible_to(request, order):
            raise OrderNotFoundError(
                f"Order {order_id} not found", details={"order_id": str(order_id)}
            )
        return order

    def get_milestone(self, request, milestone_id) -> OrderMilestone:
        milestone = (
            OrderMilestone.objects.select_related("order")
            .filter(pk=milestone_id)
            .first()
        )
        if milestone is None or not self.visible_to(request, milestone):
            raise MilestoneNotFoundError(
                f"Milestone {milestone_id} not found",
                details={"milestone_id": str(milestone_id)},
            )
        return milestone


class MilestoneSubmitView(OrderParticipantMixin, APIView):
    """
    POST /api/v1/orders/<order_id>/milestones/

    Creates the milestone, refreshes it while PENDING, or resubmits it
    after a rejection.
    """

    @extend_schema(
        operation_id="submit_milestone",
        summary="Submit milestone photos",
        description=(
            "Tailor uploads 1-5 progress photos for a production milestone. "
            "The customer has 48 hours to review before auto-approval."
        ),
        request=MilestoneSubmitSerializer,
        responses={
            201: OrderMilestoneSerializer,
            400: OpenApiResponse(description="Invalid milestone type or photos"),
            403: OpenApiResponse(description="Not the order's tailor"),
            409: OpenApiResponse(description="Order status or milestone state forbids it"),
        },
        tags=["Orders - Milestones"],
    )
    def post(self, request, order_id):
        serializer = MilestoneSubmitSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            self.get_order(request, order_id)
            milestone = MilestoneApprovalService().submit(
                order_id=order_id,
                milestone_type=serializer.validated_data["milestone"],
                photo_urls=serializer.validated_data["photo_urls"],
                notes=serializer.validated_data["notes"],
                submitted_by=request.user,
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(
            OrderMilestoneSerializer(milestone).data,
            status=status.HTTP_201_CREATED,
        )


class PendingMilestonesView(OrderParticipantMixin, APIView):
    """GET /api/v1/orders/<order_id>/milestones/pending/"""

    @extend_schema(
        operation_id="list_pending_milestones",
        summary="List pending milestones",
        description=(
            "Milestones awaiting review, soonest deadline first, with urgency "
            "(high < 6h, medium < 24h, low) and hours remaining."
        ),
        responses={200: PendingMilestoneSerializer(many=True)},
        tags=["Orders - Milestones"],
    )
    def get(self, request, order_id):
        try:
            order = self.get_order(request, order_id)
        except BaseApplicationError as e:
            return error_response(e)

        milestones = MilestoneApprovalService().get_pending(order.id)
        return Response(PendingMilestoneSerializer(milestones, many=True).data)


class MilestoneResolveView(OrderParticipantMixin, APIView):
    """
    POST /api/v1/orders/milestones/<milestone_id>/approve/

    Request body:
        {"action": "APPROVED" | "REJECTED", "comment": "..."}

    Response:
        {"milestone": {...}, "settlement": {...} | null,
         "already_resolved": bool, "settlement_error": {...} | null}

    A review that loses the race against the auto-approval sweep is not
    an error: the current milestone state is returned with
    already_resolved set. The approval stands even when the escrow
    release that follows it fails; the failure is reported in
    settlement_error and recovered by re-driving the milestone.
    """

    @extend_schema(
        operation_id="resolve_milestone",
        summary="Approve or reject a milestone",
        request=MilestoneResolveSerializer,
        responses={
            200: OpenApiResponse(description="Milestone resolved"),
            400: OpenApiResponse(description="Invalid action or missing reason"),
            403: OpenApiResponse(description="Actor may not resolve this milestone"),
            404: OpenApiResponse(description="Milestone not found"),
        },
        tags=["Orders - Milestones"],
    )
    def post(self, request, milestone_id):
        serializer = MilestoneResolveSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        action = serializer.validated_data["action"]
        try:
            self.get_milestone(request, milestone_id)
            milestone = MilestoneApprovalService().resolve(
                milestone_id,
                action,
                actor=request.user,
                comment=serializer.validated_data["comment"],
            )
        except AlreadyResolvedError:
            milestone = OrderMilestone.objects.get(pk=milestone_id)
            return Response(
                {
                    "milestone": OrderMilestoneSerializer(milestone).data,
                    "settlement": None,
                    "already_resolved": True,
                    "settlement_error": None,
                }
            )
        except BaseApplicationError as e:
            return error_response(e)

        settlement = None
        settlement_error = None
        try:
            outcome = OrderStatusOrchestrator().on_milestone_resolved(
                milestone.order_id, milestone.milestone, action, actor=request.user
            )
            settlement = asdict(outcome)
            if outcome.released_amount is not None:
                settlement["released_amount"] = str(outcome.released_amount)
        except BaseApplicationError as e:
            logger.error(
                f"Settlement after milestone resolution failed: {e.error_code}",
                extra={"milestone_id": str(milestone.id), "order_id": str(milestone.order_id)},
            )
            settlement_error = e.to_dict()

        return Response(
            {
                "milestone": OrderMilestoneSerializer(milestone).data,
                "settlement": settlement,
                "already_resolved": False,
                "settlement_error": settlement_error,
            }
        )
