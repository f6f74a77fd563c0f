"""
DRF views for payments app.

Endpoints:
    POST /api/v1/payments/escrow/<order_id>/initiate/ - Request the deposit
    GET  /api/v1/payments/escrow/<order_id>/ - Escrow status projection
    GET  /api/v1/payments/escrow/<order_id>/reconciliation/ - Admin check
    GET  /api/v1/payments/cron/auto-approve-milestones/ - Scheduler trigger
    POST /api/v1/payments/cron/auto-approve-milestones/ - Manual trigger (DEBUG)

The webhook endpoint lives in payments.webhooks.views.

Security:
    - Escrow endpoints require authentication and order participation
    - Reconciliation requires staff
    - The cron trigger authenticates with "Authorization: Bearer <CRON_SECRET>"
"""

from __future__ import annotations

import hmac
import logging
import time

from django.conf import settings
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError, PermissionDeniedError
from core.views import error_response
from orders.exceptions import InvalidOrderStateError, OrderNotFoundError
from orders.models import Order
from orders.permissions import is_participant
from orders.services import OrderStatusOrchestrator
from orders.state_machines import OrderStatus
from payments.serializers import PaymentTransactionSerializer
from payments.services import EscrowStageTracker
from payments.workers.auto_approval import AutoApprovalSweep

logger = logging.getLogger(__name__)

# Order statuses from which the deposit can be requested
ESCROW_INITIATION_STATUSES = (OrderStatus.SUBMITTED,)


def _visible_order(user, order_id) -> Order:
    """Fetch an order the user takes part in; others get 404."""
    order = Order.objects.filter(pk=order_id).first()
    if order is None or not is_participant(user, order):
        raise OrderNotFoundError(
            f"Order {order_id} not found", details={"order_id": str(order_id)}
        )
    return order


# =============================================================================
# Escrow
# =============================================================================


class EscrowInitiateView(APIView):
    """
    Request the deposit payment for an order.

    POST /api/v1/payments/escrow/<order_id>/initiate/

    Only the customer may pay. Creates the escrow account when missing.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="initiate_escrow_payment",
        summary="Request the deposit payment",
        request=None,
        responses={
            201: PaymentTransactionSerializer,
            403: OpenApiResponse(description="Not the order's customer"),
            404: OpenApiResponse(description="Order not found"),
            409: OpenApiResponse(description="Order not awaiting deposit"),
            502: OpenApiResponse(description="Payment gateway error"),
        },
        tags=["Payments - Escrow"],
    )
    def post(self, request, order_id):
        try:
            order = _visible_order(request.user, order_id)
            if order.customer_id != request.user.id:
                raise PermissionDeniedError(
                    "Only the customer can pay for this order"
                )
            if order.status not in ESCROW_INITIATION_STATUSES:
                raise InvalidOrderStateError(
                    f"Cannot initiate escrow for order with status: {order.status}",
                    details={"order_id": str(order.id), "status": order.status},
                )
        except BaseApplicationError as e:
            return error_response(e)

        result = OrderStatusOrchestrator().initiate_escrow_payment(order.id)
        if not result:
            return Response(
                {
                    "success": False,
                    "error": "Payment service error",
                    "error_code": result.error_code,
                    "details": result.error,
                },
                status=status.HTTP_502_BAD_GATEWAY,
            )

        return Response(
            PaymentTransactionSerializer(result.data).data,
            status=status.HTTP_201_CREATED,
        )


class EscrowStatusView(APIView):
    """
    Escrow stage, balance and history for an order.

    GET /api/v1/payments/escrow/<order_id>/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_escrow_status",
        summary="Get escrow status",
        responses={
            200: OpenApiResponse(description="Escrow status"),
            404: OpenApiResponse(description="Order or escrow not found"),
        },
        tags=["Payments - Escrow"],
    )
    def get(self, request, order_id):
        try:
            order = _visible_order(request.user, order_id)
            return Response(EscrowStageTracker().get_status(order.id))
        except BaseApplicationError as e:
            return error_response(e)


class EscrowReconciliationView(APIView):
    """
    Advisory reconciliation of one escrow account.

    GET /api/v1/payments/escrow/<order_id>/reconciliation/

    Reports mismatches; never corrects them.
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        operation_id="reconcile_escrow_account",
        summary="Reconcile an escrow account",
        responses={
            200: OpenApiResponse(description="Reconciliation report"),
            404: OpenApiResponse(description="Escrow not found"),
        },
        tags=["Payments - Escrow"],
    )
    def get(self, request, order_id):
        try:
            return Response(EscrowStageTracker().validate(order_id))
        except BaseApplicationError as e:
            return error_response(e)


# =============================================================================
# Scheduled Jobs
# =============================================================================


def cron_authorized(request) -> bool:
    """Check the Bearer token against CRON_SECRET; unset secret denies all."""
    secret = getattr(settings, "CRON_SECRET", "")
    header = request.headers.get("Authorization", "")
    if not secret or not header.startswith("Bearer "):
        return False
    return hmac.compare_digest(header[len("Bearer "):], secret)


class AutoApproveMilestonesCronView(APIView):
    """
    External-scheduler trigger for the auto-approval sweep.

    GET  /api/v1/payments/cron/auto-approve-milestones/
    POST /api/v1/payments/cron/auto-approve-milestones/ (DEBUG only)

    Celery beat runs the same sweep; this endpoint exists for deployments
    that schedule over HTTP.
    """

    authentication_classes: list = []
    permission_classes = [AllowAny]

    @extend_schema(
        operation_id="cron_auto_approve_milestones",
        summary="Run the milestone auto-approval sweep",
        request=None,
        responses={
            200: OpenApiResponse(description="Sweep summary"),
            401: OpenApiResponse(description="Missing or wrong cron secret"),
            500: OpenApiResponse(description="Sweep failed"),
        },
        tags=["Payments - Cron"],
    )
    def get(self, request):
        return self._run(request)

    @extend_schema(
        operation_id="cron_auto_approve_milestones_manual",
        summary="Manually run the auto-approval sweep",
        request=None,
        responses={
            200: OpenApiResponse(description="Sweep summary"),
            401: OpenApiResponse(description="Missing or wrong cron secret"),
            403: OpenApiResponse(description="Disabled outside DEBUG"),
        },
        tags=["Payments - Cron"],
    )
    def post(self, request):
        if not settings.DEBUG:
            return Response(
                {"error": "Manual trigger not allowed in production"},
                status=status.HTTP_403_FORBIDDEN,
            )
        return self._run(request)

    def _run(self, request):
        if not cron_authorized(request):
            logger.warning("Unauthorized auto-approval cron request")
            return Response(
                {"error": "Unauthorized"}, status=status.HTTP_401_UNAUTHORIZED
            )

        started = time.monotonic()
        try:
            result = AutoApprovalSweep().run()
        except Exception as e:
            logger.error(
                f"Auto-approval cron failed: {type(e).__name__}", exc_info=True
            )
            return Response(
                {
                    "success": False,
                    "error": "Auto-approval cron job failed",
                    "executionTimeMs": _elapsed_ms(started),
                },
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        if result.processed:
            message = (
                f"Processed {result.processed} milestones, "
                f"auto-approved {result.auto_approved}, failed {result.failed}"
            )
        else:
            message = "No milestones found for auto-approval"

        return Response(
            {
                "success": True,
                "processed": result.processed,
                "autoApproved": result.auto_approved,
                "failed": result.failed,
                "approvedMilestoneIds": result.approved_milestone_ids,
                "errors": result.errors,
                "executionTimeMs": _elapsed_ms(started),
                "message": message,
            }
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
