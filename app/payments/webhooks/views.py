"""
Webhook endpoint views for Hubtel payment callbacks.

The view:
1. Verifies the source (HMAC signature and/or IP allow-list) before
   reading the payload
2. Validates the payload against a strict schema
3. Skips exact (transactionId, status) repeats
4. Applies the callback via handle_payment_webhook

Status codes follow what the provider retries on:
    - 200: Processed, already processed, or unmatched (not retried)
    - 400: Invalid payload (not retried)
    - 401/403: Verification failed
    - 500: Unexpected failure; the provider retries

Usage:
    # In urls.py
    from payments.webhooks.views import HubtelWebhookView

    urlpatterns = [
        path("webhooks/hubtel/", HubtelWebhookView.as_view(), name="hubtel_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.utils import timezone
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError
from core.views import error_response
from orders.services import OrderStatusOrchestrator
from payments.webhooks.guard import WebhookIdempotencyGuard
from payments.webhooks.handlers import DUPLICATE, handle_payment_webhook
from payments.webhooks.serializers import HubtelWebhookSerializer
from payments.webhooks.verification import client_ip, verify_webhook_request

logger = logging.getLogger(__name__)


class HubtelWebhookView(APIView):
    """
    Hubtel payment status callback.

    POST /api/v1/payments/webhooks/hubtel/
    GET  /api/v1/payments/webhooks/hubtel/ - endpoint health check

    Security:
        No user authentication; the request is trusted only after
        verify_webhook_request passes.
    """

    authentication_classes: list = []
    permission_classes = [AllowAny]

    @extend_schema(
        operation_id="hubtel_payment_webhook",
        summary="Hubtel payment callback",
        request=HubtelWebhookSerializer,
        responses={
            200: OpenApiResponse(description="Processed or already processed"),
            400: OpenApiResponse(description="Invalid payload"),
            401: OpenApiResponse(description="Invalid signature"),
            403: OpenApiResponse(description="Source not allowed"),
            500: OpenApiResponse(description="Processing failed, retry"),
        },
        tags=["Payments - Webhooks"],
    )
    def post(self, request):
        try:
            verify_webhook_request(request)
        except BaseApplicationError as e:
            return error_response(e)

        serializer = HubtelWebhookSerializer(data=request.data)
        if not serializer.is_valid():
            logger.warning(
                "Invalid payment webhook payload",
                extra={"errors": serializer.errors, "source_ip": client_ip(request)},
            )
            return Response(
                {
                    "success": False,
                    "message": "Invalid webhook payload structure",
                    "errors": serializer.errors,
                },
                status=status.HTTP_400_BAD_REQUEST,
            )

        data = serializer.validated_data
        transaction_id = data["transactionId"]
        already_processed = Response(
            {"success": True, "message": "Webhook already processed"}
        )

        with WebhookIdempotencyGuard() as guard:
            if guard.seen(transaction_id, data["status"]):
                logger.info(
                    "Duplicate payment webhook ignored",
                    extra={"transaction_id": transaction_id, "status": data["status"]},
                )
                return already_processed

            try:
                outcome = handle_payment_webhook(
                    data,
                    guard=guard,
                    orchestrator=OrderStatusOrchestrator(),
                    payload=serializer.data,
                )
            except Exception as e:
                logger.error(
                    f"Payment webhook processing failed: {type(e).__name__}",
                    extra={"transaction_id": transaction_id, "status": data["status"]},
                    exc_info=True,
                )
                return Response(
                    {"success": False, "message": "Webhook processing failed"},
                    status=status.HTTP_500_INTERNAL_SERVER_ERROR,
                )

        if outcome == DUPLICATE:
            return already_processed

        return Response(
            {
                "success": True,
                "message": "Webhook processed successfully",
                "transactionId": transaction_id,
                "outcome": outcome,
            }
        )

    @extend_schema(
        operation_id="hubtel_payment_webhook_health",
        summary="Webhook endpoint health check",
        responses={200: OpenApiResponse(description="Endpoint is active")},
        tags=["Payments - Webhooks"],
    )
    def get(self, request):
        return Response(
            {
                "success": True,
                "message": "Hubtel webhook endpoint is active",
                "timestamp": timezone.now().isoformat(),
            }
        )
