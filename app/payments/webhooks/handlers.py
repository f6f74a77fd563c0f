"""
Payment webhook handling.

handle_payment_webhook applies one verified, validated provider
callback: it claims the (transaction id, status) pair, upserts the
PaymentTransaction and, on Success, asks the orchestrator to advance
the order. All of it happens in one database transaction, so a
failure releases the claim and a provider retry is processed anew.

Matching:
    1. PaymentTransaction by transaction_id (the id we sent)
    2. PaymentTransaction by provider_transaction_id (hubtelTransactionId)
    3. The ORDER_<order_id>_<STAGE> reference, creating the row

Outcomes:
    - "processed": applied (including late confirmations that no-op)
    - "duplicate": another delivery already claimed the pair
    - "unmatched": no order could be correlated; recorded, not retried
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import transaction
from django.utils import timezone

from orders.models import Order
from payments.models import PaymentTransaction, WebhookEvent, parse_reference
from payments.state_machines import PaymentStatus, WebhookEventStatus

if TYPE_CHECKING:
    from typing import Any

    from orders.services import OrderStatusOrchestrator
    from payments.webhooks.guard import WebhookIdempotencyGuard

logger = logging.getLogger(__name__)

PROCESSED = "processed"
DUPLICATE = "duplicate"
UNMATCHED = "unmatched"


def handle_payment_webhook(
    data: dict[str, Any],
    guard: WebhookIdempotencyGuard,
    orchestrator: OrderStatusOrchestrator,
    payload: dict[str, Any] | None = None,
) -> str:
    """
    Apply one payment callback.

    Args:
        data: HubtelWebhookSerializer.validated_data
        guard: Idempotency guard for this request
        orchestrator: Receives on_payment_confirmed for Success
        payload: JSON-safe copy of the callback stored on WebhookEvent

    Returns:
        PROCESSED, DUPLICATE or UNMATCHED

    Raises:
        Exception: Anything unexpected; the transaction and the claim
            roll back so the provider's retry is processed
    """
    transaction_id = data["transactionId"]
    status = data["status"]
    log_context = {"transaction_id": transaction_id, "status": status}

    with transaction.atomic():
        if not guard.claim(transaction_id, status, payload=payload):
            return DUPLICATE

        payment = _find_payment(transaction_id, data.get("hubtelTransactionId"))
        if payment is not None:
            _apply_status(payment, data)
        else:
            payment = _create_from_reference(data)

        if payment is None:
            WebhookEvent.objects.filter(
                transaction_id=transaction_id, payment_status=status
            ).update(status=WebhookEventStatus.UNMATCHED)
            logger.warning(
                "Payment webhook could not be matched to an order",
                extra={**log_context, "reference": data.get("reference")},
            )
            return UNMATCHED

        log_context.update(
            order_id=str(payment.order_id), stage=payment.escrow_stage
        )
        if status == PaymentStatus.SUCCESS:
            orchestrator.on_payment_confirmed(
                payment.transaction_id,
                payment.escrow_stage,
                order_id=payment.order_id,
            )

    logger.info("Payment webhook processed", extra=log_context)
    return PROCESSED


def _find_payment(
    transaction_id: str, provider_transaction_id: str | None
) -> PaymentTransaction | None:
    queryset = PaymentTransaction.objects.select_for_update()
    payment = queryset.filter(transaction_id=transaction_id).first()
    if payment is None and provider_transaction_id:
        payment = queryset.filter(
            provider_transaction_id=provider_transaction_id
        ).first()
    return payment


def _apply_status(payment: PaymentTransaction, data: dict[str, Any]) -> None:
    status = data["status"]
    if data["amount"] != payment.amount:
        logger.warning(
            "Payment webhook amount differs from requested amount",
            extra={
                "transaction_id": payment.transaction_id,
                "requested": str(payment.amount),
                "reported": str(data["amount"]),
            },
        )

    payment.status = status
    update_fields = ["status", "updated_at"]
    if data.get("hubtelTransactionId") and not payment.provider_transaction_id:
        payment.provider_transaction_id = data["hubtelTransactionId"]
        update_fields.append("provider_transaction_id")
    if status == PaymentStatus.SUCCESS and payment.confirmed_at is None:
        payment.confirmed_at = timezone.now()
        update_fields.append("confirmed_at")
    payment.save(update_fields=update_fields)


def _create_from_reference(data: dict[str, Any]) -> PaymentTransaction | None:
    parsed = parse_reference(data.get("reference"))
    if parsed is None:
        return None
    order_id, stage = parsed
    if not Order.objects.filter(pk=order_id).exists():
        return None

    status = data["status"]
    payment, _ = PaymentTransaction.objects.update_or_create(
        transaction_id=data["transactionId"],
        defaults={
            "order_id": order_id,
            "escrow_stage": stage,
            "amount": data["amount"],
            "status": status,
            "reference": data["reference"],
            "provider_transaction_id": data.get("hubtelTransactionId") or None,
            "confirmed_at": timezone.now() if status == PaymentStatus.SUCCESS else None,
        },
    )
    logger.info(
        "Payment transaction matched by reference",
        extra={
            "transaction_id": payment.transaction_id,
            "order_id": order_id,
            "stage": stage,
        },
    )
    return payment
