"""
Hubtel mobile-money adapter for stage payment initiation.

All calls to the payment provider go through this adapter so they share
one timeout, one error translation and one log format. Failures are
returned as ServiceResult.failure() rather than raised: payment
initiation is a best-effort side effect that must never roll back the
milestone approval or escrow advance that triggered it.

Configuration (via settings):
- HUBTEL_BASE_URL: API base URL
- HUBTEL_CLIENT_ID / HUBTEL_CLIENT_SECRET: Basic auth credentials
- HUBTEL_MERCHANT_ACCOUNT_ID: Merchant account receiving funds
- HUBTEL_CALLBACK_URL: Where the provider posts webhooks
- PAYMENT_GATEWAY_TIMEOUT_SECONDS: Request timeout (default: 10)

Usage:
    from payments.adapters import HubtelPaymentAdapter

    result = HubtelPaymentAdapter().initiate_payment(
        amount=Decimal("62.50"),
        stage="FINAL",
        customer_phone="0241234567",
        reference=f"ORDER_{order.id}_FINAL",
    )
    if result:
        result.data.transaction_id, result.data.payment_url
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

import requests
from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError

from core.services import BaseService, ServiceResult
from payments.exceptions import PaymentGatewayError
from toolkit.helpers import mask_phone
from toolkit.validators import normalize_ghana_phone

if TYPE_CHECKING:
    from typing import Any

NETWORK_CHANNELS = {
    "MTN": "mtn-gh",
    "VODAFONE": "vodafone-gh",
    "AIRTELTIGO": "tigo-gh",
}


@dataclass
class PaymentInitiation:
    """
    Result of a successful initiation request.

    Attributes:
        transaction_id: Our id, echoed back by the provider's webhooks
        provider_transaction_id: Provider's id, if returned synchronously
        payment_url: Checkout URL to send to the customer (optional)
        status: Provider status at initiation time
        raw_response: Full provider response (for debugging)
    """

    transaction_id: str
    provider_transaction_id: str | None = None
    payment_url: str | None = None
    status: str = "Pending"
    raw_response: dict[str, Any] = field(default_factory=dict)


def generate_transaction_id(stage: str) -> str:
    return f"TXN_{stage.upper()}_{uuid.uuid4().hex[:16].upper()}"


class HubtelPaymentAdapter(BaseService):
    """
    Adapter for Hubtel mobile-money collection.

    Stateless apart from an optional requests.Session, so one instance
    can be shared by the orchestrator and Celery workers.
    """

    def __init__(self, session: requests.Session | None = None):
        self.session = session or requests.Session()

    @staticmethod
    def _timeout() -> float:
        return float(getattr(settings, "PAYMENT_GATEWAY_TIMEOUT_SECONDS", 10))

    def initiate_payment(
        self,
        amount: Any,
        stage: str,
        customer_phone: str,
        reference: str,
        description: str = "",
    ) -> ServiceResult[PaymentInitiation]:
        """
        Ask Hubtel to collect a stage payment from the customer.

        Args:
            amount: Amount to collect (GHS)
            stage: Escrow stage the payment funds
            customer_phone: Customer mobile-money number
            reference: ORDER_<order_id>_<STAGE> correlation key
            description: Shown to the customer on the payment prompt

        Returns:
            ServiceResult with PaymentInitiation on success; failure with
            error_code INVALID_PHONE, GATEWAY_REJECTED or GATEWAY_UNAVAILABLE
        """
        logger = self.get_logger()

        try:
            phone, network = normalize_ghana_phone(customer_phone)
        except DjangoValidationError as e:
            return ServiceResult.failure(
                " ".join(e.messages), error_code="INVALID_PHONE"
            )

        transaction_id = generate_transaction_id(stage)
        payload = {
            "CustomerMsisdn": phone,
            "Channel": NETWORK_CHANNELS[network],
            "Amount": str(Decimal(str(amount)).quantize(Decimal("0.01"))),
            "PrimaryCallbackUrl": getattr(settings, "HUBTEL_CALLBACK_URL", ""),
            "Description": description or f"Payment for {reference}",
            "ClientReference": reference,
            "ExternalTransactionId": transaction_id,
        }
        log_context = {
            "operation": "initiate_payment",
            "transaction_id": transaction_id,
            "reference": reference,
            "stage": stage,
            "phone": mask_phone(phone),
        }

        start_time = time.time()
        logger.info("Starting payment gateway operation", extra=log_context)

        try:
            body = self._post(
                f"/merchantaccount/merchants/"
                f"{getattr(settings, 'HUBTEL_MERCHANT_ACCOUNT_ID', '')}/receive/mobilemoney",
                payload,
            )
        except PaymentGatewayError as e:
            logger.warning(
                "Payment gateway operation failed",
                extra={
                    **log_context,
                    "error": e.message,
                    "retryable": e.is_retryable,
                    "duration_ms": (time.time() - start_time) * 1000,
                },
            )
            return ServiceResult.from_exception(e)

        data = body.get("Data") or {}
        initiation = PaymentInitiation(
            transaction_id=transaction_id,
            provider_transaction_id=data.get("TransactionId"),
            payment_url=data.get("CheckoutUrl") or data.get("PaymentUrl"),
            status="Pending",
            raw_response=body,
        )

        logger.info(
            "Payment gateway operation completed",
            extra={
                **log_context,
                "provider_transaction_id": initiation.provider_transaction_id,
                "duration_ms": (time.time() - start_time) * 1000,
            },
        )
        return ServiceResult.success(initiation)

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """
        POST to the gateway and translate transport errors.

        Raises:
            PaymentGatewayError: is_retryable for timeouts, connection
                errors and 5xx; not retryable for 4xx
        """
        url = f"{getattr(settings, 'HUBTEL_BASE_URL', '').rstrip('/')}{path}"
        try:
            response = self.session.post(
                url,
                json=payload,
                auth=(
                    getattr(settings, "HUBTEL_CLIENT_ID", ""),
                    getattr(settings, "HUBTEL_CLIENT_SECRET", ""),
                ),
                timeout=self._timeout(),
            )
        except requests.Timeout as e:
            raise PaymentGatewayError(
                "Payment gateway timed out",
                error_code="GATEWAY_UNAVAILABLE",
                details={"original_error": str(e)},
                is_retryable=True,
            )
        except requests.RequestException as e:
            raise PaymentGatewayError(
                "Payment gateway unreachable",
                error_code="GATEWAY_UNAVAILABLE",
                details={"original_error": str(e)},
                is_retryable=True,
            )

        if response.status_code >= 500:
            raise PaymentGatewayError(
                f"Payment gateway error {response.status_code}",
                error_code="GATEWAY_UNAVAILABLE",
                details={"status_code": response.status_code},
                is_retryable=True,
            )
        if response.status_code >= 400:
            raise PaymentGatewayError(
                f"Payment gateway rejected request ({response.status_code})",
                error_code="GATEWAY_REJECTED",
                details={"status_code": response.status_code, "body": response.text[:500]},
            )

        try:
            return response.json()
        except ValueError:
            raise PaymentGatewayError(
                "Payment gateway returned invalid JSON",
                error_code="GATEWAY_REJECTED",
            )
