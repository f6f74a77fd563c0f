"""
Payment adapters for external services.

All payment-provider API calls go through these adapters to ensure
consistent timeouts, error translation and logging.

Usage:
    from payments.adapters import HubtelPaymentAdapter

    result = HubtelPaymentAdapter().initiate_payment(
        amount=Decimal("125.00"),
        stage="FITTING",
        customer_phone="+233241234567",
        reference="ORDER_<uuid>_FITTING",
    )
"""

from payments.adapters.hubtel_adapter import (
    HubtelPaymentAdapter,
    PaymentInitiation,
    generate_transaction_id,
)

__all__ = [
    "HubtelPaymentAdapter",
    "PaymentInitiation",
    "generate_transaction_id",
]
