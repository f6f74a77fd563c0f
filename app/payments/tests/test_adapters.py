"""
Tests for the Hubtel payment adapter.

The requests session is a mock; no network traffic.
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import requests

from payments.adapters import HubtelPaymentAdapter, generate_transaction_id


@pytest.fixture
def hubtel_settings(settings):
    settings.HUBTEL_BASE_URL = "https://rmp.hubtel.com/"
    settings.HUBTEL_MERCHANT_ACCOUNT_ID = "2020000"
    settings.HUBTEL_CLIENT_ID = "client"
    settings.HUBTEL_CLIENT_SECRET = "secret"
    settings.HUBTEL_CALLBACK_URL = "https://api.example.com/api/v1/payments/webhooks/hubtel/"
    settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS = 7
    return settings


def _response(status_code=200, body=None):
    response = MagicMock(status_code=status_code, text="")
    response.json.return_value = body if body is not None else {}
    return response


def _initiate(adapter, phone="0241234567"):
    return adapter.initiate_payment(
        amount=Decimal("62.5"),
        stage="DEPOSIT",
        customer_phone=phone,
        reference="ORDER_abc_DEPOSIT",
    )


@pytest.mark.usefixtures("hubtel_settings")
class TestInitiatePayment:
    def test_success(self):
        session = MagicMock()
        session.post.return_value = _response(
            body={
                "ResponseCode": "0001",
                "Data": {
                    "TransactionId": "HUB_123",
                    "CheckoutUrl": "https://pay.hubtel.com/abc",
                },
            }
        )

        result = _initiate(HubtelPaymentAdapter(session=session))

        assert result.success
        assert result.data.transaction_id.startswith("TXN_DEPOSIT_")
        assert result.data.provider_transaction_id == "HUB_123"
        assert result.data.payment_url == "https://pay.hubtel.com/abc"

        args, kwargs = session.post.call_args
        assert args[0] == (
            "https://rmp.hubtel.com/merchantaccount/merchants/2020000/receive/mobilemoney"
        )
        assert kwargs["json"]["CustomerMsisdn"] == "+233241234567"
        assert kwargs["json"]["Channel"] == "mtn-gh"
        assert kwargs["json"]["Amount"] == "62.50"
        assert kwargs["json"]["ClientReference"] == "ORDER_abc_DEPOSIT"
        assert kwargs["json"]["ExternalTransactionId"] == result.data.transaction_id
        assert kwargs["auth"] == ("client", "secret")
        assert kwargs["timeout"] == 7.0

    @pytest.mark.parametrize("phone", ["12345", "0211234567", ""])
    def test_invalid_phone_never_calls_gateway(self, phone):
        session = MagicMock()

        result = _initiate(HubtelPaymentAdapter(session=session), phone=phone)

        assert not result
        assert result.error_code == "INVALID_PHONE"
        session.post.assert_not_called()

    def test_rejected_request(self):
        session = MagicMock()
        session.post.return_value = _response(status_code=400)

        result = _initiate(HubtelPaymentAdapter(session=session))

        assert result.error_code == "GATEWAY_REJECTED"

    @pytest.mark.parametrize(
        "side_effect",
        [requests.Timeout("slow"), requests.ConnectionError("refused")],
    )
    def test_transport_errors(self, side_effect):
        session = MagicMock()
        session.post.side_effect = side_effect

        result = _initiate(HubtelPaymentAdapter(session=session))

        assert result.error_code == "GATEWAY_UNAVAILABLE"

    def test_server_error(self):
        session = MagicMock()
        session.post.return_value = _response(status_code=503)

        result = _initiate(HubtelPaymentAdapter(session=session))

        assert result.error_code == "GATEWAY_UNAVAILABLE"

    def test_invalid_json(self):
        session = MagicMock()
        response = _response()
        response.json.side_effect = ValueError("not json")
        session.post.return_value = response

        result = _initiate(HubtelPaymentAdapter(session=session))

        assert result.error_code == "GATEWAY_REJECTED"


def test_transaction_ids_are_unique_per_call():
    first, second = generate_transaction_id("final"), generate_transaction_id("final")

    assert first.startswith("TXN_FINAL_")
    assert first != second
