"""
Response serializers for the payments app.

Escrow status and reconciliation responses are plain dicts produced by
EscrowStageTracker; only model-backed responses need a serializer.
"""

from rest_framework import serializers

from payments.models import PaymentTransaction


class PaymentTransactionSerializer(serializers.ModelSerializer):
    """A requested stage payment, as returned to the paying customer."""

    class Meta:
        model = PaymentTransaction
        fields = [
            "id",
            "transaction_id",
            "order",
            "escrow_stage",
            "amount",
            "status",
            "reference",
            "payment_url",
            "confirmed_at",
            "created_at",
        ]
        read_only_fields = fields
