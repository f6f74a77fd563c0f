"""
Request serializer for Hubtel payment callbacks.

Strict: unknown top-level fields are rejected so a changed provider
payload fails loudly with 400 instead of being half-understood.
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from payments.state_machines import PaymentStatus

# Provider spellings accepted for a settled payment
STATUS_ALIASES = {
    "PAID": PaymentStatus.SUCCESS,
    "SUCCESS": PaymentStatus.SUCCESS,
    "PENDING": PaymentStatus.PENDING,
    "FAILED": PaymentStatus.FAILED,
    "CANCELLED": PaymentStatus.CANCELLED,
}


class HubtelWebhookSerializer(serializers.Serializer):
    transactionId = serializers.CharField(max_length=100)
    status = serializers.CharField(max_length=32)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))
    reference = serializers.CharField(
        max_length=100, required=False, allow_blank=True, default=""
    )
    hubtelTransactionId = serializers.CharField(
        max_length=100, required=False, allow_blank=True, default=""
    )
    timestamp = serializers.DateTimeField(required=False, allow_null=True)
    description = serializers.CharField(
        max_length=500, required=False, allow_blank=True, default=""
    )

    def validate_status(self, value: str) -> str:
        normalized = STATUS_ALIASES.get(value.strip().upper())
        if normalized is None:
            raise serializers.ValidationError(f"Unknown payment status: {value}")
        return normalized

    def validate(self, attrs):
        unknown = set(self.initial_data) - set(self.fields)
        if unknown:
            raise serializers.ValidationError(
                {field: "Unexpected field." for field in sorted(unknown)}
            )
        return attrs
