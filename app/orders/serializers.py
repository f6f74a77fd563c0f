"""
DRF serializers for milestone endpoints.

Request serializers only check shape; business rules (order status,
who may approve, resolution races) are enforced by
MilestoneApprovalService and surface as domain errors.
"""

from __future__ import annotations

from rest_framework import serializers

from orders.models import OrderMilestone
from orders.services.milestone_service import MAX_COMMENT_LENGTH, MAX_PHOTOS, MIN_PHOTOS
from orders.state_machines import MilestoneAction, MilestoneType


class MilestoneSubmitSerializer(serializers.Serializer):
    """Tailor's milestone upload: type, 1-5 photo URLs, optional notes."""

    milestone = serializers.ChoiceField(choices=MilestoneType.choices)
    photo_urls = serializers.ListField(
        child=serializers.URLField(max_length=500),
        min_length=MIN_PHOTOS,
        max_length=MAX_PHOTOS,
    )
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class MilestoneResolveSerializer(serializers.Serializer):
    """
    Customer (or tailor, for the final milestone) review decision.

    AUTO_APPROVED is not accepted here; only the sweep applies it.
    """

    action = serializers.ChoiceField(
        choices=[
            (MilestoneAction.APPROVED.value, MilestoneAction.APPROVED.label),
            (MilestoneAction.REJECTED.value, MilestoneAction.REJECTED.label),
        ]
    )
    comment = serializers.CharField(
        required=False,
        allow_blank=True,
        max_length=MAX_COMMENT_LENGTH,
        default="",
    )

    def validate(self, attrs):
        if attrs["action"] == MilestoneAction.REJECTED and not attrs["comment"].strip():
            raise serializers.ValidationError(
                {"comment": "A reason is required to reject a milestone."}
            )
        return attrs


class OrderMilestoneSerializer(serializers.ModelSerializer):
    milestone_label = serializers.CharField(
        source="get_milestone_display", read_only=True
    )

    class Meta:
        model = OrderMilestone
        fields = [
            "id",
            "order",
            "milestone",
            "milestone_label",
            "photo_urls",
            "notes",
            "approval_status",
            "lifecycle",
            "submitted_at",
            "auto_approval_deadline",
            "customer_reviewed_at",
            "rejection_reason",
        ]
        read_only_fields = fields


class PendingMilestoneSerializer(OrderMilestoneSerializer):
    """Pending milestone annotated by MilestoneApprovalService.get_pending()."""

    urgency = serializers.CharField(read_only=True)
    hours_remaining = serializers.FloatField(read_only=True)

    class Meta(OrderMilestoneSerializer.Meta):
        fields = [*OrderMilestoneSerializer.Meta.fields, "urgency", "hours_remaining"]
        read_only_fields = fields
