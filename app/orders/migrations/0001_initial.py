import uuid

import django.db.models.deletion
import django.utils.timezone
import django_fsm
from django.conf import settings
from django.db import migrations, models

import orders.models.order
import toolkit.validators

ORDER_STATUS_CHOICES = [
    ("SUBMITTED", "Submitted"),
    ("DEPOSIT_PAID", "Deposit Paid"),
    ("ACCEPTED", "Accepted"),
    ("MEASUREMENT_CONFIRMED", "Measurement Confirmed"),
    ("FABRIC_SOURCED", "Fabric Sourced"),
    ("CUTTING_STARTED", "Cutting Started"),
    ("SEWING_IN_PROGRESS", "Sewing In Progress"),
    ("FITTING_SCHEDULED", "Fitting Scheduled"),
    ("FITTING_COMPLETED", "Fitting Completed"),
    ("ADJUSTMENTS_IN_PROGRESS", "Adjustments In Progress"),
    ("FINAL_INSPECTION", "Final Inspection"),
    ("READY_FOR_DELIVERY", "Ready For Delivery"),
    ("DELIVERED", "Delivered"),
    ("COMPLETED", "Completed"),
    ("CANCELLED", "Cancelled"),
    ("DISPUTED", "Disputed"),
]

MILESTONE_TYPE_CHOICES = [
    ("FABRIC_SELECTED", "Fabric Selected"),
    ("CUTTING_STARTED", "Cutting Started"),
    ("INITIAL_ASSEMBLY", "Initial Assembly"),
    ("FITTING_READY", "Fitting Ready"),
    ("ADJUSTMENTS_COMPLETE", "Adjustments Complete"),
    ("FINAL_PRESSING", "Final Pressing"),
    ("READY_FOR_DELIVERY", "Ready For Delivery"),
]

APPROVAL_STATUS_CHOICES = [
    ("PENDING", "Pending"),
    ("APPROVED", "Approved"),
    ("REJECTED", "Rejected"),
    ("AUTO_APPROVED", "Auto Approved"),
]

ACTION_CHOICES = [
    ("APPROVED", "Approved"),
    ("REJECTED", "Rejected"),
    ("AUTO_APPROVED", "Auto Approved"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "order_number",
                    models.CharField(
                        default=orders.models.order.generate_order_number,
                        help_text="Human-readable order reference",
                        max_length=32,
                        unique=True,
                    ),
                ),
                (
                    "garment_type",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Garment being made (e.g. 'Kente dress')",
                        max_length=100,
                    ),
                ),
                (
                    "total_amount",
                    models.DecimalField(
                        decimal_places=2, help_text="Order total in GHS", max_digits=12
                    ),
                ),
                (
                    "customer_phone",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Customer mobile-money number for stage payments",
                        max_length=20,
                        validators=[toolkit.validators.validate_ghana_phone],
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=ORDER_STATUS_CHOICES,
                        db_index=True,
                        default="SUBMITTED",
                        help_text="Current workflow status (managed by FSM)",
                        max_length=50,
                    ),
                ),
                (
                    "last_rejection_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When a milestone on this order was last rejected",
                        null=True,
                    ),
                ),
                ("deposit_paid_at", models.DateTimeField(blank=True, null=True)),
                ("fitting_paid_at", models.DateTimeField(blank=True, null=True)),
                ("final_paid_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "customer",
                    models.ForeignKey(
                        help_text="Customer placing the order",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="customer_orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "tailor",
                    models.ForeignKey(
                        help_text="Tailor fulfilling the order",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="tailor_orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Order",
                "verbose_name_plural": "Orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["customer", "status"],
                        name="order_customer_status_idx",
                    ),
                    models.Index(
                        fields=["tailor", "status"],
                        name="order_tailor_status_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("total_amount__gt", 0)),
                        name="order_total_amount_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderMilestone",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "milestone",
                    models.CharField(
                        choices=MILESTONE_TYPE_CHOICES,
                        help_text="Production checkpoint type",
                        max_length=32,
                    ),
                ),
                (
                    "photo_urls",
                    models.JSONField(default=list, help_text="Progress photo URLs (1-5)"),
                ),
                ("notes", models.TextField(blank=True, default="")),
                (
                    "submitted_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                ("lifecycle", models.PositiveIntegerField(default=1)),
                (
                    "approval_status",
                    django_fsm.FSMField(
                        choices=APPROVAL_STATUS_CHOICES,
                        db_index=True,
                        default="PENDING",
                        help_text="Approval state (managed by FSM)",
                        max_length=50,
                    ),
                ),
                (
                    "auto_approval_deadline",
                    models.DateTimeField(
                        db_index=True,
                        help_text="When the sweep may auto-approve this milestone",
                    ),
                ),
                ("customer_reviewed_at", models.DateTimeField(blank=True, null=True)),
                ("rejection_reason", models.TextField(blank=True, null=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="milestones",
                        to="orders.order",
                    ),
                ),
                (
                    "submitted_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "reviewed_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="Null for system (auto) approvals",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Order Milestone",
                "verbose_name_plural": "Order Milestones",
                "ordering": ["auto_approval_deadline"],
                "indexes": [
                    models.Index(
                        fields=["approval_status", "auto_approval_deadline"],
                        name="milestone_status_deadline_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("order", "milestone"),
                        name="unique_milestone_per_order",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="MilestoneApproval",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("action", models.CharField(choices=ACTION_CHOICES, max_length=20)),
                ("comment", models.CharField(blank=True, default="", max_length=500)),
                ("lifecycle", models.PositiveIntegerField(default=1)),
                (
                    "reviewed_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "milestone",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="approvals",
                        to="orders.ordermilestone",
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="milestone_approvals",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Milestone Approval",
                "verbose_name_plural": "Milestone Approvals",
                "ordering": ["-reviewed_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("milestone", "lifecycle"),
                        name="one_resolution_per_milestone_lifecycle",
                    ),
                ],
            },
        ),
    ]
