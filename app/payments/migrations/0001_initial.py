import uuid
from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

ESCROW_STAGE_CHOICES = [
    ("DEPOSIT", "Deposit"),
    ("FITTING", "Fitting"),
    ("FINAL", "Final"),
    ("RELEASED", "Released"),
]

PAYMENT_STAGE_CHOICES = [
    ("DEPOSIT", "Deposit"),
    ("FITTING", "Fitting"),
    ("FINAL", "Final"),
]

TRANSACTION_TYPE_CHOICES = [
    ("DEPOSIT_RELEASE", "Deposit Release"),
    ("FITTING_RELEASE", "Fitting Release"),
    ("FINAL_RELEASE", "Final Release"),
    ("OVERRIDE", "Dispute Override"),
]

PAYMENT_STATUS_CHOICES = [
    ("Pending", "Pending"),
    ("Success", "Success"),
    ("Failed", "Failed"),
    ("Cancelled", "Cancelled"),
]

WEBHOOK_STATUS_CHOICES = [
    ("processed", "Processed"),
    ("unmatched", "Unmatched"),
]


def timestamp_fields():
    return [
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
    ]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("orders", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="EscrowAccount",
            fields=[
                *timestamp_fields(),
                (
                    "stage",
                    models.CharField(
                        choices=ESCROW_STAGE_CHOICES,
                        db_index=True,
                        default="DEPOSIT",
                        max_length=16,
                    ),
                ),
                ("total_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("deposit_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("fitting_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("final_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                (
                    "balance",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Amount still held in escrow",
                        max_digits=12,
                    ),
                ),
                ("deposit_released_at", models.DateTimeField(blank=True, null=True)),
                ("fitting_released_at", models.DateTimeField(blank=True, null=True)),
                ("final_released_at", models.DateTimeField(blank=True, null=True)),
                ("deposit_paid_at", models.DateTimeField(blank=True, null=True)),
                ("fitting_paid_at", models.DateTimeField(blank=True, null=True)),
                ("final_paid_at", models.DateTimeField(blank=True, null=True)),
                ("version", models.PositiveIntegerField(default=1)),
                (
                    "order",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="escrow",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Escrow Account",
                "verbose_name_plural": "Escrow Accounts",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("balance__gte", 0)),
                        name="escrow_balance_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="EscrowTransaction",
            fields=[
                *timestamp_fields(),
                (
                    "transaction_type",
                    models.CharField(choices=TRANSACTION_TYPE_CHOICES, max_length=20),
                ),
                (
                    "from_stage",
                    models.CharField(choices=ESCROW_STAGE_CHOICES, max_length=16),
                ),
                (
                    "to_stage",
                    models.CharField(choices=ESCROW_STAGE_CHOICES, max_length=16),
                ),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                (
                    "commission_amount",
                    models.DecimalField(
                        decimal_places=2, default=Decimal("0.00"), max_digits=12
                    ),
                ),
                (
                    "net_amount",
                    models.DecimalField(
                        decimal_places=2, default=Decimal("0.00"), max_digits=12
                    ),
                ),
                ("notes", models.TextField(blank=True, default="")),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="transactions",
                        to="payments.escrowaccount",
                    ),
                ),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        help_text="Null when the system (sweep, webhook) moved the stage",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Escrow Transaction",
                "verbose_name_plural": "Escrow Transactions",
                "ordering": ["created_at"],
            },
        ),
        migrations.CreateModel(
            name="PaymentTransaction",
            fields=[
                *timestamp_fields(),
                (
                    "transaction_id",
                    models.CharField(
                        help_text="Unique transaction id (dedup key for webhooks)",
                        max_length=100,
                        unique=True,
                    ),
                ),
                (
                    "provider_transaction_id",
                    models.CharField(
                        blank=True, db_index=True, max_length=100, null=True
                    ),
                ),
                (
                    "escrow_stage",
                    models.CharField(choices=PAYMENT_STAGE_CHOICES, max_length=16),
                ),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                (
                    "status",
                    models.CharField(
                        choices=PAYMENT_STATUS_CHOICES,
                        db_index=True,
                        default="Pending",
                        max_length=16,
                    ),
                ),
                ("reference", models.CharField(db_index=True, max_length=100)),
                (
                    "payment_url",
                    models.URLField(blank=True, max_length=500, null=True),
                ),
                ("confirmed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment_transactions",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment Transaction",
                "verbose_name_plural": "Payment Transactions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["order", "escrow_stage"],
                        name="payment_order_stage_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                *timestamp_fields(),
                ("transaction_id", models.CharField(db_index=True, max_length=100)),
                ("payment_status", models.CharField(max_length=32)),
                ("payload", models.JSONField(default=dict)),
                (
                    "status",
                    models.CharField(
                        choices=WEBHOOK_STATUS_CHOICES,
                        default="processed",
                        max_length=20,
                    ),
                ),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("transaction_id", "payment_status"),
                        name="unique_webhook_transaction_status",
                    ),
                ],
            },
        ),
    ]
