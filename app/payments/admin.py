"""
Payment admin configuration.

Escrow state changes go through EscrowStageTracker, never the admin:
every escrow model is read-only here.
"""

from django.contrib import admin

from payments.models import (
    EscrowAccount,
    EscrowTransaction,
    PaymentTransaction,
    WebhookEvent,
)


class ReadOnlyAdminMixin:
    """Admin mixin that disables add, change and delete."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class EscrowTransactionInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = EscrowTransaction
    extra = 0
    fields = [
        "transaction_type",
        "from_stage",
        "to_stage",
        "amount",
        "commission_amount",
        "net_amount",
        "actor",
        "created_at",
    ]
    readonly_fields = fields
    ordering = ["created_at"]


@admin.register(EscrowAccount)
class EscrowAccountAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """
    Admin configuration for EscrowAccount.

    Shows buckets, balance and release history per order.
    """

    list_display = [
        "order",
        "stage",
        "total_amount",
        "balance",
        "created_at",
    ]
    list_filter = ["stage", "created_at"]
    search_fields = ["order__id", "order__order_number"]
    ordering = ["-created_at"]
    inlines = [EscrowTransactionInline]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "order", "stage", "version"),
            },
        ),
        (
            "Amounts",
            {
                "fields": (
                    "total_amount",
                    "deposit_amount",
                    "fitting_amount",
                    "final_amount",
                    "balance",
                ),
            },
        ),
        (
            "Payments",
            {
                "fields": ("deposit_paid_at", "fitting_paid_at", "final_paid_at"),
            },
        ),
        (
            "Releases",
            {
                "fields": (
                    "deposit_released_at",
                    "fitting_released_at",
                    "final_released_at",
                ),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )


@admin.register(EscrowTransaction)
class EscrowTransactionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = [
        "account",
        "transaction_type",
        "from_stage",
        "to_stage",
        "amount",
        "net_amount",
        "created_at",
    ]
    list_filter = ["transaction_type", "to_stage"]
    search_fields = ["account__order__id", "account__order__order_number"]
    ordering = ["-created_at"]


@admin.register(PaymentTransaction)
class PaymentTransactionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Stage payment attempts as reported by the gateway."""

    list_display = [
        "transaction_id",
        "order",
        "escrow_stage",
        "amount",
        "status",
        "confirmed_at",
        "created_at",
    ]
    list_filter = ["status", "escrow_stage", "created_at"]
    search_fields = [
        "transaction_id",
        "provider_transaction_id",
        "reference",
        "order__order_number",
    ]
    ordering = ["-created_at"]


@admin.register(WebhookEvent)
class WebhookEventAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    One row per processed (transaction id, status) pair.
    """

    list_display = [
        "transaction_id",
        "payment_status",
        "status",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "payment_status", "created_at"]
    search_fields = ["transaction_id"]
    ordering = ["-created_at"]
