"""
Order admin configuration.

Statuses are FSM-managed and therefore read-only here; support staff
change them through the services, not by editing fields.
"""

from django.contrib import admin

from orders.models import MilestoneApproval, Order, OrderMilestone


class OrderMilestoneInline(admin.TabularInline):
    model = OrderMilestone
    extra = 0
    fields = ["milestone", "approval_status", "lifecycle", "auto_approval_deadline"]
    readonly_fields = fields
    can_delete = False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = [
        "order_number",
        "customer",
        "tailor",
        "total_amount",
        "status",
        "created_at",
    ]
    list_filter = ["status"]
    search_fields = ["order_number", "id", "customer__email", "tailor__email"]
    readonly_fields = [
        "id",
        "status",
        "deposit_paid_at",
        "fitting_paid_at",
        "final_paid_at",
        "completed_at",
        "last_rejection_at",
        "created_at",
        "updated_at",
    ]
    inlines = [OrderMilestoneInline]
    ordering = ["-created_at"]


@admin.register(OrderMilestone)
class OrderMilestoneAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "order",
        "milestone",
        "approval_status",
        "lifecycle",
        "auto_approval_deadline",
    ]
    list_filter = ["approval_status", "milestone"]
    search_fields = ["id", "order__order_number"]
    readonly_fields = [
        "id",
        "approval_status",
        "lifecycle",
        "customer_reviewed_at",
        "reviewed_by",
        "created_at",
        "updated_at",
    ]


@admin.register(MilestoneApproval)
class MilestoneApprovalAdmin(admin.ModelAdmin):
    """Audit trail; read-only."""

    list_display = ["milestone", "order", "action", "actor", "lifecycle", "reviewed_at"]
    list_filter = ["action"]
    search_fields = ["order__order_number", "milestone__id"]
    ordering = ["-reviewed_at"]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
