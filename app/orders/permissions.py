"""
Authorization policy for milestone submission and resolution.

Rules:
    - Only the order's tailor submits milestones
    - The fitting milestone may only be approved by the customer
    - The final milestone may be approved by the customer or the tailor
    - Any other milestone is approved by the customer
    - Rejection is customer-only
    - Staff users (is_staff) may override any of the above

The services call these checks before touching state; the DRF
permission class only limits access to the order's participants.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework.permissions import BasePermission

from orders.conf import final_milestone, fitting_milestone
from orders.exceptions import MilestoneAuthorizationError
from orders.state_machines import MilestoneAction

if TYPE_CHECKING:
    from orders.models import Order


def is_admin(user) -> bool:
    return bool(user is not None and getattr(user, "is_staff", False))


def is_participant(user, order: Order) -> bool:
    if user is None:
        return False
    return user.pk in (order.customer_id, order.tailor_id) or is_admin(user)


def check_can_submit_milestone(user, order: Order) -> None:
    if user is None or is_admin(user) or user.pk == order.tailor_id:
        return
    raise MilestoneAuthorizationError(
        "Only the order's tailor can submit milestones",
        details={"order_id": str(order.id)},
    )


def check_can_resolve_milestone(
    user, order: Order, milestone_type: str, action: str
) -> None:
    """
    Raise MilestoneAuthorizationError unless user may apply action.

    AUTO_APPROVED is reserved for the system sweep and rejected for
    any human actor.
    """
    details = {
        "order_id": str(order.id),
        "milestone": milestone_type,
        "action": action,
    }

    if action == MilestoneAction.AUTO_APPROVED:
        raise MilestoneAuthorizationError(
            "Auto-approval is reserved for the system", details=details
        )

    if is_admin(user):
        return

    is_customer = user.pk == order.customer_id
    is_tailor = user.pk == order.tailor_id

    if action == MilestoneAction.REJECTED:
        if is_customer:
            return
        raise MilestoneAuthorizationError(
            "Only the customer can reject a milestone", details=details
        )

    if milestone_type == final_milestone():
        if is_customer or is_tailor:
            return
    elif milestone_type == fitting_milestone():
        if is_customer:
            return
    elif is_customer:
        return

    raise MilestoneAuthorizationError(
        "You are not allowed to approve this milestone", details=details
    )


class IsOrderParticipant(BasePermission):
    """Object-level permission: the order's customer, tailor or staff."""

    message = "You are not a participant in this order."

    def has_object_permission(self, request, view, obj) -> bool:
        order = getattr(obj, "order", obj)
        return is_participant(request.user, order)
