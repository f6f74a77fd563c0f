"""
Milestone approval service.

Owns the approval lifecycle of tailor-submitted milestones:
submission (create / update while PENDING / resubmit after REJECTED),
one-shot resolution by the customer or the auto-approval sweep, and
read-only projections for review screens and the sweep.

Concurrency:
    resolve() saves through ConcurrentTransitionMixin, so the UPDATE
    only matches while the stored status is still PENDING. The loser
    of an approve/auto-approve race gets AlreadyResolvedError, which
    callers treat as a benign no-op.

Usage:
    from orders.services import MilestoneApprovalService

    service = MilestoneApprovalService()
    milestone = service.submit(
        order_id=order.id,
        milestone_type=MilestoneType.FITTING_READY,
        photo_urls=["https://cdn.example.com/fit-1.jpg"],
        submitted_by=tailor,
    )
    service.resolve(milestone.id, MilestoneAction.APPROVED, actor=customer)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import URLValidator
from django.db import IntegrityError, transaction
from django.utils import timezone

from django_fsm import ConcurrentTransition

from core.exceptions import ValidationError
from core.services import BaseService
from notifications.services import NotificationService, NotificationType
from orders.conf import auto_approval_window
from orders.exceptions import (
    AlreadyResolvedError,
    InvalidMilestoneActionError,
    InvalidMilestoneSubmissionError,
    InvalidOrderStateError,
    MilestoneAuthorizationError,
    MilestoneNotFoundError,
    OrderNotFoundError,
    RejectionReasonRequiredError,
)
from orders.models import MilestoneApproval, Order, OrderMilestone
from orders.permissions import check_can_resolve_milestone, check_can_submit_milestone
from orders.state_machines import (
    MILESTONE_SUBMISSION_STATUSES,
    MilestoneAction,
    MilestoneApprovalStatus,
    MilestoneType,
)

if TYPE_CHECKING:
    from datetime import datetime
    from typing import Any
    from uuid import UUID

    from toolkit.protocols import NotificationSender


AUTO_APPROVAL_COMMENT = "Automatically approved after deadline"

MIN_PHOTOS = 1
MAX_PHOTOS = 5
MAX_COMMENT_LENGTH = 500

HIGH_URGENCY_HOURS = 6
MEDIUM_URGENCY_HOURS = 24

_url_validator = URLValidator(schemes=["http", "https"])


def urgency_for(hours_remaining: float) -> str:
    if hours_remaining < HIGH_URGENCY_HOURS:
        return "high"
    if hours_remaining < MEDIUM_URGENCY_HOURS:
        return "medium"
    return "low"


class MilestoneApprovalService(BaseService):
    """
    The only code path that changes OrderMilestone.approval_status.

    Notifications go through the injected NotificationSender and are
    queued after commit, so a rolled-back resolution sends nothing.
    """

    def __init__(self, notifier: NotificationSender | None = None):
        self.notifier = notifier or NotificationService()

    # =========================================================================
    # Submission
    # =========================================================================

    def submit(
        self,
        order_id: UUID | str,
        milestone_type: str,
        photo_urls: list[str],
        notes: str = "",
        submitted_by=None,
    ) -> OrderMilestone:
        """
        Create a milestone, refresh it while PENDING, or resubmit it.

        Raises:
            InvalidMilestoneSubmissionError: Unknown type or bad photo list
            OrderNotFoundError: No such order
            InvalidOrderStateError: Order status does not accept milestones
            MilestoneAuthorizationError: submitted_by is not the tailor
            AlreadyResolvedError: Milestone already approved
        """
        if milestone_type not in MilestoneType.values:
            raise InvalidMilestoneSubmissionError(
                f"Unknown milestone type: {milestone_type}",
                details={"milestone": milestone_type},
            )
        photo_urls = self._clean_photo_urls(photo_urls)
        notes = notes or ""

        created = False
        try:
            with transaction.atomic():
                order = self._get_order(order_id)
                if order.status not in MILESTONE_SUBMISSION_STATUSES:
                    raise InvalidOrderStateError(
                        f"Milestones cannot be submitted while order is {order.status}",
                        details={"order_id": str(order.id), "status": order.status},
                    )
                check_can_submit_milestone(submitted_by, order)

                now = timezone.now()
                deadline = now + auto_approval_window()
                milestone, created = OrderMilestone.objects.get_or_create(
                    order=order,
                    milestone=milestone_type,
                    defaults={
                        "photo_urls": photo_urls,
                        "notes": notes,
                        "submitted_at": now,
                        "submitted_by": submitted_by,
                        "auto_approval_deadline": deadline,
                    },
                )

                if not created:
                    if milestone.approval_status == MilestoneApprovalStatus.PENDING:
                        milestone.photo_urls = photo_urls
                        milestone.notes = notes
                        milestone.submitted_at = now
                        milestone.submitted_by = submitted_by
                        milestone.auto_approval_deadline = deadline
                    elif milestone.approval_status == MilestoneApprovalStatus.REJECTED:
                        milestone.resubmit(photo_urls, notes, deadline)
                        milestone.submitted_by = submitted_by
                    else:
                        raise AlreadyResolvedError(
                            "Milestone has already been approved",
                            details={
                                "milestone_id": str(milestone.id),
                                "approval_status": milestone.approval_status,
                            },
                        )
                    milestone.save()
        except ConcurrentTransition:
            raise AlreadyResolvedError(
                "Milestone was resolved while being updated",
                details={"order_id": str(order_id), "milestone": milestone_type},
            )

        self.get_logger().info(
            "Milestone submitted",
            extra={
                "order_id": str(order.id),
                "milestone_id": str(milestone.id),
                "milestone": milestone_type,
                "lifecycle": milestone.lifecycle,
                "created": created,
                "deadline": milestone.auto_approval_deadline.isoformat(),
            },
        )

        label = MilestoneType(milestone_type).label
        self.notifier.send(
            recipient_id=order.customer_id,
            notification_type=NotificationType.MILESTONE_SUBMITTED,
            title=f"{label} ready for review",
            message=(
                f"Your tailor has shared progress photos for order "
                f"{order.order_number}. Please review within "
                f"{int(auto_approval_window().total_seconds() // 3600)} hours."
            ),
            data=self._notification_data(milestone),
            priority="normal",
        )
        return milestone

    # =========================================================================
    # Resolution
    # =========================================================================

    def resolve(
        self,
        milestone_id: UUID | str,
        action: str,
        actor=None,
        comment: str | None = None,
    ) -> OrderMilestone:
        """
        Resolve a PENDING milestone exactly once.

        Args:
            milestone_id: Milestone to resolve
            action: APPROVED, REJECTED or AUTO_APPROVED
            actor: Reviewing user; None means the system (auto-approval)
            comment: Required for REJECTED, at most 500 characters

        Raises:
            InvalidMilestoneActionError: Unknown action
            RejectionReasonRequiredError: REJECTED without a comment
            MilestoneNotFoundError: No such milestone
            MilestoneAuthorizationError: Actor may not apply this action
            AlreadyResolvedError: Milestone is not PENDING or a concurrent
                resolver won
        """
        if action not in MilestoneAction.values:
            raise InvalidMilestoneActionError(
                f"Unknown milestone action: {action}", details={"action": action}
            )
        comment = (comment or "").strip()
        if action == MilestoneAction.REJECTED and not comment:
            raise RejectionReasonRequiredError(
                "A reason is required to reject a milestone",
                details={"milestone_id": str(milestone_id)},
            )
        if len(comment) > MAX_COMMENT_LENGTH:
            raise ValidationError(
                f"Comment must be at most {MAX_COMMENT_LENGTH} characters",
                error_code="COMMENT_TOO_LONG",
                details={"milestone_id": str(milestone_id)},
            )

        try:
            with transaction.atomic():
                milestone = self._get_milestone(milestone_id)
                order = milestone.order

                if actor is not None:
                    check_can_resolve_milestone(
                        actor, order, milestone.milestone, action
                    )
                elif action != MilestoneAction.AUTO_APPROVED:
                    raise MilestoneAuthorizationError(
                        "Only the system may resolve a milestone without an actor",
                        details={"milestone_id": str(milestone.id)},
                    )

                if not milestone.is_pending:
                    raise AlreadyResolvedError(
                        f"Milestone is already {milestone.approval_status}",
                        details={
                            "milestone_id": str(milestone.id),
                            "approval_status": milestone.approval_status,
                        },
                    )

                if action == MilestoneAction.APPROVED:
                    milestone.approve(actor=actor)
                elif action == MilestoneAction.REJECTED:
                    milestone.reject(reason=comment, actor=actor)
                else:
                    milestone.auto_approve()
                milestone.save()

                MilestoneApproval.objects.create(
                    milestone=milestone,
                    order=order,
                    action=action,
                    actor=actor,
                    comment=comment,
                    lifecycle=milestone.lifecycle,
                    reviewed_at=milestone.customer_reviewed_at,
                )
        except (ConcurrentTransition, IntegrityError):
            self.get_logger().info(
                "Milestone resolution lost a race",
                extra={"milestone_id": str(milestone_id), "action": action},
            )
            raise AlreadyResolvedError(
                "Milestone was resolved concurrently",
                details={"milestone_id": str(milestone_id)},
            )

        self.get_logger().info(
            f"Milestone {action.lower()}",
            extra={
                "order_id": str(order.id),
                "milestone_id": str(milestone.id),
                "milestone": milestone.milestone,
                "actor_id": str(actor.pk) if actor is not None else None,
            },
        )
        self._notify_resolution(milestone, order, action, comment)
        return milestone

    def _notify_resolution(
        self, milestone: OrderMilestone, order: Order, action: str, comment: str
    ) -> None:
        label = MilestoneType(milestone.milestone).label
        data = self._notification_data(milestone)

        if action == MilestoneAction.APPROVED:
            self.notifier.send(
                recipient_id=order.tailor_id,
                notification_type=NotificationType.MILESTONE_APPROVED,
                title=f"{label} approved",
                message=f"The customer approved {label} on order {order.order_number}.",
                data=data,
            )
        elif action == MilestoneAction.REJECTED:
            self.notifier.send(
                recipient_id=order.tailor_id,
                notification_type=NotificationType.MILESTONE_REJECTED,
                title=f"{label} needs changes",
                message=f"The customer requested changes: {comment}",
                data={**data, "reason": comment},
                priority="high",
            )
        else:
            self.notifier.send(
                recipient_id=order.tailor_id,
                notification_type=NotificationType.MILESTONE_AUTO_APPROVED,
                title=f"{label} auto-approved",
                message=(
                    f"{label} on order {order.order_number} was approved "
                    f"automatically after the review window closed."
                ),
                data=data,
            )
            self.notifier.send(
                recipient_id=order.customer_id,
                notification_type=NotificationType.MILESTONE_AUTO_APPROVED,
                title=f"{label} auto-approved",
                message=(
                    f"We approved {label} on order {order.order_number} "
                    f"because the review window closed."
                ),
                data=data,
                priority="low",
            )

    # =========================================================================
    # Projections
    # =========================================================================

    def get_pending(
        self, order_id: UUID | str, now: datetime | None = None
    ) -> list[OrderMilestone]:
        """
        Pending milestones for an order, soonest deadline first.

        Each instance is annotated with hours_remaining (float, never
        negative) and urgency ("high" < 6h, "medium" < 24h, else "low").
        """
        now = now or timezone.now()
        milestones = list(
            OrderMilestone.objects.filter(
                order_id=order_id,
                approval_status=MilestoneApprovalStatus.PENDING,
            ).order_by("auto_approval_deadline")
        )
        for milestone in milestones:
            remaining = (milestone.auto_approval_deadline - now).total_seconds() / 3600
            milestone.hours_remaining = round(max(remaining, 0.0), 2)
            milestone.urgency = urgency_for(remaining)
        return milestones

    def get_overdue(
        self, now: datetime | None = None, limit: int | None = None
    ) -> list[OrderMilestone]:
        """Pending milestones whose deadline has passed, oldest deadline first."""
        queryset = OrderMilestone.objects.filter(
            approval_status=MilestoneApprovalStatus.PENDING,
            auto_approval_deadline__lte=now or timezone.now(),
        ).order_by("auto_approval_deadline", "created_at")
        if limit:
            queryset = queryset[:limit]
        return list(queryset)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _clean_photo_urls(photo_urls: Any) -> list[str]:
        if not isinstance(photo_urls, (list, tuple)):
            raise InvalidMilestoneSubmissionError("photo_urls must be a list")
        if not MIN_PHOTOS <= len(photo_urls) <= MAX_PHOTOS:
            raise InvalidMilestoneSubmissionError(
                f"Between {MIN_PHOTOS} and {MAX_PHOTOS} photos are required",
                details={"count": len(photo_urls)},
            )
        cleaned = []
        for url in photo_urls:
            try:
                _url_validator(url)
            except DjangoValidationError:
                raise InvalidMilestoneSubmissionError(
                    f"Invalid photo URL: {url}", details={"url": str(url)}
                )
            cleaned.append(url)
        return cleaned

    @staticmethod
    def _get_order(order_id: UUID | str) -> Order:
        try:
            return Order.objects.get(pk=order_id)
        except (Order.DoesNotExist, DjangoValidationError):
            raise OrderNotFoundError(
                f"Order {order_id} not found", details={"order_id": str(order_id)}
            )

    @staticmethod
    def _get_milestone(milestone_id: UUID | str) -> OrderMilestone:
        try:
            return OrderMilestone.objects.select_related("order").get(pk=milestone_id)
        except (OrderMilestone.DoesNotExist, DjangoValidationError):
            raise MilestoneNotFoundError(
                f"Milestone {milestone_id} not found",
                details={"milestone_id": str(milestone_id)},
            )

    @staticmethod
    def _notification_data(milestone: OrderMilestone) -> dict[str, Any]:
        return {
            "order_id": str(milestone.order_id),
            "milestone_id": str(milestone.id),
            "milestone": milestone.milestone,
        }
