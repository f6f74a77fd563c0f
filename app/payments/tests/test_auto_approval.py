"""
Tests for the milestone auto-approval sweep.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.utils import timezone

from orders.models import MilestoneApproval, Order
from orders.services import AUTO_APPROVAL_COMMENT
from orders.state_machines import MilestoneAction, MilestoneApprovalStatus, MilestoneType, OrderStatus
from orders.tests.factories import OrderMilestoneFactory
from payments.models import EscrowAccount
from payments.workers.auto_approval import AutoApprovalSweep, auto_approve_overdue_milestones


@pytest.fixture
def sweep(milestone_service, orchestrator):
    return AutoApprovalSweep(milestones=milestone_service, orchestrator=orchestrator)


def _overdue(order, milestone_type, hours_late=1):
    return OrderMilestoneFactory(
        order=order,
        milestone=milestone_type,
        auto_approval_deadline=timezone.now() - timedelta(hours=hours_late),
    )


@pytest.mark.django_db
class TestAutoApprovalSweep:
    def test_approves_overdue_and_skips_due(self, sweep, funded_order):
        overdue = [
            _overdue(funded_order, MilestoneType.FABRIC_SELECTED, hours_late=3),
            _overdue(funded_order, MilestoneType.CUTTING_STARTED, hours_late=2),
            _overdue(funded_order, MilestoneType.FITTING_READY, hours_late=1),
        ]
        not_due = OrderMilestoneFactory(
            order=funded_order, milestone=MilestoneType.INITIAL_ASSEMBLY
        )

        result = sweep.run()

        assert result.processed == 3
        assert result.auto_approved == 3
        assert result.failed == 0
        assert result.approved_milestone_ids == [str(m.id) for m in overdue]
        for milestone in overdue:
            milestone.refresh_from_db()
            assert milestone.approval_status == MilestoneApprovalStatus.AUTO_APPROVED
        not_due.refresh_from_db()
        assert not_due.approval_status == MilestoneApprovalStatus.PENDING

        approval = MilestoneApproval.objects.get(milestone=overdue[2])
        assert approval.action == MilestoneAction.AUTO_APPROVED
        assert approval.actor is None
        assert approval.comment == AUTO_APPROVAL_COMMENT

    def test_fitting_auto_approval_releases_escrow(self, sweep, funded_order):
        _overdue(funded_order, MilestoneType.FITTING_READY)

        sweep.run()

        account = EscrowAccount.objects.get(order=funded_order)
        assert account.stage == "FINAL"
        assert account.balance == Decimal("62.50")

    def test_one_failure_does_not_stop_the_batch(self, sweep, milestone_service, funded_order):
        milestones = [
            _overdue(funded_order, MilestoneType.FABRIC_SELECTED, hours_late=3),
            _overdue(funded_order, MilestoneType.CUTTING_STARTED, hours_late=2),
            _overdue(funded_order, MilestoneType.INITIAL_ASSEMBLY, hours_late=1),
        ]
        broken_id = milestones[1].id
        real_resolve = milestone_service.resolve

        def resolve(milestone_id, *args, **kwargs):
            if milestone_id == broken_id:
                raise RuntimeError("storage unavailable")
            return real_resolve(milestone_id, *args, **kwargs)

        with patch.object(milestone_service, "resolve", side_effect=resolve):
            result = sweep.run()

        assert result.processed == 3
        assert result.auto_approved == 2
        assert result.failed == 1
        assert str(broken_id) not in result.approved_milestone_ids
        assert len(result.errors) == 1
        assert "storage unavailable" in result.errors[0]
        milestones[1].refresh_from_db()
        assert milestones[1].approval_status == MilestoneApprovalStatus.PENDING

    def test_release_failure_keeps_approval(self, sweep, funded_order):
        milestone = _overdue(funded_order, MilestoneType.FITTING_READY)
        Order.objects.filter(pk=funded_order.pk).update(status=OrderStatus.DISPUTED)

        result = sweep.run()

        milestone.refresh_from_db()
        assert milestone.approval_status == MilestoneApprovalStatus.AUTO_APPROVED
        assert result.auto_approved == 1
        assert result.failed == 0
        assert "payment release failed" in result.errors[0]
        assert EscrowAccount.objects.get(order=funded_order).balance == Decimal("187.50")

    def test_second_run_finds_nothing(self, sweep, funded_order):
        _overdue(funded_order, MilestoneType.FITTING_READY)
        sweep.run()

        result = sweep.run()

        assert result.processed == 0
        assert result.approved_milestone_ids == []

    def test_concurrent_resolution_is_skipped(self, sweep, milestone_service, funded_order):
        milestone = _overdue(funded_order, MilestoneType.FITTING_READY)
        stale = milestone_service.get_overdue()

        milestone_service.resolve(
            milestone.id, MilestoneAction.APPROVED, actor=funded_order.customer
        )
        with patch.object(milestone_service, "get_overdue", return_value=stale):
            result = sweep.run()

        assert result.processed == 1
        assert result.auto_approved == 0
        assert result.failed == 0

    def test_batch_size_limits_run(self, milestone_service, orchestrator, funded_order):
        for hours, milestone_type in enumerate(
            [MilestoneType.FABRIC_SELECTED, MilestoneType.CUTTING_STARTED], start=1
        ):
            _overdue(funded_order, milestone_type, hours_late=hours)

        result = AutoApprovalSweep(
            milestones=milestone_service, orchestrator=orchestrator, batch_size=1
        ).run()

        assert result.processed == 1


@pytest.mark.django_db
class TestAutoApproveTask:
    def test_task_returns_summary(self, funded_order):
        _overdue(funded_order, MilestoneType.FABRIC_SELECTED)

        summary = auto_approve_overdue_milestones.apply().get()

        assert summary["processed"] == 1
        assert summary["auto_approved"] == 1
        assert summary["errors"] == []
