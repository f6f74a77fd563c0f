"""
Factory Boy factories for order test data.

Usage:
    from orders.tests.factories import OrderFactory, OrderMilestoneFactory

    # Order awaiting its fitting approval
    order = OrderFactory(status=OrderStatus.FITTING_SCHEDULED)

    # Pending milestone already past its deadline
    milestone = OrderMilestoneFactory(order=order, overdue=True)
"""

from datetime import timedelta
from decimal import Decimal

import factory
from django.contrib.auth import get_user_model
from django.utils import timezone

from orders.models import Order, OrderMilestone
from orders.state_machines import MilestoneApprovalStatus, MilestoneType, OrderStatus


class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = get_user_model()
        django_get_or_create = ("username",)
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.LazyAttribute(lambda o: f"{o.username}@example.com")
    password = factory.PostGenerationMethodCall("set_password", "testpass123")
    is_active = True


class OrderFactory(factory.django.DjangoModelFactory):
    """
    Factory for Order instances.

    Default creates a 250.00 order that has paid its deposit.
    """

    class Meta:
        model = Order

    customer = factory.SubFactory(UserFactory)
    tailor = factory.SubFactory(UserFactory)
    garment_type = "Kente dress"
    total_amount = Decimal("250.00")
    customer_phone = "0241234567"
    status = OrderStatus.DEPOSIT_PAID


class OrderMilestoneFactory(factory.django.DjangoModelFactory):
    """
    Factory for OrderMilestone instances.

    Default creates a PENDING fitting milestone due in 48 hours.
    Pass overdue=True for one whose deadline has already passed.
    """

    class Meta:
        model = OrderMilestone

    class Params:
        overdue = factory.Trait(
            auto_approval_deadline=factory.LazyFunction(
                lambda: timezone.now() - timedelta(hours=1)
            )
        )

    order = factory.SubFactory(OrderFactory, status=OrderStatus.FITTING_SCHEDULED)
    milestone = MilestoneType.FITTING_READY
    photo_urls = factory.LazyFunction(lambda: ["https://cdn.example.com/fit-1.jpg"])
    notes = ""
    submitted_by = factory.SelfAttribute("order.tailor")
    approval_status = MilestoneApprovalStatus.PENDING
    auto_approval_deadline = factory.LazyFunction(
        lambda: timezone.now() + timedelta(hours=48)
    )
