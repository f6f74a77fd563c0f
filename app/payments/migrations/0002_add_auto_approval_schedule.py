"""
Add celery-beat schedules for the auto-approval sweep and reconciliation.

Creates the periodic task that runs auto_approve_overdue_milestones
every 15 minutes to auto-approve milestones whose review deadline has
passed and release the matching escrow bucket, and a daily escrow
reconciliation check.
"""

from django.db import migrations

TASK_NAME = "Auto-approve Overdue Milestones"
RECONCILE_TASK_NAME = "Reconcile Escrow Accounts"


def create_periodic_task(apps, schema_editor):
    """Create the sweep and reconciliation periodic tasks."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    schedule, _ = IntervalSchedule.objects.get_or_create(
        every=15,
        period="minutes",
    )

    PeriodicTask.objects.get_or_create(
        name=TASK_NAME,
        defaults={
            "task": "payments.workers.auto_approval.auto_approve_overdue_milestones",
            "interval": schedule,
            "enabled": True,
            "description": (
                "Auto-approves PENDING milestones past their review deadline "
                "and releases the matching escrow bucket."
            ),
        },
    )

    daily, _ = IntervalSchedule.objects.get_or_create(
        every=1,
        period="days",
    )

    PeriodicTask.objects.get_or_create(
        name=RECONCILE_TASK_NAME,
        defaults={
            "task": "payments.tasks.reconcile_escrow_accounts",
            "interval": daily,
            "enabled": True,
            "description": (
                "Checks every open escrow account against its release history "
                "and logs mismatches for manual follow-up."
            ),
        },
    )


def remove_periodic_task(apps, schema_editor):
    """Remove both periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name__in=[TASK_NAME, RECONCILE_TASK_NAME]).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_task, remove_periodic_task),
    ]
