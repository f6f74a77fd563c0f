"""
Add celery-beat schedule for settlement recovery.

Creates the periodic task that runs recover_stalled_settlements every
30 minutes to re-drive approved milestones whose escrow release did not
happen and to re-request final payments that were never created.
"""

from django.db import migrations

TASK_NAME = "Recover Stalled Settlements"


def create_periodic_task(apps, schema_editor):
    """Create the recovery periodic task."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    schedule, _ = IntervalSchedule.objects.get_or_create(
        every=30,
        period="minutes",
    )

    PeriodicTask.objects.get_or_create(
        name=TASK_NAME,
        defaults={
            "task": "payments.workers.settlement_recovery.recover_stalled_settlements",
            "interval": schedule,
            "enabled": True,
            "description": (
                "Re-drives approved milestones whose escrow bucket is still held "
                "and re-requests missing final payments."
            ),
        },
    )


def remove_periodic_task(apps, schema_editor):
    """Remove the periodic task on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name=TASK_NAME).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0002_add_auto_approval_schedule"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_task, remove_periodic_task),
    ]
