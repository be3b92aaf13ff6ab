from django.core.management.base import BaseCommand
from django_celery_beat.models import IntervalSchedule, PeriodicTask

from apps.orders.conf import get_fulfillment_settings

TASK_NAME = 'Fulfillment dispatcher tick'
TASK_PATH = 'apps.orders.tasks.run_fulfillment_tick'


class Command(BaseCommand):
    help = "Register (or update) the celery beat entry that drives the fulfillment dispatcher"

    def add_arguments(self, parser):
        parser.add_argument('--disable', action='store_true', help='Keep the entry but disable it')

    def handle(self, *args, **opts):
        conf = get_fulfillment_settings()
        every = max(1, int(conf.dispatch_interval.total_seconds()))
        schedule, _ = IntervalSchedule.objects.get_or_create(every=every, period=IntervalSchedule.SECONDS)
        task, created = PeriodicTask.objects.update_or_create(
            name=TASK_NAME,
            defaults={
                'task': TASK_PATH,
                'interval': schedule,
                'enabled': not opts['disable'],
                'description': 'Submits or polls at most one fulfillment item per run',
            },
        )
        verb = 'Created' if created else 'Updated'
        state = 'enabled' if task.enabled else 'disabled'
        self.stdout.write(self.style.SUCCESS(f"{verb} '{task.name}': every {every}s ({state})"))
