from django.core.management.base import BaseCommand, CommandError

from apps.orders.services import OrderNotFoundError, queue_order_fulfillment


class Command(BaseCommand):
    help = "Re-run fulfillment enqueue for a paid order"

    def add_arguments(self, parser):
        parser.add_argument('order_id', help='Order ID (UUID)')

    def handle(self, *args, **opts):
        try:
            result = queue_order_fulfillment(opts['order_id'])
        except OrderNotFoundError as exc:
            raise CommandError(str(exc))
        summary = result.as_dict()
        if not result.queued:
            self.stdout.write(self.style.WARNING(f"Not queued: {summary}"))
            return
        self.stdout.write(self.style.SUCCESS(f"Queued: {summary}"))
