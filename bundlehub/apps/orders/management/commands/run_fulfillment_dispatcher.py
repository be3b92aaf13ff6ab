import signal
import threading

from django.core.management.base import BaseCommand

from apps.orders.dispatcher import FulfillmentDispatcher


class Command(BaseCommand):
    help = "Run the fulfillment dispatcher in this process (alternative to celery beat)"

    def add_arguments(self, parser):
        parser.add_argument('--once', action='store_true', help='Run a single tick and exit')

    def handle(self, *args, **opts):
        dispatcher = FulfillmentDispatcher()
        if opts['once']:
            stage = dispatcher.tick()
            self.stdout.write(f"Tick: {stage or 'nothing to do'}")
            return

        if not dispatcher.start():
            self.stderr.write(self.style.WARNING('Dispatcher not started (no provider configured)'))
            return

        done = threading.Event()

        def _shutdown(signum, frame):
            done.set()

        signal.signal(signal.SIGINT, _shutdown)
        signal.signal(signal.SIGTERM, _shutdown)
        self.stdout.write(self.style.SUCCESS(
            f"Dispatcher running every {dispatcher.conf.dispatch_interval_ms}ms; Ctrl+C to stop"
        ))
        while not done.wait(1):
            pass
        dispatcher.stop(timeout=30)
