import json

from django.core.management.base import BaseCommand, CommandError

from apps.orders.models import FulfillmentProvider
from apps.providers.adapters import ProviderError
from apps.providers.views import fetch_provider_balance


class Command(BaseCommand):
    help = "Print the reseller balance for one or both fulfillment providers"

    def add_arguments(self, parser):
        parser.add_argument(
            '--provider',
            choices=[p.value for p in FulfillmentProvider],
            help='Only check this provider (default: both)',
        )

    def handle(self, *args, **opts):
        providers = [opts['provider']] if opts.get('provider') else [p.value for p in FulfillmentProvider]
        failures = 0
        for provider in providers:
            try:
                data = fetch_provider_balance(provider)
            except ProviderError as exc:
                failures += 1
                self.stderr.write(self.style.ERROR(f"{provider}: {exc}"))
                continue
            self.stdout.write(self.style.SUCCESS(f"{provider}: {json.dumps(data, default=str)}"))
        if failures == len(providers):
            raise CommandError('No provider balance could be fetched')
