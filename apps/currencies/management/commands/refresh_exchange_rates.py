"""
Refresh exchange rates from the configured provider.
"""

from typing import Any

from django.core.management.base import BaseCommand, CommandError, CommandParser

from apps.currencies.rate_providers import ExchangeRateRefreshService, HTTPExchangeRateProvider
from apps.currencies.tasks import refresh_exchange_rates_async


class Command(BaseCommand):
    help = 'Refresh exchange rates relative to the default currency'

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument(
            '--async',
            action='store_true',
            dest='run_async',
            help='Queue the refresh on the task cluster instead of running it now',
        )
        parser.add_argument(
            '--url',
            help='Provider URL (defaults to EXCHANGE_RATES["PROVIDER_URL"])',
        )

    def handle(self, *args: Any, **options: Any) -> None:
        if options['run_async']:
            task_id = refresh_exchange_rates_async()
            self.stdout.write(self.style.SUCCESS(f'⏰ Exchange rate refresh queued: {task_id}'))
            return

        result = ExchangeRateRefreshService.refresh(HTTPExchangeRateProvider(url=options.get('url')))
        if result.is_err():
            raise CommandError(f'❌ {result.unwrap_err()}')

        refresh = result.unwrap()
        self.stdout.write(self.style.SUCCESS(f'✅ Refresh {refresh.status}: {len(refresh.updated_codes)} rates updated'))
        if refresh.failed_codes:
            self.stdout.write(self.style.WARNING(f'⚠️ Not updated: {", ".join(refresh.failed_codes)}'))
