"""
Management command to set up all scheduled tasks for the pricing platform.

Registers the exchange rate refresh and the promotion status refresh with Django-Q2.
"""

from typing import Any

from django.core.management.base import BaseCommand, CommandError, CommandParser

from apps.currencies.tasks import schedule_exchange_rate_refresh
from apps.promotions.tasks import schedule_promotion_status_refresh


class Command(BaseCommand):
    help = 'Set up all scheduled tasks for the pricing platform (exchange rates + promotion statuses)'

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument(
            '--currencies-only',
            action='store_true',
            help='Set up only the exchange rate refresh',
        )
        parser.add_argument(
            '--promotions-only',
            action='store_true',
            help='Set up only the promotion status refresh',
        )

    def _setup_task_category(self, category_name: str, emoji: str, setup_function: Any, results_dict: dict[str, str]) -> None:
        """Set up a category of scheduled tasks and display results."""
        self.stdout.write('')
        self.stdout.write(f'{emoji} Setting up {category_name} tasks...')

        task_results = setup_function()
        results_dict.update({f"{category_name}_{k}": v for k, v in task_results.items()})

        for task_name, result in task_results.items():
            if result == 'already_exists':
                self.stdout.write(self.style.WARNING(f'  - {category_name}_{task_name}: Task already exists (skipped)'))
            else:
                self.stdout.write(self.style.SUCCESS(f'  - {category_name}_{task_name}: Created successfully'))

    def handle(self, *args: Any, **options: Any) -> None:
        currencies_only = options.get('currencies_only', False)
        promotions_only = options.get('promotions_only', False)
        if currencies_only and promotions_only:
            raise CommandError('Cannot specify both --currencies-only and --promotions-only')

        self.stdout.write('🚀 Setting up pricing platform scheduled tasks...')
        all_results: dict[str, str] = {}

        try:
            if not promotions_only:
                self._setup_task_category('currencies', '💱', schedule_exchange_rate_refresh, all_results)
            if not currencies_only:
                self._setup_task_category('promotions', '🏷️', schedule_promotion_status_refresh, all_results)
        except Exception as e:
            raise CommandError(f'❌ Failed to set up scheduled tasks: {e}') from e

        created_tasks = sum(1 for v in all_results.values() if v == 'created')
        existing_tasks = len(all_results) - created_tasks

        self.stdout.write('')
        self.stdout.write('🔧 Start workers: python manage.py qcluster')
        self.stdout.write(f'📊 Summary: {created_tasks} new tasks created, {existing_tasks} existing tasks skipped')
