"""
Tests for exchange rate background tasks, schedules and management commands.
"""

from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from django_q.models import Schedule

from apps.common.types import Err, Ok
from apps.currencies.models import ExchangeRateRefresh
from apps.currencies.tasks import (
    REFRESH_SCHEDULE_NAME,
    REFRESH_TASK,
    refresh_exchange_rates_async,
    refresh_exchange_rates_task,
    schedule_exchange_rate_refresh,
)


class RefreshExchangeRatesTaskTests(TestCase):
    """⏰ Exchange rate refresh task"""

    @patch("apps.currencies.tasks.ExchangeRateRefreshService.refresh")
    def test_task_reports_refresh(self, mock_refresh):
        mock_refresh.return_value = Ok(
            ExchangeRateRefresh(
                provider="http",
                base_currency_code="USD",
                status="partial",
                updated_codes=["EUR"],
                failed_codes=["GBP"],
            )
        )

        result = refresh_exchange_rates_task()

        self.assertEqual(
            result,
            {"success": True, "status": "partial", "updated": ["EUR"], "failed": ["GBP"]},
        )

    @patch("apps.currencies.tasks.ExchangeRateRefreshService.refresh")
    def test_task_reports_failure(self, mock_refresh):
        mock_refresh.return_value = Err("Exchange rate refresh failed: down")

        result = refresh_exchange_rates_task()

        self.assertFalse(result["success"])
        self.assertIn("down", result["error"])

    @patch("apps.currencies.tasks.async_task", return_value="task-123")
    def test_async_queues_task(self, mock_async):
        self.assertEqual(refresh_exchange_rates_async(), "task-123")
        mock_async.assert_called_once_with(REFRESH_TASK, timeout=300)


class ScheduleExchangeRateRefreshTests(TestCase):
    """📅 Periodic refresh registration"""

    @patch("apps.currencies.tasks.schedule")
    def test_creates_schedule(self, mock_schedule):
        self.assertEqual(schedule_exchange_rate_refresh(), {"refresh_exchange_rates": "created"})
        mock_schedule.assert_called_once_with(
            REFRESH_TASK,
            schedule_type=Schedule.MINUTES,
            minutes=60,
            name=REFRESH_SCHEDULE_NAME,
        )

    @patch("apps.currencies.tasks.schedule")
    def test_existing_schedule_is_kept(self, mock_schedule):
        Schedule.objects.create(
            func=REFRESH_TASK,
            name=REFRESH_SCHEDULE_NAME,
            schedule_type=Schedule.MINUTES,
            minutes=60,
        )

        self.assertEqual(schedule_exchange_rate_refresh(), {"refresh_exchange_rates": "already_exists"})
        mock_schedule.assert_not_called()


class SetupScheduledTasksCommandTests(TestCase):
    """🛠️ setup_scheduled_tasks management command"""

    @patch("apps.common.management.commands.setup_scheduled_tasks.schedule_promotion_status_refresh")
    @patch("apps.common.management.commands.setup_scheduled_tasks.schedule_exchange_rate_refresh")
    def test_sets_up_every_category(self, mock_rates, mock_promotions):
        mock_rates.return_value = {"refresh_exchange_rates": "created"}
        mock_promotions.return_value = {"refresh_statuses": "already_exists"}
        out = StringIO()

        call_command("setup_scheduled_tasks", stdout=out)

        output = out.getvalue()
        self.assertIn("currencies_refresh_exchange_rates: Created successfully", output)
        self.assertIn("promotions_refresh_statuses: Task already exists", output)
        self.assertIn("1 new tasks created, 1 existing tasks skipped", output)

    @patch("apps.common.management.commands.setup_scheduled_tasks.schedule_promotion_status_refresh")
    @patch("apps.common.management.commands.setup_scheduled_tasks.schedule_exchange_rate_refresh")
    def test_currencies_only(self, mock_rates, mock_promotions):
        mock_rates.return_value = {"refresh_exchange_rates": "created"}

        call_command("setup_scheduled_tasks", "--currencies-only", stdout=StringIO())

        mock_promotions.assert_not_called()

    def test_conflicting_flags(self):
        with self.assertRaises(CommandError):
            call_command("setup_scheduled_tasks", "--currencies-only", "--promotions-only", stdout=StringIO())

    @patch("apps.common.management.commands.setup_scheduled_tasks.schedule_exchange_rate_refresh")
    def test_failures_become_command_errors(self, mock_rates):
        mock_rates.side_effect = RuntimeError("database unavailable")

        with self.assertRaises(CommandError):
            call_command("setup_scheduled_tasks", "--currencies-only", stdout=StringIO())


class RefreshExchangeRatesCommandTests(TestCase):
    """💱 refresh_exchange_rates management command"""

    @patch("apps.currencies.management.commands.refresh_exchange_rates.ExchangeRateRefreshService.refresh")
    def test_reports_refresh(self, mock_refresh):
        mock_refresh.return_value = Ok(
            ExchangeRateRefresh(status="success", updated_codes=["EUR", "GBP"], failed_codes=[])
        )
        out = StringIO()

        call_command("refresh_exchange_rates", stdout=out)

        self.assertIn("Refresh success: 2 rates updated", out.getvalue())

    @patch("apps.currencies.management.commands.refresh_exchange_rates.ExchangeRateRefreshService.refresh")
    def test_error_is_command_error(self, mock_refresh):
        mock_refresh.return_value = Err("No default currency configured")

        with self.assertRaises(CommandError):
            call_command("refresh_exchange_rates", stdout=StringIO())

    @patch("apps.currencies.management.commands.refresh_exchange_rates.refresh_exchange_rates_async")
    def test_async_flag_queues(self, mock_async):
        mock_async.return_value = "task-1"
        out = StringIO()

        call_command("refresh_exchange_rates", "--async", stdout=out)

        self.assertIn("task-1", out.getvalue())
