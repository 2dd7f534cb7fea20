"""
Currency background tasks.

Django-Q2 tasks for refreshing exchange rates.
"""

from __future__ import annotations

import logging
from typing import Any

from django.conf import settings
from django_q.models import Schedule
from django_q.tasks import async_task, schedule

from apps.common.logging import correlation_context

from .rate_providers import ExchangeRateRefreshService

logger = logging.getLogger(__name__)

REFRESH_TASK = "apps.currencies.tasks.refresh_exchange_rates_task"
REFRESH_SCHEDULE_NAME = "currency-refresh-exchange-rates"
_DEFAULT_REFRESH_INTERVAL_MINUTES = 60
TASK_TIME_LIMIT = 300


def refresh_exchange_rates_task() -> dict[str, Any]:
    """Refresh exchange rates from the configured provider."""
    with correlation_context("rates"):
        result = ExchangeRateRefreshService.refresh()

    if result.is_err():
        return {"success": False, "error": result.unwrap_err()}

    refresh = result.unwrap()
    return {
        "success": True,
        "status": refresh.status,
        "updated": refresh.updated_codes,
        "failed": refresh.failed_codes,
    }


def refresh_exchange_rates_async() -> str:
    """Queue an exchange rate refresh."""
    return async_task(REFRESH_TASK, timeout=TASK_TIME_LIMIT)


def schedule_exchange_rate_refresh() -> dict[str, str]:
    """Register the periodic refresh schedule once."""
    if Schedule.objects.filter(name=REFRESH_SCHEDULE_NAME).exists():
        return {"refresh_exchange_rates": "already_exists"}

    interval = getattr(settings, "EXCHANGE_RATES", {}).get(
        "REFRESH_INTERVAL_MINUTES", _DEFAULT_REFRESH_INTERVAL_MINUTES
    )
    schedule(
        REFRESH_TASK,
        schedule_type=Schedule.MINUTES,
        minutes=interval,
        name=REFRESH_SCHEDULE_NAME,
    )
    logger.info("✅ [CurrencyTasks] Scheduled exchange rate refresh every %d minutes", interval)
    return {"refresh_exchange_rates": "created"}
