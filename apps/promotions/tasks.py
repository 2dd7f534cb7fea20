"""
Promotion background tasks.

Django-Q2 tasks that keep promotion statuses in line with their dates.
"""

from __future__ import annotations

import logging

from django_q.models import Schedule
from django_q.tasks import schedule

from apps.common.logging import correlation_context

from .services import PromotionService

logger = logging.getLogger(__name__)

REFRESH_STATUS_TASK = "apps.promotions.tasks.refresh_promotion_statuses_task"
REFRESH_STATUS_SCHEDULE_NAME = "promotion-refresh-statuses"


def refresh_promotion_statuses_task() -> dict[str, int]:
    """Activate started promotions and expire ended ones."""
    with correlation_context("promotions"):
        return PromotionService.refresh_statuses()


def schedule_promotion_status_refresh(minutes: int = 15) -> dict[str, str]:
    """Register the periodic status refresh once."""
    if Schedule.objects.filter(name=REFRESH_STATUS_SCHEDULE_NAME).exists():
        return {"refresh_statuses": "already_exists"}

    schedule(
        REFRESH_STATUS_TASK,
        schedule_type=Schedule.MINUTES,
        minutes=minutes,
        name=REFRESH_STATUS_SCHEDULE_NAME,
    )
    logger.info("✅ [PromotionTasks] Scheduled status refresh every %d minutes", minutes)
    return {"refresh_statuses": "created"}
