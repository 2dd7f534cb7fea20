"""
Signal handlers for the Promotions app.
Logs promotion lifecycle changes (status, limits, exclusivity) so they can be
traced next to redemption logs.
"""

from __future__ import annotations

import logging
from typing import Any

from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver

from .models import Promotion

logger = logging.getLogger(__name__)

TRACKED_FIELDS = ("status", "usage_limit", "exclusive", "priority")


def get_model_changes(instance: Any, fields: tuple[str, ...]) -> tuple[dict, dict]:
    """Get old and new values for specified fields."""
    old_values = {}
    new_values = {}

    for field in fields:
        old_value = getattr(instance, f"_old_{field}", None)
        new_value = getattr(instance, field, None)

        if old_value != new_value:
            old_values[field] = old_value
            new_values[field] = new_value

    return old_values, new_values


@receiver(pre_save, sender=Promotion)
def promotion_pre_save(sender: type, instance: Promotion, **kwargs: Any) -> None:
    """Store old values before promotion save."""
    if instance._state.adding:
        return
    old_instance = Promotion.objects.filter(pk=instance.pk).only(*TRACKED_FIELDS).first()
    if old_instance is None:
        return
    for field in TRACKED_FIELDS:
        setattr(instance, f"_old_{field}", getattr(old_instance, field))


@receiver(post_save, sender=Promotion)
def promotion_post_save(sender: type, instance: Promotion, created: bool, **kwargs: Any) -> None:
    """Log promotion creation and tracked field changes."""
    if created:
        logger.info(
            "Promotion created: %s",
            instance.name,
            extra={"promotion_id": str(instance.pk), "status": instance.status},
        )
        return

    if not hasattr(instance, "_old_status"):
        return
    old_values, new_values = get_model_changes(instance, TRACKED_FIELDS)
    if old_values:
        logger.info(
            "Promotion updated: %s %s -> %s",
            instance.name,
            old_values,
            new_values,
            extra={"promotion_id": str(instance.pk), "old_values": old_values, "new_values": new_values},
        )
