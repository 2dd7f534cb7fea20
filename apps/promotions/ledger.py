"""
Promotion usage ledger.

Every redemption is one ``PromotionUsage`` row plus one increment of
``Promotion.usage_count``, committed together. The capacity check and the
increment are a single conditional UPDATE, so concurrent redemptions of the
same promotion can never push ``usage_count`` past ``usage_limit``.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from django.db import IntegrityError, transaction
from django.db.models import F, Q
from django.utils import timezone

from apps.common.money import ZERO, to_decimal

from .exceptions import CapacityExceededError, DuplicateUsageError, PromotionNotFoundError
from .models import Promotion, PromotionUsage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageReconciliation:
    """Comparison of a promotion's counter with its ledger rows."""

    promotion_id: str
    usage_count: int
    usage_rows: int
    usage_limit: int

    @property
    def is_consistent(self) -> bool:
        return self.usage_count == self.usage_rows

    @property
    def drift(self) -> int:
        return self.usage_count - self.usage_rows


def _parse_promotion_id(promotion_id: Any) -> uuid.UUID:
    try:
        return promotion_id if isinstance(promotion_id, uuid.UUID) else uuid.UUID(str(promotion_id))
    except ValueError as e:
        raise PromotionNotFoundError(str(promotion_id)) from e


class UsageLedger:
    """Records and audits promotion redemptions."""

    @classmethod
    def record_usage(  # noqa: PLR0913
        cls,
        promotion_id: Any,
        order_id: str,
        discount_amount: Decimal | int | float | str = ZERO,
        customer_id: str | None = None,
        session_id: str | None = None,
        currency_code: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> PromotionUsage:
        """
        Record one redemption.

        Raises:
            PromotionNotFoundError: the promotion does not exist.
            CapacityExceededError: the usage limit was reached first.
            DuplicateUsageError: the promotion was already redeemed on ``order_id``.
        """
        pk = _parse_promotion_id(promotion_id)
        amount = to_decimal(discount_amount)

        try:
            with transaction.atomic():
                # Capacity check and increment in one statement
                updated = (
                    Promotion.objects.filter(pk=pk)
                    .filter(Q(usage_limit=0) | Q(usage_count__lt=F("usage_limit")))
                    .update(usage_count=F("usage_count") + 1, updated_at=timezone.now())
                )
                if not updated:
                    usage_limit = Promotion.objects.filter(pk=pk).values_list("usage_limit", flat=True).first()
                    if usage_limit is None:
                        raise PromotionNotFoundError(str(pk))
                    logger.warning(
                        "Promotion %s capacity exhausted, rejecting redemption for order %s",
                        pk,
                        order_id,
                        extra={"promotion_id": str(pk), "order_id": order_id, "usage_limit": usage_limit},
                    )
                    raise CapacityExceededError(str(pk), usage_limit)

                usage = PromotionUsage.objects.create(
                    promotion_id=pk,
                    order_id=order_id,
                    customer_id=customer_id or "",
                    session_id=session_id or "",
                    discount_amount=amount,
                    currency_code=currency_code,
                    metadata=metadata or {},
                )
        except IntegrityError as e:
            raise DuplicateUsageError(f"Promotion {pk} already redeemed on order {order_id}") from e

        logger.info(
            "Promotion %s redeemed on order %s for %s",
            pk,
            order_id,
            amount,
            extra={
                "promotion_id": str(pk),
                "order_id": order_id,
                "discount_amount": str(amount),
                "usage_id": str(usage.id),
            },
        )
        return usage

    @classmethod
    def count_usage(cls, promotion_id: Any) -> int:
        return PromotionUsage.objects.filter(promotion_id=_parse_promotion_id(promotion_id)).count()

    @classmethod
    def list_usage(cls, promotion_id: Any, limit: int | None = None) -> list[PromotionUsage]:
        """Redemptions of a promotion, newest first."""
        queryset = PromotionUsage.objects.filter(promotion_id=_parse_promotion_id(promotion_id)).order_by("-applied_at")
        if limit is not None:
            queryset = queryset[:limit]
        return list(queryset)

    @classmethod
    def reconcile(cls, promotion_id: Any) -> UsageReconciliation | None:
        """Audit the counter against the ledger. ``None`` when the promotion is missing."""
        pk = _parse_promotion_id(promotion_id)
        promotion = Promotion.objects.filter(pk=pk).only("id", "usage_count", "usage_limit").first()
        if promotion is None:
            return None

        reconciliation = UsageReconciliation(
            promotion_id=str(pk),
            usage_count=promotion.usage_count,
            usage_rows=cls.count_usage(pk),
            usage_limit=promotion.usage_limit,
        )
        if not reconciliation.is_consistent:
            logger.error(
                "Promotion %s usage counter drift: counter=%d rows=%d",
                pk,
                reconciliation.usage_count,
                reconciliation.usage_rows,
                extra={"promotion_id": str(pk), "drift": reconciliation.drift},
            )
        return reconciliation
