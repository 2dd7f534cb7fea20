"""
Promotion services for the pricing platform.
Promotion lookup and administration, order evaluation and the commit path
that records redemptions in the usage ledger.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from apps.common.money import ZERO, quantize_half_up
from apps.common.types import Err, Ok, Result
from apps.currencies.services import CurrencyService

from .discounts import AppliedPromotion, DiscountResolver, PromotionSelector
from .eligibility import EligibilityResult, OrderContext, PromotionEligibilityEvaluator
from .ledger import UsageLedger
from .models import Promotion, PromotionAction, PromotionRule, PromotionUsage

logger = logging.getLogger(__name__)

PROMOTION_FIELDS = frozenset(
    {
        "name",
        "description",
        "status",
        "scope",
        "priority",
        "start_date",
        "end_date",
        "usage_limit",
        "discount_type",
        "discount_value",
        "min_order_amount",
        "max_discount_amount",
        "exclusive",
        "coupon_id",
        "merchant_id",
        "metadata",
    }
)
RULE_FIELDS = frozenset({"name", "condition", "operator", "value", "is_active"})
ACTION_FIELDS = frozenset({"type", "value", "target_type", "target_id", "metadata"})


# ===============================================================================
# Data Classes for Results
# ===============================================================================


@dataclass
class PromotionDetails:
    promotion: Promotion
    rules: list[PromotionRule]
    actions: list[PromotionAction]


@dataclass
class OrderPromotionEvaluation:
    """
    Promotions that apply to an order.

    Attributes:
        applied: Selected promotions, highest priority first.
        rejected: Eligibility result per promotion id that did not qualify.
        total_discount: Sum of applied discounts, clamped to the order value.
    """

    applied: list[AppliedPromotion] = field(default_factory=list)
    rejected: dict[str, EligibilityResult] = field(default_factory=dict)
    total_discount: Decimal = ZERO
    currency_code: str = ""


@dataclass
class OrderPromotionApplication:
    evaluation: OrderPromotionEvaluation
    usages: list[PromotionUsage] = field(default_factory=list)


def _pick_fields(data: Mapping[str, Any], allowed: frozenset[str]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if key in allowed}


def _validation_message(error: DjangoValidationError) -> str:
    if hasattr(error, "message_dict"):
        return "; ".join(f"{key}: {', '.join(messages)}" for key, messages in error.message_dict.items())
    return "; ".join(error.messages)


# ===============================================================================
# Promotion Service
# ===============================================================================


class PromotionService:
    """Promotion store, administration and order evaluation."""

    evaluator = PromotionEligibilityEvaluator()
    resolver = DiscountResolver()

    # ---------------------------------------------------------------------------
    # Lookups
    # ---------------------------------------------------------------------------

    @classmethod
    def find_active(
        cls,
        scope: str | Sequence[str] | None = None,
        merchant_id: str | None = None,
        now: datetime | None = None,
    ) -> list[Promotion]:
        """Active promotions inside their date window, highest priority first."""
        now = now or timezone.now()
        queryset = Promotion.objects.filter(status="active", start_date__lte=now).filter(
            Q(end_date__isnull=True) | Q(end_date__gte=now)
        )
        if scope:
            scopes = [scope] if isinstance(scope, str) else list(scope)
            queryset = queryset.filter(scope__in=scopes)
        if merchant_id:
            queryset = queryset.filter(merchant_id=merchant_id)
        return list(queryset.order_by("-priority", "created_at"))

    @classmethod
    def get_promotion(cls, promotion_id: Any) -> Promotion | None:
        try:
            return Promotion.objects.filter(pk=promotion_id).first()
        except DjangoValidationError:
            return None

    @classmethod
    def find_rules(cls, promotion_id: Any) -> list[PromotionRule]:
        return list(PromotionRule.objects.filter(promotion_id=promotion_id).order_by("created_at"))

    @classmethod
    def find_actions(cls, promotion_id: Any) -> list[PromotionAction]:
        return list(PromotionAction.objects.filter(promotion_id=promotion_id).order_by("created_at"))

    @classmethod
    def get_with_details(cls, promotion_id: Any) -> PromotionDetails | None:
        promotion = cls.get_promotion(promotion_id)
        if promotion is None:
            return None
        return PromotionDetails(
            promotion=promotion,
            rules=cls.find_rules(promotion.pk),
            actions=cls.find_actions(promotion.pk),
        )

    # ---------------------------------------------------------------------------
    # Administration
    # ---------------------------------------------------------------------------

    @classmethod
    def create_promotion(
        cls,
        data: Mapping[str, Any],
        rules: Iterable[Mapping[str, Any]] = (),
        actions: Iterable[Mapping[str, Any]] = (),
    ) -> Result[Promotion, str]:
        """
        Create a promotion with its rules and actions in one transaction.

        Without an explicit status, a promotion starting in the future is
        created ``scheduled``, otherwise ``active``.
        """
        fields = _pick_fields(data, PROMOTION_FIELDS)
        fields.setdefault("start_date", timezone.now())
        if "status" not in fields:
            fields["status"] = "scheduled" if fields["start_date"] > timezone.now() else "active"

        try:
            with transaction.atomic():
                promotion = Promotion(**fields)
                promotion.full_clean()
                promotion.save()
                cls._replace_rules(promotion, rules)
                cls._replace_actions(promotion, actions)
        except DjangoValidationError as e:
            return Err(_validation_message(e))

        return Ok(promotion)

    @classmethod
    def update_promotion(
        cls,
        promotion_id: Any,
        data: Mapping[str, Any],
        rules: Iterable[Mapping[str, Any]] | None = None,
        actions: Iterable[Mapping[str, Any]] | None = None,
    ) -> Result[Promotion, str]:
        """
        Update promotion fields. Supplied rule/action lists replace the
        existing ones; ``None`` leaves them untouched.
        """
        try:
            with transaction.atomic():
                promotion = Promotion.objects.select_for_update().filter(pk=promotion_id).first()
                if promotion is None:
                    return Err(f"Promotion {promotion_id} not found")

                for key, value in _pick_fields(data, PROMOTION_FIELDS).items():
                    setattr(promotion, key, value)
                promotion.full_clean()
                promotion.save()

                if rules is not None:
                    cls._replace_rules(promotion, rules)
                if actions is not None:
                    cls._replace_actions(promotion, actions)
        except DjangoValidationError as e:
            return Err(_validation_message(e))

        return Ok(promotion)

    @classmethod
    @transaction.atomic
    def delete_promotion(cls, promotion_id: Any) -> Result[bool, str]:
        """
        Delete a promotion with its rules and actions.

        Redeemed promotions are kept for the ledger; disable them instead.
        """
        promotion = cls.get_promotion(promotion_id)
        if promotion is None:
            return Ok(False)
        if promotion.usages.exists():
            return Err("Promotion has recorded usage and cannot be deleted; disable it instead")

        promotion.delete()
        logger.info("Promotion deleted: %s", promotion.name, extra={"promotion_id": str(promotion_id)})
        return Ok(True)

    @staticmethod
    def _replace_rules(promotion: Promotion, rules: Iterable[Mapping[str, Any]]) -> None:
        promotion.rules.all().delete()
        for data in rules:
            rule = PromotionRule(promotion=promotion, **_pick_fields(data, RULE_FIELDS))
            rule.full_clean()
            rule.save()

    @staticmethod
    def _replace_actions(promotion: Promotion, actions: Iterable[Mapping[str, Any]]) -> None:
        promotion.actions.all().delete()
        for data in actions:
            action = PromotionAction(promotion=promotion, **_pick_fields(data, ACTION_FIELDS))
            action.full_clean()
            action.save()

    @classmethod
    def refresh_statuses(cls, now: datetime | None = None) -> dict[str, int]:
        """Activate started scheduled promotions and expire ended active ones."""
        now = now or timezone.now()
        with transaction.atomic():
            activated = Promotion.objects.filter(status="scheduled", start_date__lte=now).filter(
                Q(end_date__isnull=True) | Q(end_date__gte=now)
            ).update(status="active", updated_at=now)
            expired = Promotion.objects.filter(
                status__in=("active", "scheduled"), end_date__isnull=False, end_date__lt=now
            ).update(status="expired", updated_at=now)

        if activated or expired:
            logger.info(
                "Promotion statuses refreshed: %d activated, %d expired",
                activated,
                expired,
                extra={"activated": activated, "expired": expired},
            )
        return {"activated": activated, "expired": expired}

    # ---------------------------------------------------------------------------
    # Order evaluation
    # ---------------------------------------------------------------------------

    @classmethod
    def evaluate_order(
        cls,
        order: OrderContext,
        scope: str | Sequence[str] | None = None,
        merchant_id: str | None = None,
        evaluator: PromotionEligibilityEvaluator | None = None,
        now: datetime | None = None,
    ) -> OrderPromotionEvaluation:
        """
        Evaluate every active promotion against ``order``. Read-only.

        Eligibility, then discount resolution, then selection across the
        eligible set (exclusive promotions apply alone).
        """
        evaluator = evaluator or cls.evaluator
        now = now or timezone.now()
        decimals = cls._decimals_for(order.currency_code)

        result = OrderPromotionEvaluation(currency_code=order.currency_code)
        candidates: list[AppliedPromotion] = []

        for promotion in cls.find_active(scope, merchant_id, now):
            eligibility = evaluator.evaluate(promotion, cls.find_rules(promotion.pk), order, now)
            if not eligibility.is_eligible:
                result.rejected[str(promotion.id)] = eligibility
                continue

            actions = cls.find_actions(promotion.pk)
            discount = cls.resolver.resolve(promotion, actions, order, decimals)
            candidates.append(AppliedPromotion(promotion=promotion, discount=discount, actions=actions))

        result.applied = PromotionSelector.select(candidates)
        total = sum((applied.discount.amount for applied in result.applied), ZERO)
        result.total_discount = quantize_half_up(min(total, order.total + order.shipping_amount), decimals)
        return result

    @classmethod
    def apply_to_order(
        cls,
        order: OrderContext,
        order_id: str,
        scope: str | Sequence[str] | None = None,
        merchant_id: str | None = None,
        evaluator: PromotionEligibilityEvaluator | None = None,
    ) -> OrderPromotionApplication:
        """
        Commit path: evaluate the order and record a redemption per applied
        promotion, all in one transaction.

        Raises:
            CapacityExceededError: a selected promotion ran out of capacity
                before it could be recorded. Nothing is recorded.
        """
        with transaction.atomic():
            evaluation = cls.evaluate_order(order, scope, merchant_id, evaluator)
            usages = [
                UsageLedger.record_usage(
                    applied.promotion.pk,
                    order_id,
                    discount_amount=applied.discount.amount,
                    customer_id=order.customer_id,
                    session_id=order.session_id,
                    currency_code=order.currency_code,
                    metadata={"breakdown": {key: str(value) for key, value in applied.discount.breakdown.items()}},
                )
                for applied in evaluation.applied
            ]

        return OrderPromotionApplication(evaluation=evaluation, usages=usages)

    @staticmethod
    def _decimals_for(currency_code: str) -> int:
        if currency_code:
            currency = CurrencyService.get_by_code(currency_code)
            if currency is not None:
                return currency.decimals
        return getattr(settings, "PRICING", {}).get("DEFAULT_DECIMALS", 2)
