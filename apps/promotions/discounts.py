"""
Discount resolution for eligible promotions.

A promotion can carry a legacy single discount (``discount_type`` and
``discount_value`` on the row) and any number of ``PromotionAction`` rows.
Both are modelled as ``DiscountStrategy`` variants; every strategy the
promotion has data for contributes and the contributions are summed.

Amounts are computed unrounded and rounded half away from zero once, at
the end of ``DiscountResolver.resolve``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from apps.common.money import ZERO, percent_of, quantize_half_up, to_decimal

from .eligibility import OrderContext, OrderLine

logger = logging.getLogger(__name__)


# ===============================================================================
# Data Classes for Results
# ===============================================================================


@dataclass
class DiscountResult:
    """
    Discount one promotion contributes to an order.

    Attributes:
        amount: Final discount, rounded to the order currency's decimals.
        breakdown: Unrounded contribution per strategy (``legacy``, ``actions``).
        action_amounts: Unrounded contribution per action id.
        capped: Whether the sum was clamped to the order value.
    """

    promotion_id: str
    amount: Decimal = ZERO
    breakdown: dict[str, Decimal] = field(default_factory=dict)
    action_amounts: dict[str, Decimal] = field(default_factory=dict)
    capped: bool = False


@dataclass
class AppliedPromotion:
    """An eligible promotion together with the discount it would give."""

    promotion: Any
    discount: DiscountResult
    actions: Sequence[Any] = field(default_factory=list)

    @property
    def priority(self) -> int:
        return self.promotion.priority

    @property
    def promotion_id(self) -> str:
        return str(self.promotion.id)


# ===============================================================================
# Strategies
# ===============================================================================


class DiscountStrategy(ABC):
    """One way a promotion can express its discount."""

    name: str = ""

    @abstractmethod
    def is_configured(self, promotion: Any, actions: Sequence[Any]) -> bool:
        """Whether the promotion carries data for this strategy."""

    @abstractmethod
    def calculate(self, promotion: Any, actions: Sequence[Any], order: OrderContext) -> Decimal:
        """Unrounded discount amount for the order."""


class LegacyDiscountStrategy(DiscountStrategy):
    """
    Single discount stored on the promotion row.

    - percentage:   total * value / 100, capped by max_discount_amount
    - fixed_amount: min(value, total)

    ``free_item`` and ``buy_x_get_y`` have no legacy calculation and
    contribute nothing; configure them as actions instead.
    """

    name = "legacy"

    def is_configured(self, promotion: Any, actions: Sequence[Any]) -> bool:
        return bool(promotion.discount_type)

    def calculate(self, promotion: Any, actions: Sequence[Any], order: OrderContext) -> Decimal:
        value = to_decimal(promotion.discount_value)

        if promotion.discount_type == "percentage":
            amount = percent_of(order.total, value)
            if promotion.max_discount_amount is not None:
                amount = min(amount, to_decimal(promotion.max_discount_amount))
            return amount

        if promotion.discount_type == "fixed_amount":
            return min(value, order.total)

        logger.debug("Legacy discount type %s contributes nothing", promotion.discount_type)
        return ZERO


class ActionDiscountStrategy(DiscountStrategy):
    """Sum of every ``PromotionAction`` contribution against its target."""

    name = "actions"

    def is_configured(self, promotion: Any, actions: Sequence[Any]) -> bool:
        return bool(actions)

    def calculate(self, promotion: Any, actions: Sequence[Any], order: OrderContext) -> Decimal:
        return sum(self.action_amounts(actions, order).values(), ZERO)

    def action_amounts(self, actions: Sequence[Any], order: OrderContext) -> dict[str, Decimal]:
        return {str(action.id): self.action_amount(action, order) for action in actions}

    @classmethod
    def action_amount(cls, action: Any, order: OrderContext) -> Decimal:
        value = to_decimal(action.value)
        metadata = action.metadata or {}

        if action.type == "discount_by_percentage":
            amount = percent_of(cls.target_base(action, order), value)
            cap = _metadata_value(metadata, "max_amount", "maxAmount")
            if cap is not None:
                amount = min(amount, cap)
            return amount

        if action.type == "discount_by_amount":
            return min(value, cls.target_base(action, order))

        if action.type == "discount_shipping":
            return min(percent_of(order.shipping_amount, value), order.shipping_amount)

        if action.type == "free_item":
            return cls._free_item_amount(action, value, metadata, order)

        logger.warning("Skipping promotion action with unknown type %s", action.type)
        return ZERO

    @staticmethod
    def target_lines(action: Any, order: OrderContext) -> list[OrderLine]:
        if action.target_type == "category":
            return [line for line in order.lines if line.category_id == action.target_id]
        if action.target_type == "product":
            return [line for line in order.lines if line.product_id == action.target_id]
        return list(order.lines)

    @classmethod
    def target_base(cls, action: Any, order: OrderContext) -> Decimal:
        """Amount the action discounts: the order total, or the targeted lines."""
        if action.target_type in ("category", "product"):
            return sum((line.line_total for line in cls.target_lines(action, order)), ZERO)
        return order.total

    @staticmethod
    def _free_item_amount(action: Any, value: Decimal, metadata: Mapping[str, Any], order: OrderContext) -> Decimal:
        product_id = action.target_id if action.target_type == "product" else None
        product_id = product_id or metadata.get("product_id") or metadata.get("productId")
        if not product_id:
            return ZERO

        line = order.line_for_product(str(product_id))
        if line is None:
            return ZERO

        free_units = min(max(int(value), 1), to_decimal(line.quantity))
        return to_decimal(line.unit_price) * free_units


def _metadata_value(metadata: Mapping[str, Any], *keys: str) -> Decimal | None:
    for key in keys:
        if metadata.get(key) is not None:
            try:
                return to_decimal(metadata[key])
            except (TypeError, ValueError):
                logger.warning("Ignoring malformed action metadata %s=%r", key, metadata[key])
    return None


DEFAULT_STRATEGIES: tuple[DiscountStrategy, ...] = (LegacyDiscountStrategy(), ActionDiscountStrategy())


# ===============================================================================
# Resolver
# ===============================================================================


class DiscountResolver:
    """Computes the discount one eligible promotion gives an order."""

    def __init__(self, strategies: Iterable[DiscountStrategy] = DEFAULT_STRATEGIES) -> None:
        self.strategies = tuple(strategies)

    def resolve(self, promotion: Any, actions: Sequence[Any], order: OrderContext, decimals: int = 2) -> DiscountResult:
        """
        Sum every configured strategy, clamp to the order value (total plus
        shipping) and round to ``decimals``.
        """
        result = DiscountResult(promotion_id=str(promotion.id))
        total = ZERO

        for strategy in self.strategies:
            if not strategy.is_configured(promotion, actions):
                continue
            amount = strategy.calculate(promotion, actions, order)
            result.breakdown[strategy.name] = amount
            if isinstance(strategy, ActionDiscountStrategy):
                result.action_amounts = strategy.action_amounts(actions, order)
            total += amount

        ceiling = order.total + order.shipping_amount
        if total > ceiling:
            total = ceiling
            result.capped = True

        result.amount = quantize_half_up(max(total, ZERO), decimals)
        return result


# ===============================================================================
# Selection (combinability)
# ===============================================================================


class PromotionSelector:
    """
    Picks which eligible promotions apply together.

    When any candidate is exclusive, only the single best exclusive one is
    applied: highest priority, then larger discount, then lowest id.
    Otherwise every candidate combines, highest priority first.
    """

    @classmethod
    def select(cls, candidates: Iterable[AppliedPromotion]) -> list[AppliedPromotion]:
        candidates = list(candidates)
        exclusive = [c for c in candidates if c.promotion.exclusive]

        if exclusive:
            winner = min(exclusive, key=lambda c: (-c.priority, -c.discount.amount, c.promotion_id))
            if len(candidates) > 1:
                logger.info(
                    "Exclusive promotion %s applied alone over %d other candidates",
                    winner.promotion_id,
                    len(candidates) - 1,
                    extra={"promotion_id": winner.promotion_id},
                )
            return [winner]

        return sorted(candidates, key=lambda c: (-c.priority, c.promotion_id))
