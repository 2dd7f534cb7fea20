"""
Promotion eligibility evaluation.

Pure and read-only: the evaluator looks at a promotion snapshot, its rules
and an order context, and never touches the database itself. Customer
lookups that need storage are injected as callables.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from django.utils import timezone

from apps.common.money import ZERO, to_decimal

from .conditions import (
    OPERATORS,
    CartTotalCondition,
    CustomerGroupCondition,
    FirstOrderCondition,
    ItemQuantityCondition,
    MalformedCondition,
    ProductCategoryCondition,
    UnsupportedCondition,
    compare,
    parse_condition,
)

logger = logging.getLogger(__name__)

# (customer_id, customer_group_id) -> is member
CustomerGroupLookup = Callable[[str | None, str], bool]
# customer_id -> is this the customer's first order
FirstOrderLookup = Callable[[str | None], bool]


def allow_any_customer_group(customer_id: str | None, customer_group_id: str) -> bool:
    return True


def treat_as_first_order(customer_id: str | None) -> bool:
    return True


# ===============================================================================
# Order Context
# ===============================================================================


@dataclass(frozen=True)
class OrderLine:
    """A single cart/order line as seen by promotions."""

    product_id: str
    quantity: Decimal | int = 1
    unit_price: Decimal = ZERO
    category_id: str | None = None

    @property
    def line_total(self) -> Decimal:
        return to_decimal(self.unit_price) * to_decimal(self.quantity)


@dataclass
class OrderContext:
    """
    Order snapshot evaluated against promotions.

    Attributes:
        total: Order total before promotions (excluding shipping).
        lines: Order lines.
        shipping_amount: Shipping charged on the order.
        currency_code: Currency of every amount in the context.
    """

    total: Decimal
    lines: Sequence[OrderLine] = field(default_factory=list)
    customer_id: str | None = None
    session_id: str | None = None
    shipping_amount: Decimal = ZERO
    currency_code: str = ""

    def __post_init__(self) -> None:
        self.total = to_decimal(self.total)
        self.shipping_amount = to_decimal(self.shipping_amount)

    @property
    def total_quantity(self) -> Decimal:
        return sum((to_decimal(line.quantity) for line in self.lines), ZERO)

    def line_for_product(self, product_id: str) -> OrderLine | None:
        return next((line for line in self.lines if line.product_id == product_id), None)


# ===============================================================================
# Result
# ===============================================================================


@dataclass(frozen=True)
class EligibilityResult:
    """
    Result of promotion eligibility evaluation.

    Attributes:
        is_eligible: Whether the promotion applies to the order.
        error_code: Machine-readable reason when not eligible.
            Codes: PROMOTION_INACTIVE, PROMOTION_NOT_STARTED, PROMOTION_EXPIRED,
            USAGE_LIMIT_REACHED, MIN_ORDER_NOT_MET, RULE_NOT_SATISFIED
        error_message: Human-readable reason when not eligible.
        failed_rule_id: Id of the first rule that did not hold, if any.
    """

    is_eligible: bool
    error_code: str = ""
    error_message: str = ""
    failed_rule_id: str | None = None

    def __bool__(self) -> bool:
        return self.is_eligible


ELIGIBLE = EligibilityResult(is_eligible=True)


# ===============================================================================
# Evaluator
# ===============================================================================


class PromotionEligibilityEvaluator:
    """
    Decides whether a promotion applies to an order.

    Checks run in a fixed order and the first failure wins: status, date
    window, usage limit, minimum order amount, then every active rule.

    Unknown rule operators fail the rule. Unknown condition kinds pass it,
    so a promotion carrying a not-yet-implemented condition still applies.
    """

    def __init__(
        self,
        customer_group_lookup: CustomerGroupLookup | None = None,
        first_order_lookup: FirstOrderLookup | None = None,
    ) -> None:
        self.customer_group_lookup = customer_group_lookup or allow_any_customer_group
        self.first_order_lookup = first_order_lookup or treat_as_first_order

    def is_valid(self, promotion: Any, rules: Iterable[Any], order: OrderContext, now: datetime | None = None) -> bool:
        return self.evaluate(promotion, rules, order, now).is_eligible

    def evaluate(
        self,
        promotion: Any,
        rules: Iterable[Any],
        order: OrderContext,
        now: datetime | None = None,
    ) -> EligibilityResult:
        now = now or timezone.now()

        if promotion.status != "active":
            return EligibilityResult(False, "PROMOTION_INACTIVE", f"Promotion is {promotion.status}")

        if promotion.start_date is not None and now < promotion.start_date:
            return EligibilityResult(False, "PROMOTION_NOT_STARTED", "Promotion has not started yet")
        if promotion.end_date is not None and now > promotion.end_date:
            return EligibilityResult(False, "PROMOTION_EXPIRED", "Promotion has ended")

        # A usage limit of 0 means unlimited
        if promotion.usage_limit and promotion.usage_count >= promotion.usage_limit:
            return EligibilityResult(False, "USAGE_LIMIT_REACHED", "Promotion usage limit reached")

        if promotion.min_order_amount is not None and order.total < to_decimal(promotion.min_order_amount):
            return EligibilityResult(
                False,
                "MIN_ORDER_NOT_MET",
                f"Minimum order amount is {promotion.min_order_amount}",
            )

        for rule in rules:
            if not rule.is_active:
                continue
            if not self.evaluate_rule(rule, order):
                rule_id = str(rule.id) if getattr(rule, "id", None) is not None else None
                return EligibilityResult(
                    False,
                    "RULE_NOT_SATISFIED",
                    f"Condition {rule.condition} {rule.operator} not satisfied",
                    failed_rule_id=rule_id,
                )

        return ELIGIBLE

    def evaluate_rule(self, rule: Any, order: OrderContext) -> bool:
        """Evaluate a single rule against the order."""
        condition = parse_condition(rule.condition, rule.value)

        if isinstance(condition, UnsupportedCondition):
            logger.debug("Condition %s has no evaluator, treating as satisfied", condition.kind)
            return True

        if rule.operator not in OPERATORS:
            logger.warning(
                "Unknown operator %s on %s rule",
                rule.operator,
                rule.condition,
                extra={"rule_id": str(getattr(rule, "id", "")), "operator": rule.operator},
            )
            return False

        if isinstance(condition, MalformedCondition):
            return False

        if isinstance(condition, CartTotalCondition):
            return compare(order.total, rule.operator, condition.threshold)

        if isinstance(condition, ItemQuantityCondition):
            if condition.product_id is not None:
                line = order.line_for_product(condition.product_id)
                if line is None:
                    return False
                return compare(to_decimal(line.quantity), rule.operator, condition.quantity)
            return compare(order.total_quantity, rule.operator, condition.quantity)

        if isinstance(condition, ProductCategoryCondition):
            return any(line.category_id == condition.category_id for line in order.lines)

        if isinstance(condition, CustomerGroupCondition):
            return self.customer_group_lookup(order.customer_id, condition.customer_group_id)

        if isinstance(condition, FirstOrderCondition):
            return self.first_order_lookup(order.customer_id)

        return False
