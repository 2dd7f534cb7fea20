"""
Typed promotion rule conditions.

A rule's stored ``value`` is parsed into one variant of the ``Condition``
union, keyed by the rule's condition kind. Each variant carries only the
payload its kind understands. A malformed payload for a known kind yields a
``MalformedCondition`` (always false); a kind that is not implemented yet
yields an ``UnsupportedCondition`` (always true).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from apps.common.money import to_decimal

logger = logging.getLogger(__name__)

# Condition kinds with an evaluator
CART_TOTAL = "cart_total"
ITEM_QUANTITY = "item_quantity"
PRODUCT_CATEGORY = "product_category"
CUSTOMER_GROUP = "customer_group"
FIRST_ORDER = "first_order"

SUPPORTED_KINDS = frozenset({CART_TOTAL, ITEM_QUANTITY, PRODUCT_CATEGORY, CUSTOMER_GROUP, FIRST_ORDER})

# Stored by the admin but not evaluated
RESERVED_KINDS = frozenset({"date_range", "time_of_day", "day_of_week", "shipping_method", "payment_method"})

OPERATORS = frozenset({"eq", "neq", "gt", "lt", "gte", "lte"})


@dataclass(frozen=True)
class CartTotalCondition:
    threshold: Decimal
    kind: str = CART_TOTAL


@dataclass(frozen=True)
class ItemQuantityCondition:
    """Quantity of ``product_id``'s line, or of the whole cart when unset."""

    quantity: Decimal
    product_id: str | None = None
    kind: str = ITEM_QUANTITY


@dataclass(frozen=True)
class ProductCategoryCondition:
    category_id: str
    kind: str = PRODUCT_CATEGORY


@dataclass(frozen=True)
class CustomerGroupCondition:
    customer_group_id: str
    kind: str = CUSTOMER_GROUP


@dataclass(frozen=True)
class FirstOrderCondition:
    kind: str = FIRST_ORDER


@dataclass(frozen=True)
class MalformedCondition:
    """Known kind whose stored payload could not be read."""

    kind: str
    reason: str
    raw: Any = None


@dataclass(frozen=True)
class UnsupportedCondition:
    """Kind with no evaluator (reserved or unknown)."""

    kind: str
    raw: Any = field(default=None, compare=False)


Condition = (
    CartTotalCondition
    | ItemQuantityCondition
    | ProductCategoryCondition
    | CustomerGroupCondition
    | FirstOrderCondition
    | MalformedCondition
    | UnsupportedCondition
)


def _pick(raw: Any, *keys: str) -> Any:
    """First present key of a mapping payload, accepting camelCase and snake_case."""
    if not isinstance(raw, Mapping):
        return None
    for key in keys:
        if raw.get(key) not in (None, ""):
            return raw[key]
    return None


def _number(raw: Any, *keys: str) -> Decimal:
    """A bare number, or a number under one of ``keys``."""
    value = raw if not isinstance(raw, Mapping) else _pick(raw, *keys)
    if value is None:
        raise ValueError("missing numeric value")
    number = to_decimal(value)
    if not number.is_finite():
        raise ValueError(f"non-finite value {value!r}")
    return number


def parse_condition(kind: str, raw: Any) -> Condition:
    """Parse a stored rule ``value`` for condition ``kind``."""
    try:
        if kind == CART_TOTAL:
            return CartTotalCondition(threshold=_number(raw, "value", "amount", "threshold"))

        if kind == ITEM_QUANTITY:
            product_id = _pick(raw, "productId", "product_id")
            return ItemQuantityCondition(
                quantity=_number(raw, "quantity", "value"),
                product_id=str(product_id) if product_id is not None else None,
            )

        if kind == PRODUCT_CATEGORY:
            category_id = _pick(raw, "categoryId", "category_id") if isinstance(raw, Mapping) else raw
            if category_id in (None, ""):
                raise ValueError("missing categoryId")
            return ProductCategoryCondition(category_id=str(category_id))

        if kind == CUSTOMER_GROUP:
            group_id = _pick(raw, "customerGroupId", "customer_group_id", "groupId") if isinstance(raw, Mapping) else raw
            if group_id in (None, ""):
                raise ValueError("missing customerGroupId")
            return CustomerGroupCondition(customer_group_id=str(group_id))

        if kind == FIRST_ORDER:
            return FirstOrderCondition()

    except (TypeError, ValueError) as e:
        logger.warning("Malformed %s condition payload %r: %s", kind, raw, e)
        return MalformedCondition(kind=kind, reason=str(e), raw=raw)

    return UnsupportedCondition(kind=kind, raw=raw)


def compare(actual: Decimal | str, operator: str, expected: Decimal | str) -> bool:
    """
    Apply a rule operator. Unknown operators compare false.

    Ordering operators on non-numeric operands compare false as well.
    """
    if operator == "eq":
        return actual == expected
    if operator == "neq":
        return actual != expected
    if not isinstance(actual, Decimal) or not isinstance(expected, Decimal):
        return False
    if operator == "gt":
        return actual > expected
    if operator == "lt":
        return actual < expected
    if operator == "gte":
        return actual >= expected
    if operator == "lte":
        return actual <= expected
    return False
