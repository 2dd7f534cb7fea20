"""
Tests for discount resolution and promotion selection.
"""

import uuid
from decimal import Decimal

from django.test import SimpleTestCase

from apps.promotions.discounts import (
    AppliedPromotion,
    DiscountResolver,
    DiscountResult,
    LegacyDiscountStrategy,
    PromotionSelector,
)
from apps.promotions.eligibility import OrderContext, OrderLine
from apps.promotions.models import Promotion, PromotionAction


def _promotion(**kwargs) -> Promotion:
    defaults = {"name": "Promo", "status": "active", "discount_type": "", "discount_value": Decimal("0")}
    defaults.update(kwargs)
    return Promotion(**defaults)


def _action(action_type: str, value: str, **kwargs) -> PromotionAction:
    return PromotionAction(type=action_type, value=Decimal(value), **kwargs)


class LegacyDiscountTests(SimpleTestCase):
    """💰 Discount stored on the promotion row"""

    def setUp(self):
        self.resolver = DiscountResolver()
        self.order = OrderContext(total=Decimal("200"))

    def test_percentage(self):
        promotion = _promotion(discount_type="percentage", discount_value=Decimal("10"))
        self.assertEqual(self.resolver.resolve(promotion, [], self.order).amount, Decimal("20.00"))

    def test_percentage_capped_by_max_discount(self):
        promotion = _promotion(
            discount_type="percentage", discount_value=Decimal("10"), max_discount_amount=Decimal("15")
        )
        self.assertEqual(self.resolver.resolve(promotion, [], self.order).amount, Decimal("15.00"))

    def test_fixed_amount_never_exceeds_total(self):
        promotion = _promotion(discount_type="fixed_amount", discount_value=Decimal("50"))
        order = OrderContext(total=Decimal("30"))
        self.assertEqual(self.resolver.resolve(promotion, [], order).amount, Decimal("30.00"))

    def test_free_item_has_no_legacy_amount(self):
        promotion = _promotion(discount_type="free_item", discount_value=Decimal("1"))
        result = self.resolver.resolve(promotion, [], self.order)
        self.assertEqual(result.amount, Decimal("0"))
        self.assertEqual(result.breakdown, {"legacy": Decimal("0")})

    def test_rounded_half_away_from_zero(self):
        promotion = _promotion(discount_type="percentage", discount_value=Decimal("12.345"))
        order = OrderContext(total=Decimal("10"))
        self.assertEqual(self.resolver.resolve(promotion, [], order).amount, Decimal("1.23"))
        self.assertEqual(self.resolver.resolve(promotion, [], order, decimals=0).amount, Decimal("1"))

    def test_promotion_without_discount_data(self):
        result = self.resolver.resolve(_promotion(), [], self.order)
        self.assertEqual(result.amount, Decimal("0"))
        self.assertEqual(result.breakdown, {})


class ActionDiscountTests(SimpleTestCase):
    """🎯 Multi-action discounts"""

    def setUp(self):
        self.resolver = DiscountResolver()
        self.promotion = _promotion()
        self.order = OrderContext(
            total=Decimal("150"),
            shipping_amount=Decimal("10"),
            lines=[
                OrderLine(product_id="p-1", quantity=2, unit_price=Decimal("25"), category_id="shoes"),
                OrderLine(product_id="p-2", quantity=1, unit_price=Decimal("100"), category_id="bags"),
            ],
        )

    def resolve(self, *actions):
        return self.resolver.resolve(self.promotion, list(actions), self.order)

    def test_percentage_on_order(self):
        self.assertEqual(self.resolve(_action("discount_by_percentage", "10")).amount, Decimal("15.00"))

    def test_percentage_on_category(self):
        action = _action("discount_by_percentage", "10", target_type="category", target_id="shoes")
        self.assertEqual(self.resolve(action).amount, Decimal("5.00"))

    def test_percentage_respects_metadata_cap(self):
        action = _action("discount_by_percentage", "50", metadata={"maxAmount": "20"})
        self.assertEqual(self.resolve(action).amount, Decimal("20.00"))

    def test_amount_limited_to_target(self):
        action = _action("discount_by_amount", "80", target_type="product", target_id="p-1")
        self.assertEqual(self.resolve(action).amount, Decimal("50.00"))

    def test_shipping(self):
        self.assertEqual(self.resolve(_action("discount_shipping", "50")).amount, Decimal("5.00"))
        self.assertEqual(self.resolve(_action("discount_shipping", "100")).amount, Decimal("10.00"))

    def test_free_item(self):
        action = _action("free_item", "1", target_type="product", target_id="p-1")
        self.assertEqual(self.resolve(action).amount, Decimal("25.00"))

    def test_free_item_limited_to_line_quantity(self):
        action = _action("free_item", "5", metadata={"product_id": "p-1"})
        self.assertEqual(self.resolve(action).amount, Decimal("50.00"))

    def test_free_item_without_matching_line(self):
        action = _action("free_item", "1", target_type="product", target_id="p-9")
        self.assertEqual(self.resolve(action).amount, Decimal("0"))

    def test_actions_sum_with_per_action_amounts(self):
        first = _action("discount_by_amount", "10")
        second = _action("discount_shipping", "100")

        result = self.resolve(first, second)

        self.assertEqual(result.amount, Decimal("20.00"))
        self.assertEqual(result.action_amounts, {str(first.id): Decimal("10"), str(second.id): Decimal("10")})

    def test_legacy_and_actions_both_contribute(self):
        self.promotion.discount_type = "fixed_amount"
        self.promotion.discount_value = Decimal("5")

        result = self.resolve(_action("discount_by_amount", "10"))

        self.assertEqual(result.amount, Decimal("15.00"))
        self.assertEqual(set(result.breakdown), {"legacy", "actions"})

    def test_sum_clamped_to_order_value(self):
        self.promotion.discount_type = "fixed_amount"
        self.promotion.discount_value = Decimal("150")

        result = self.resolve(_action("discount_by_amount", "150"))

        self.assertTrue(result.capped)
        self.assertEqual(result.amount, Decimal("160.00"))

    def test_custom_strategy_set(self):
        resolver = DiscountResolver(strategies=[LegacyDiscountStrategy()])
        result = resolver.resolve(self.promotion, [_action("discount_by_amount", "10")], self.order)
        self.assertEqual(result.amount, Decimal("0"))


def _applied(priority: int, amount: str, exclusive: bool = False, pk: int = 1) -> AppliedPromotion:
    promotion = _promotion(id=uuid.UUID(int=pk), priority=priority, exclusive=exclusive)
    return AppliedPromotion(promotion=promotion, discount=DiscountResult(str(promotion.id), Decimal(amount)))


class PromotionSelectorTests(SimpleTestCase):
    """🔀 Combinability"""

    def test_combinable_promotions_sorted_by_priority(self):
        low, high = _applied(1, "5", pk=1), _applied(9, "5", pk=2)
        self.assertEqual(PromotionSelector.select([low, high]), [high, low])

    def test_exclusive_promotion_applies_alone(self):
        combinable = _applied(10, "50", pk=1)
        exclusive_low = _applied(3, "30", exclusive=True, pk=2)
        exclusive_high = _applied(5, "10", exclusive=True, pk=3)

        self.assertEqual(PromotionSelector.select([combinable, exclusive_low, exclusive_high]), [exclusive_high])

    def test_exclusive_tie_prefers_larger_discount_then_lower_id(self):
        small = _applied(5, "10", exclusive=True, pk=1)
        large = _applied(5, "20", exclusive=True, pk=2)
        self.assertEqual(PromotionSelector.select([small, large]), [large])

        first = _applied(5, "20", exclusive=True, pk=1)
        self.assertEqual(PromotionSelector.select([large, first]), [first])

    def test_empty(self):
        self.assertEqual(PromotionSelector.select([]), [])
