"""
Tests for the Promotions app services.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase
from django.utils import timezone

from apps.currencies.models import Currency
from apps.promotions.eligibility import OrderContext, OrderLine, PromotionEligibilityEvaluator
from apps.promotions.exceptions import CapacityExceededError
from apps.promotions.ledger import UsageLedger
from apps.promotions.models import Promotion, PromotionAction, PromotionRule, PromotionUsage
from apps.promotions.services import PromotionService


class PromotionAdministrationTests(TestCase):
    """🛠️ Creating, updating and deleting promotions"""

    def test_create_with_rules_and_actions(self):
        result = PromotionService.create_promotion(
            {"name": "Summer", "discount_type": "percentage", "discount_value": Decimal("10"), "ignored": 1},
            rules=[{"condition": "cart_total", "operator": "gte", "value": {"value": 100}}],
            actions=[{"type": "discount_shipping", "value": Decimal("100")}],
        )

        promotion = result.unwrap()
        self.assertEqual(promotion.status, "active")
        self.assertEqual(promotion.rules.count(), 1)
        self.assertEqual(promotion.actions.count(), 1)

    def test_future_start_is_scheduled(self):
        promotion = PromotionService.create_promotion(
            {"name": "Winter", "start_date": timezone.now() + timedelta(days=30)}
        ).unwrap()
        self.assertEqual(promotion.status, "scheduled")

    def test_explicit_status_is_kept(self):
        promotion = PromotionService.create_promotion(
            {"name": "Draft", "status": "disabled", "start_date": timezone.now() + timedelta(days=30)}
        ).unwrap()
        self.assertEqual(promotion.status, "disabled")

    def test_invalid_dates_are_rejected(self):
        now = timezone.now()
        result = PromotionService.create_promotion({"name": "Broken", "start_date": now, "end_date": now - timedelta(days=1)})

        self.assertTrue(result.is_err())
        self.assertIn("end_date", result.unwrap_err())
        self.assertFalse(Promotion.objects.exists())

    def test_percentage_over_100_is_rejected(self):
        result = PromotionService.create_promotion(
            {"name": "Too generous", "discount_type": "percentage", "discount_value": Decimal("150")}
        )
        self.assertTrue(result.is_err())

    def test_invalid_rule_rolls_back_promotion(self):
        result = PromotionService.create_promotion(
            {"name": "Bad rule"},
            rules=[{"condition": "moon_phase", "operator": "eq", "value": {}}],
        )

        self.assertTrue(result.is_err())
        self.assertFalse(Promotion.objects.exists())

    def test_update_replaces_rules_only_when_given(self):
        promotion = PromotionService.create_promotion(
            {"name": "Spring"},
            rules=[{"condition": "cart_total", "operator": "gte", "value": {"value": 50}}],
            actions=[{"type": "discount_by_amount", "value": Decimal("5")}],
        ).unwrap()

        PromotionService.update_promotion(promotion.pk, {"priority": 7})
        self.assertEqual(promotion.rules.count(), 1)

        updated = PromotionService.update_promotion(
            promotion.pk,
            {"name": "Spring 2"},
            rules=[
                {"condition": "first_order", "operator": "eq", "value": {}},
                {"condition": "product_category", "operator": "eq", "value": {"categoryId": "shoes"}},
            ],
            actions=[],
        ).unwrap()

        self.assertEqual(updated.name, "Spring 2")
        self.assertEqual(updated.priority, 7)
        self.assertEqual(
            sorted(PromotionService.find_rules(promotion.pk), key=lambda r: r.condition)[0].condition,
            "first_order",
        )
        self.assertEqual(PromotionRule.objects.filter(promotion=promotion).count(), 2)
        self.assertFalse(PromotionAction.objects.filter(promotion=promotion).exists())

    def test_update_missing_promotion(self):
        self.assertTrue(PromotionService.update_promotion("00000000-0000-0000-0000-000000000000", {}).is_err())

    def test_delete(self):
        promotion = PromotionService.create_promotion({"name": "Temp"}).unwrap()

        self.assertTrue(PromotionService.delete_promotion(promotion.pk).unwrap())
        self.assertFalse(PromotionService.delete_promotion(promotion.pk).unwrap())

    def test_delete_refused_after_redemption(self):
        promotion = PromotionService.create_promotion({"name": "Used"}).unwrap()
        UsageLedger.record_usage(promotion.pk, "order-1")

        self.assertTrue(PromotionService.delete_promotion(promotion.pk).is_err())
        self.assertTrue(Promotion.objects.filter(pk=promotion.pk).exists())

    def test_get_with_details(self):
        promotion = PromotionService.create_promotion(
            {"name": "Detailed"},
            actions=[{"type": "discount_by_amount", "value": Decimal("5")}],
        ).unwrap()

        details = PromotionService.get_with_details(promotion.pk)

        self.assertEqual(details.promotion, promotion)
        self.assertEqual(len(details.actions), 1)
        self.assertEqual(details.rules, [])
        self.assertIsNone(PromotionService.get_with_details("not-a-uuid"))


class PromotionLookupTests(TestCase):
    """🔍 Active promotion lookup and status maintenance"""

    def setUp(self):
        now = timezone.now()
        self.low = Promotion.objects.create(name="Low", priority=1, start_date=now - timedelta(days=1))
        self.high = Promotion.objects.create(
            name="High", priority=9, scope="product", start_date=now - timedelta(days=1), merchant_id="m-1"
        )
        self.scheduled = Promotion.objects.create(
            name="Later", status="scheduled", start_date=now - timedelta(minutes=5)
        )
        self.ended = Promotion.objects.create(
            name="Ended", start_date=now - timedelta(days=10), end_date=now - timedelta(days=1)
        )

    def test_find_active_by_priority(self):
        self.assertEqual(PromotionService.find_active(), [self.high, self.low])

    def test_find_active_filters(self):
        self.assertEqual(PromotionService.find_active(scope="product"), [self.high])
        self.assertEqual(PromotionService.find_active(scope=["cart", "customer"]), [self.low])
        self.assertEqual(PromotionService.find_active(merchant_id="m-1"), [self.high])

    def test_refresh_statuses(self):
        self.assertEqual(PromotionService.refresh_statuses(), {"activated": 1, "expired": 1})

        self.scheduled.refresh_from_db()
        self.ended.refresh_from_db()
        self.assertEqual(self.scheduled.status, "active")
        self.assertEqual(self.ended.status, "expired")
        self.assertEqual(PromotionService.refresh_statuses(), {"activated": 0, "expired": 0})


class OrderEvaluationTests(TestCase):
    """🛒 Evaluating and committing promotions for an order"""

    def setUp(self):
        Currency.objects.create(code="EUR", name="Euro", symbol="€", is_default=True)
        Currency.objects.create(code="JPY", name="Yen", symbol="¥", decimals=0, exchange_rate=Decimal("160"))
        self.start = timezone.now() - timedelta(days=1)
        self.order = OrderContext(
            total=Decimal("200"),
            shipping_amount=Decimal("10"),
            currency_code="EUR",
            customer_id="cust-1",
            lines=[OrderLine(product_id="p-1", quantity=2, unit_price=Decimal("100"), category_id="shoes")],
        )

    def promotion(self, name, rules=(), actions=(), **fields):
        data = {"name": name, "start_date": self.start, **fields}
        return PromotionService.create_promotion(data, rules=rules, actions=actions).unwrap()

    def test_eligible_promotions_combine(self):
        ten_percent = self.promotion("Ten", discount_type="percentage", discount_value=Decimal("10"), priority=2)
        free_shipping = self.promotion("Ship", actions=[{"type": "discount_shipping", "value": Decimal("100")}])
        big_spender = self.promotion(
            "Big", rules=[{"condition": "cart_total", "operator": "gte", "value": {"value": 500}}],
            discount_type="fixed_amount", discount_value=Decimal("50"),
        )

        evaluation = PromotionService.evaluate_order(self.order)

        self.assertEqual([a.promotion for a in evaluation.applied], [ten_percent, free_shipping])
        self.assertEqual(evaluation.total_discount, Decimal("30.00"))
        self.assertEqual(evaluation.rejected[str(big_spender.id)].error_code, "RULE_NOT_SATISFIED")
        self.assertEqual(evaluation.currency_code, "EUR")

    def test_exclusive_promotion_wins_alone(self):
        self.promotion("Ten", discount_type="percentage", discount_value=Decimal("10"))
        exclusive = self.promotion(
            "VIP", exclusive=True, priority=5, discount_type="fixed_amount", discount_value=Decimal("15")
        )

        evaluation = PromotionService.evaluate_order(self.order)

        self.assertEqual([a.promotion for a in evaluation.applied], [exclusive])
        self.assertEqual(evaluation.total_discount, Decimal("15.00"))

    def test_rounding_follows_order_currency(self):
        self.promotion("Odd", discount_type="percentage", discount_value=Decimal("12.5"))
        order = OrderContext(total=Decimal("101"), currency_code="JPY")

        evaluation = PromotionService.evaluate_order(order)

        self.assertEqual(evaluation.total_discount, Decimal("13"))

    def test_injected_evaluator(self):
        self.promotion(
            "Groups only",
            rules=[{"condition": "customer_group", "operator": "eq", "value": {"customerGroupId": "vip"}}],
            discount_type="fixed_amount",
            discount_value=Decimal("5"),
        )
        evaluator = PromotionEligibilityEvaluator(customer_group_lookup=lambda customer_id, group: False)

        evaluation = PromotionService.evaluate_order(self.order, evaluator=evaluator)

        self.assertEqual(evaluation.applied, [])
        self.assertEqual(evaluation.total_discount, Decimal("0"))

    def test_apply_to_order_records_usage(self):
        promotion = self.promotion("Ten", discount_type="percentage", discount_value=Decimal("10"), usage_limit=3)

        application = PromotionService.apply_to_order(self.order, "order-1")

        self.assertEqual(len(application.usages), 1)
        usage = application.usages[0]
        self.assertEqual(usage.discount_amount, Decimal("20.00"))
        self.assertEqual(usage.customer_id, "cust-1")
        self.assertEqual(usage.currency_code, "EUR")
        promotion.refresh_from_db()
        self.assertEqual(promotion.usage_count, 1)

    def test_apply_to_order_is_all_or_nothing(self):
        first = self.promotion("First", discount_type="fixed_amount", discount_value=Decimal("5"), priority=2)
        self.promotion("Second", discount_type="fixed_amount", discount_value=Decimal("5"), priority=1)
        record_usage = UsageLedger.record_usage
        calls = []

        def record_then_fail(promotion_id, order_id, **kwargs):
            calls.append(promotion_id)
            if len(calls) == 1:
                return record_usage(promotion_id, order_id, **kwargs)
            raise CapacityExceededError(str(promotion_id), 1)

        with patch("apps.promotions.services.UsageLedger.record_usage", side_effect=record_then_fail):
            with self.assertRaises(CapacityExceededError):
                PromotionService.apply_to_order(self.order, "order-1")

        first.refresh_from_db()
        self.assertEqual(first.usage_count, 0)
        self.assertFalse(PromotionUsage.objects.exists())
