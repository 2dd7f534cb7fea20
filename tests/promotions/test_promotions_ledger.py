"""
Tests for the promotion usage ledger.

The capacity check and the counter increment happen in one conditional
UPDATE; these tests hammer that path with stale reads (every backend) and
with real threads (PostgreSQL only, SQLite serializes writers anyway).
"""

import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from unittest import skipUnless

from django.db import connection
from django.test import TestCase, TransactionTestCase

from apps.promotions.exceptions import CapacityExceededError, DuplicateUsageError, PromotionNotFoundError
from apps.promotions.ledger import UsageLedger
from apps.promotions.models import Promotion, PromotionUsage


class UsageLedgerTests(TestCase):
    """🧾 Recording redemptions"""

    def setUp(self):
        self.promotion = Promotion.objects.create(name="Launch", usage_limit=2)

    def test_record_usage_increments_counter_and_writes_row(self):
        usage = UsageLedger.record_usage(
            self.promotion.pk,
            "order-1",
            discount_amount=Decimal("12.50"),
            customer_id="cust-1",
            currency_code="EUR",
        )

        self.promotion.refresh_from_db()
        self.assertEqual(self.promotion.usage_count, 1)
        self.assertEqual(usage.order_id, "order-1")
        self.assertEqual(usage.discount_amount, Decimal("12.50"))
        self.assertEqual(usage.customer_id, "cust-1")
        self.assertEqual(usage.session_id, "")

    def test_capacity_exceeded(self):
        UsageLedger.record_usage(self.promotion.pk, "order-1")
        UsageLedger.record_usage(str(self.promotion.pk), "order-2")

        with self.assertRaises(CapacityExceededError) as ctx:
            UsageLedger.record_usage(self.promotion.pk, "order-3")

        self.assertEqual(ctx.exception.usage_limit, 2)
        self.promotion.refresh_from_db()
        self.assertEqual(self.promotion.usage_count, 2)
        self.assertEqual(UsageLedger.count_usage(self.promotion.pk), 2)

    def test_zero_limit_is_unlimited(self):
        unlimited = Promotion.objects.create(name="Always", usage_limit=0)
        for i in range(10):
            UsageLedger.record_usage(unlimited.pk, f"order-{i}")

        unlimited.refresh_from_db()
        self.assertEqual(unlimited.usage_count, 10)

    def test_unknown_promotion(self):
        with self.assertRaises(PromotionNotFoundError):
            UsageLedger.record_usage(uuid.uuid4(), "order-1")
        with self.assertRaises(PromotionNotFoundError):
            UsageLedger.record_usage("not-a-uuid", "order-1")

    def test_duplicate_order_does_not_increment(self):
        UsageLedger.record_usage(self.promotion.pk, "order-1")

        with self.assertRaises(DuplicateUsageError):
            UsageLedger.record_usage(self.promotion.pk, "order-1")

        self.promotion.refresh_from_db()
        self.assertEqual(self.promotion.usage_count, 1)
        self.assertEqual(PromotionUsage.objects.count(), 1)

    def test_list_usage_newest_first(self):
        UsageLedger.record_usage(self.promotion.pk, "order-1")
        UsageLedger.record_usage(self.promotion.pk, "order-2")

        usages = UsageLedger.list_usage(self.promotion.pk)

        self.assertEqual({u.order_id for u in usages}, {"order-1", "order-2"})
        self.assertGreaterEqual(usages[0].applied_at, usages[1].applied_at)
        self.assertEqual(len(UsageLedger.list_usage(self.promotion.pk, limit=1)), 1)

    def test_reconcile_consistent(self):
        UsageLedger.record_usage(self.promotion.pk, "order-1")

        reconciliation = UsageLedger.reconcile(self.promotion.pk)

        self.assertTrue(reconciliation.is_consistent)
        self.assertEqual(reconciliation.usage_rows, 1)

    def test_reconcile_reports_drift(self):
        UsageLedger.record_usage(self.promotion.pk, "order-1")
        Promotion.objects.filter(pk=self.promotion.pk).update(usage_count=2)

        with self.assertLogs("apps.promotions.ledger", level="ERROR"):
            reconciliation = UsageLedger.reconcile(self.promotion.pk)

        self.assertFalse(reconciliation.is_consistent)
        self.assertEqual(reconciliation.drift, 1)

    def test_reconcile_missing_promotion(self):
        self.assertIsNone(UsageLedger.reconcile(uuid.uuid4()))


class UsageLedgerStaleReadTests(TestCase):
    """Callers holding an outdated snapshot cannot overrun the limit"""

    def test_stale_capacity_checks_never_overrun(self):
        promotion = Promotion.objects.create(name="Flash", usage_limit=5)
        stale = Promotion.objects.get(pk=promotion.pk)

        accepted = 0
        rejected = 0
        for i in range(20):
            # The snapshot still says there is room
            self.assertTrue(stale.has_capacity)
            try:
                UsageLedger.record_usage(stale.pk, f"order-{i}")
                accepted += 1
            except CapacityExceededError:
                rejected += 1

        promotion.refresh_from_db()
        self.assertEqual(accepted, 5)
        self.assertEqual(rejected, 15)
        self.assertEqual(promotion.usage_count, 5)
        self.assertEqual(UsageLedger.count_usage(promotion.pk), 5)


@skipUnless(connection.vendor == "postgresql", "needs concurrent writers")
class UsageLedgerConcurrencyTests(TransactionTestCase):
    """⚡ Concurrent redemptions against one promotion"""

    def test_concurrent_redemptions_respect_limit(self):
        promotion = Promotion.objects.create(name="Doorbuster", usage_limit=5)
        barrier = threading.Barrier(10)

        def redeem(i: int) -> bool:
            from django.db import connection as thread_connection

            try:
                barrier.wait()
                UsageLedger.record_usage(promotion.pk, f"order-{i}")
                return True
            except CapacityExceededError:
                return False
            finally:
                thread_connection.close()

        with ThreadPoolExecutor(max_workers=10) as pool:
            results = list(pool.map(redeem, range(10)))

        promotion.refresh_from_db()
        self.assertEqual(sum(results), 5)
        self.assertEqual(promotion.usage_count, 5)
        self.assertEqual(PromotionUsage.objects.filter(promotion=promotion).count(), 5)
