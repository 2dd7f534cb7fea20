"""
Promotion models for the pricing platform.
Automatic promotions with conditional rules, discount actions and a
redemption ledger.

Supports:
- Legacy single discount (discount_type / discount_value on the promotion)
- Multi-action discounts (PromotionAction rows)
- Conditional eligibility (PromotionRule rows, all ANDed)
- Exclusive and combinable promotions, ordered by priority
- Usage limits enforced by the usage ledger (0 = unlimited)
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any, ClassVar

from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .conditions import Condition, parse_condition


# ===============================================================================
# Constants
# ===============================================================================

MAX_DISCOUNT_PERCENT = Decimal("100.00")
MAX_USAGE_LIMIT = 1_000_000


# ===============================================================================
# Promotion Model
# ===============================================================================


class Promotion(models.Model):
    """
    Automatic promotion applied to qualifying orders.
    ``usage_count`` only ever moves through the usage ledger.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=200, help_text=_("Internal promotion name"))
    description = models.TextField(blank=True)

    STATUS_CHOICES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("active", _("Active")),
        ("scheduled", _("Scheduled")),
        ("expired", _("Expired")),
        ("disabled", _("Disabled")),
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="active")

    SCOPE_CHOICES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("cart", _("Whole Cart")),
        ("product", _("Specific Products")),
        ("category", _("Product Categories")),
        ("customer", _("Customer Segment")),
    )
    scope = models.CharField(max_length=20, choices=SCOPE_CHOICES, default="cart")

    priority = models.IntegerField(default=0, help_text=_("Higher values win when promotions compete"))

    # Validity
    start_date = models.DateTimeField(default=timezone.now)
    end_date = models.DateTimeField(null=True, blank=True)

    # Usage
    usage_limit = models.PositiveIntegerField(
        default=0,
        validators=[MaxValueValidator(MAX_USAGE_LIMIT)],
        help_text=_("Maximum redemptions (0 = unlimited)"),
    )
    usage_count = models.PositiveIntegerField(default=0, editable=False)

    # Legacy single-discount configuration
    DISCOUNT_TYPES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("percentage", _("Percentage Discount")),
        ("fixed_amount", _("Fixed Amount Discount")),
        ("free_item", _("Free Item")),
        ("buy_x_get_y", _("Buy X Get Y")),
    )
    discount_type = models.CharField(max_length=20, choices=DISCOUNT_TYPES, blank=True, default="")
    discount_value = models.DecimalField(
        max_digits=20,
        decimal_places=4,
        default=Decimal("0"),
        validators=[MinValueValidator(0)],
    )

    # Requirements and caps
    min_order_amount = models.DecimalField(max_digits=20, decimal_places=4, null=True, blank=True)
    max_discount_amount = models.DecimalField(max_digits=20, decimal_places=4, null=True, blank=True)

    # Stacking
    exclusive = models.BooleanField(default=False, help_text=_("Cannot be combined with other promotions"))

    # Ownership
    coupon_id = models.CharField(max_length=100, blank=True, default="")
    merchant_id = models.CharField(max_length=100, blank=True, default="", db_index=True)

    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "promotion"
        verbose_name = _("Promotion")
        verbose_name_plural = _("Promotions")
        ordering: ClassVar[tuple[str, ...]] = ("-priority", "-created_at")
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["status", "start_date", "end_date"]),
            models.Index(fields=["scope", "status"]),
            models.Index(fields=["-priority"]),
        )
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.CheckConstraint(
                condition=Q(usage_limit=0) | Q(usage_count__lte=models.F("usage_limit")),
                name="promotion_usage_within_limit",
            ),
        )

    def __str__(self) -> str:
        return f"{self.name} ({self.status})"

    def clean(self) -> None:
        super().clean()
        if self.end_date and self.start_date and self.end_date < self.start_date:
            raise ValidationError({"end_date": "End date must be after start date"})
        if self.discount_type == "percentage" and self.discount_value > MAX_DISCOUNT_PERCENT:
            raise ValidationError({"discount_value": "Percentage discount cannot exceed 100%"})

    @property
    def has_capacity(self) -> bool:
        return self.usage_limit == 0 or self.usage_count < self.usage_limit

    @property
    def remaining_uses(self) -> int | None:
        """Remaining redemptions, ``None`` when unlimited."""
        if self.usage_limit == 0:
            return None
        return max(0, self.usage_limit - self.usage_count)


# ===============================================================================
# Promotion Rule Model (conditions)
# ===============================================================================


class PromotionRule(models.Model):
    """
    Eligibility condition attached to a promotion.
    All active rules of a promotion must hold for it to apply.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    promotion = models.ForeignKey(Promotion, on_delete=models.CASCADE, related_name="rules")

    name = models.CharField(max_length=200, blank=True, default="")

    CONDITION_CHOICES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("cart_total", _("Cart Total")),
        ("item_quantity", _("Item Quantity")),
        ("product_category", _("Product Category")),
        ("customer_group", _("Customer Group")),
        ("first_order", _("First Order")),
        ("date_range", _("Date Range")),
        ("time_of_day", _("Time of Day")),
        ("day_of_week", _("Day of Week")),
        ("shipping_method", _("Shipping Method")),
        ("payment_method", _("Payment Method")),
    )
    condition = models.CharField(max_length=30, choices=CONDITION_CHOICES)

    OPERATOR_CHOICES: ClassVar[tuple[tuple[str, str], ...]] = (
        ("eq", "="),
        ("neq", "≠"),
        ("gt", ">"),
        ("lt", "<"),
        ("gte", "≥"),
        ("lte", "≤"),
    )
    operator = models.CharField(max_length=10, choices=OPERATOR_CHOICES, default="eq")

    value = models.JSONField(default=dict, blank=True, help_text=_("Condition payload, shape depends on condition"))

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "promotion_rule"
        verbose_name = _("Promotion Rule")
        verbose_name_plural = _("Promotion Rules")
        ordering: ClassVar[tuple[str, ...]] = ("created_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (models.Index(fields=["promotion", "is_active"]),)

    def __str__(self) -> str:
        return f"{self.condition} {self.operator} {self.value}"

    @property
    def payload(self) -> Condition:
        """Typed condition parsed from ``value``."""
        return parse_condition(self.condition, self.value)


# ===============================================================================
# Promotion Action Model
# ===============================================================================


class PromotionAction(models.Model):
    """Discount produced by a promotion, scoped to the order, a category or a product."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    promotion = models.ForeignKey(Promotion, on_delete=models.CASCADE, related_name="actions")

    ACTION_TYPES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("discount_by_percentage", _("Percentage Discount")),
        ("discount_by_amount", _("Fixed Amount Discount")),
        ("discount_shipping", _("Shipping Discount")),
        ("free_item", _("Free Item")),
    )
    type = models.CharField(max_length=30, choices=ACTION_TYPES)
    value = models.DecimalField(max_digits=20, decimal_places=4, validators=[MinValueValidator(0)])

    TARGET_TYPES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("order", _("Whole Order")),
        ("category", _("Category")),
        ("product", _("Product")),
    )
    target_type = models.CharField(max_length=20, choices=TARGET_TYPES, blank=True, default="")
    target_id = models.CharField(max_length=100, blank=True, default="")

    metadata = models.JSONField(default=dict, blank=True, help_text=_("e.g. {\"max_amount\": 50}"))

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "promotion_action"
        verbose_name = _("Promotion Action")
        verbose_name_plural = _("Promotion Actions")
        ordering: ClassVar[tuple[str, ...]] = ("created_at",)

    def __str__(self) -> str:
        target = f" on {self.target_type}:{self.target_id}" if self.target_id else ""
        return f"{self.type} {self.value}{target}"

    def clean(self) -> None:
        super().clean()
        if self.type in ("discount_by_percentage", "discount_shipping") and self.value > MAX_DISCOUNT_PERCENT:
            raise ValidationError({"value": "Percentage cannot exceed 100%"})
        if self.target_type in ("category", "product") and not self.target_id:
            raise ValidationError({"target_id": "A target id is required for category and product actions"})


# ===============================================================================
# Promotion Usage Model (ledger)
# ===============================================================================


class PromotionUsage(models.Model):
    """
    Append-only record of a promotion redemption.
    One row per successful redemption, written together with the
    promotion's usage_count increment.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    promotion = models.ForeignKey(Promotion, on_delete=models.PROTECT, related_name="usages")
    order_id = models.CharField(max_length=100, help_text=_("External order reference"))
    customer_id = models.CharField(max_length=100, blank=True, default="")
    session_id = models.CharField(max_length=100, blank=True, default="")

    discount_amount = models.DecimalField(max_digits=20, decimal_places=4, default=Decimal("0"))
    currency_code = models.CharField(max_length=3, blank=True, default="")

    applied_at = models.DateTimeField(default=timezone.now)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "promotion_usage"
        verbose_name = _("Promotion Usage")
        verbose_name_plural = _("Promotion Usages")
        ordering: ClassVar[tuple[str, ...]] = ("-applied_at",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["promotion", "-applied_at"]),
            models.Index(fields=["customer_id"]),
        )
        constraints: ClassVar[tuple[models.UniqueConstraint, ...]] = (
            # Prevent the same promotion being redeemed twice on one order
            models.UniqueConstraint(
                fields=["promotion", "order_id"],
                name="unique_promotion_per_order",
            ),
        )

    def __str__(self) -> str:
        return f"{self.promotion_id} on {self.order_id}"
