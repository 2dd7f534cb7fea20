"""
Currency models for the pricing platform.
Currency definitions, pricing regions, currency price rules and the
exchange-rate refresh log.

All exchange rates are expressed relative to the default (base) currency:
``exchange_rate`` is the amount of this currency per 1 unit of the default.
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

MAX_CURRENCY_DECIMALS = 8

# ===============================================================================
# CURRENCY MODEL
# ===============================================================================


class Currency(models.Model):
    """Currency definition with exchange rate and display rules"""

    code = models.CharField(max_length=3, primary_key=True)  # 'EUR', 'USD'
    name = models.CharField(max_length=50, default="")
    symbol = models.CharField(max_length=10)
    decimals = models.SmallIntegerField(
        default=2,
        validators=[MinValueValidator(0), MaxValueValidator(MAX_CURRENCY_DECIMALS)],
    )

    # Exactly one currency may be the default (base) currency
    is_default = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)

    exchange_rate = models.DecimalField(
        max_digits=20,
        decimal_places=10,
        default=Decimal("1"),
        help_text=_("Units of this currency per 1 unit of the default currency"),
    )
    last_updated = models.DateTimeField(null=True, blank=True, help_text=_("When the rate was last refreshed"))

    # Display
    format = models.CharField(max_length=50, blank=True, default="", help_text=_("Display template used by clients"))
    POSITION_CHOICES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("before", _("Symbol before amount")),
        ("after", _("Symbol after amount")),
    )
    position = models.CharField(max_length=10, choices=POSITION_CHOICES, default="before")
    thousands_separator = models.CharField(max_length=3, blank=True, default=",")
    decimal_separator = models.CharField(max_length=3, default=".")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "currency"
        verbose_name = _("Currency")
        verbose_name_plural = _("Currencies")
        ordering: ClassVar[tuple[str, ...]] = ("-is_default", "name")
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.UniqueConstraint(
                fields=["is_default"],
                condition=Q(is_default=True),
                name="unique_default_currency",
            ),
        )
        indexes: ClassVar[tuple[models.Index, ...]] = (models.Index(fields=["is_active"]),)

    def __str__(self) -> str:
        return f"{self.code} ({self.symbol})"

    def save(self, *args: Any, **kwargs: Any) -> None:
        """Normalize code and pin the default currency's rate to 1."""
        if self.code:
            self.code = self.code.upper().strip()
        if self.is_default:
            self.exchange_rate = Decimal("1")
        super().save(*args, **kwargs)

    def clean(self) -> None:
        super().clean()
        if not self.is_default and (self.exchange_rate is None or self.exchange_rate <= 0):
            raise ValidationError({"exchange_rate": "Exchange rate must be greater than zero"})
        if self.is_default and not self.is_active:
            raise ValidationError({"is_active": "The default currency cannot be inactive"})


# ===============================================================================
# CURRENCY REGION MODEL
# ===============================================================================


class CurrencyRegion(models.Model):
    """Pricing region mapped to the currency it is priced in"""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=20, unique=True, help_text=_("Region code used by price rules"))
    name = models.CharField(max_length=100)
    currency = models.ForeignKey(Currency, on_delete=models.PROTECT, related_name="regions")
    countries = models.JSONField(default=list, blank=True, help_text=_("ISO 3166 country codes in this region"))
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "currency_region"
        verbose_name = _("Currency Region")
        verbose_name_plural = _("Currency Regions")
        ordering: ClassVar[tuple[str, ...]] = ("name",)

    def __str__(self) -> str:
        return f"{self.code} -> {self.currency_id}"

    def save(self, *args: Any, **kwargs: Any) -> None:
        if self.code:
            self.code = self.code.upper().strip()
        super().save(*args, **kwargs)


# ===============================================================================
# CURRENCY PRICE RULE MODEL
# ===============================================================================


class CurrencyPriceRule(models.Model):
    """
    Adjustment applied to a converted price for a currency (and optionally a region).
    Rules are applied in ascending priority order.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=200, blank=True, default="")
    description = models.TextField(blank=True)

    RULE_TYPES: ClassVar[tuple[tuple[str, Any], ...]] = (
        ("fixed", _("Fixed adjustment")),
        ("percentage", _("Percentage adjustment")),
        ("exchange", _("Exchange rate override")),
    )
    type = models.CharField(max_length=20, choices=RULE_TYPES)
    value = models.DecimalField(max_digits=20, decimal_places=10)

    currency = models.ForeignKey(Currency, on_delete=models.CASCADE, related_name="price_rules")
    region_code = models.CharField(
        max_length=20,
        null=True,
        blank=True,
        help_text=_("Only applies in this region (null = every region)"),
    )

    priority = models.IntegerField(default=0, help_text=_("Lower values are applied first"))

    min_order_value = models.DecimalField(max_digits=20, decimal_places=4, null=True, blank=True)
    max_order_value = models.DecimalField(max_digits=20, decimal_places=4, null=True, blank=True)

    start_date = models.DateTimeField(null=True, blank=True)
    end_date = models.DateTimeField(null=True, blank=True)

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "currency_price_rule"
        verbose_name = _("Currency Price Rule")
        verbose_name_plural = _("Currency Price Rules")
        ordering: ClassVar[tuple[str, ...]] = ("priority", "created_at")
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["currency", "is_active", "priority"]),
            models.Index(fields=["region_code"]),
        )

    def __str__(self) -> str:
        return f"{self.type} {self.value} ({self.currency_id}, p={self.priority})"

    @property
    def currency_code(self) -> str:
        return self.currency_id

    def save(self, *args: Any, **kwargs: Any) -> None:
        """Normalize the region code the same way CurrencyRegion does."""
        if self.region_code is not None:
            self.region_code = self.region_code.upper().strip() or None
        super().save(*args, **kwargs)

    def clean(self) -> None:
        super().clean()
        if (
            self.min_order_value is not None
            and self.max_order_value is not None
            and self.min_order_value > self.max_order_value
        ):
            raise ValidationError("min_order_value must not exceed max_order_value")
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValidationError("end_date must be after start_date")


# ===============================================================================
# EXCHANGE RATE REFRESH LOG
# ===============================================================================


class ExchangeRateRefresh(models.Model):
    """Append-only record of an exchange rate refresh attempt"""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    provider = models.CharField(max_length=100)
    base_currency_code = models.CharField(max_length=3)

    STATUS_CHOICES: ClassVar[tuple[tuple[str, str], ...]] = (
        ("success", "Success"),
        ("partial", "Partial (some rates missing)"),
        ("failed", "Failed"),
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES)

    updated_codes = models.JSONField(default=list, blank=True)
    failed_codes = models.JSONField(default=list, blank=True)
    error_message = models.TextField(blank=True)

    started_at = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "currency_rate_refresh"
        verbose_name = _("Exchange Rate Refresh")
        verbose_name_plural = _("Exchange Rate Refreshes")
        ordering: ClassVar[tuple[str, ...]] = ("-started_at",)

    def __str__(self) -> str:
        return f"{self.provider} {self.status} @ {self.started_at:%Y-%m-%d %H:%M}"
