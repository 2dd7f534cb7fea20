"""
Price rule evaluation and price quoting.

A quote runs CurrencyConverter -> PriceRuleEngine -> CurrencyFormatter.
The engine itself is pure: it only looks at the rules it is handed and the
clock it is given, so quotes can be computed in parallel from a snapshot.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Protocol

from django.conf import settings
from django.utils import timezone

from apps.common.money import ONE, percent_of, quantize_half_up, to_decimal
from apps.common.types import Err, Ok, Result

from .conversion import CurrencyConverter, CurrencyFormatter
from .models import Currency
from .services import CurrencyService, PriceRuleService

logger = logging.getLogger(__name__)


class PriceRuleLike(Protocol):
    currency_code: str
    region_code: str | None
    type: str
    value: Decimal
    priority: int
    is_active: bool
    min_order_value: Decimal | None
    max_order_value: Decimal | None
    start_date: datetime | None
    end_date: datetime | None


def get_pricing_settings() -> dict:
    """Pricing configuration from settings with fallbacks."""
    return getattr(settings, "PRICING", {"APPLY_RULES_WITHOUT_REGION": False})


# ===============================================================================
# Price Rule Engine
# ===============================================================================


class PriceRuleEngine:
    """
    Filters and folds currency price rules over a converted amount.

    Fold semantics, in ascending priority:
    - fixed:      amount += value
    - percentage: amount *= 1 + value / 100
    - exchange:   amount = base_amount * value

    ``exchange`` is an override, not an adjustment: it throws away whatever
    earlier rules in the same fold produced, so its priority relative to the
    other rules decides whether they have any effect at all.
    """

    @classmethod
    def is_applicable(
        cls,
        rule: PriceRuleLike,
        currency_code: str,
        region: str | None,
        converted_amount: Decimal,
        now: datetime,
    ) -> bool:
        if rule.currency_code != currency_code:
            return False
        if rule.region_code is not None and rule.region_code != region:
            return False
        if not rule.is_active:
            return False
        if rule.start_date is not None and now < rule.start_date:
            return False
        if rule.end_date is not None and now > rule.end_date:
            return False
        if rule.min_order_value is not None and converted_amount < to_decimal(rule.min_order_value):
            return False
        if rule.max_order_value is not None and converted_amount > to_decimal(rule.max_order_value):
            return False
        return True

    @classmethod
    def applicable_rules(
        cls,
        converted_amount: Decimal,
        currency: Currency,
        region: str | None,
        candidate_rules: Iterable[PriceRuleLike],
        now: datetime | None = None,
    ) -> list[PriceRuleLike]:
        """Applicable rules, lowest priority value first (stable for ties)."""
        now = now or timezone.now()
        converted_amount = to_decimal(converted_amount)
        matching = [
            rule
            for rule in candidate_rules
            if cls.is_applicable(rule, currency.code, region, converted_amount, now)
        ]
        return sorted(matching, key=lambda rule: rule.priority)

    @classmethod
    def apply_price_rules(  # noqa: PLR0913
        cls,
        base_amount: Decimal | int | float | str,
        converted_amount: Decimal | int | float | str,
        currency: Currency,
        region: str | None,
        candidate_rules: Iterable[PriceRuleLike],
        now: datetime | None = None,
    ) -> Decimal:
        """
        Apply every applicable rule to ``converted_amount``.

        ``base_amount`` is the pre-conversion amount that ``exchange`` rules
        multiply. With no applicable rule the converted amount is returned
        as-is (not rounded); otherwise the result is rounded half away from
        zero to the currency's decimals.
        """
        base = to_decimal(base_amount)
        converted = to_decimal(converted_amount)

        rules = cls.applicable_rules(converted, currency, region, candidate_rules, now)
        if not rules:
            return converted

        final_amount = converted
        for rule in rules:
            value = to_decimal(rule.value)
            if rule.type == "fixed":
                final_amount += value
            elif rule.type == "percentage":
                final_amount *= ONE + percent_of(ONE, value)
            elif rule.type == "exchange":
                final_amount = base * value
            else:
                logger.warning(
                    "Skipping price rule with unknown type %s",
                    rule.type,
                    extra={"currency_code": currency.code, "rule_type": rule.type},
                )

        return quantize_half_up(final_amount, currency.decimals)


# ===============================================================================
# Price Quotes
# ===============================================================================


@dataclass
class PriceQuote:
    """
    A converted, rule-adjusted and formatted price.

    Attributes:
        original_amount: Amount in the source currency.
        converted_amount: Amount in the target currency after price rules.
        formatted_amount: ``converted_amount`` rendered for display.
        exchange_rate: Units of target currency per unit of source currency.
        rules_applied: Number of price rules that matched.
    """

    original_amount: Decimal
    converted_amount: Decimal
    formatted_amount: str
    exchange_rate: Decimal
    from_currency: str
    to_currency: str
    region_code: str | None = None
    rules_applied: int = 0


class PriceQuoteService:
    """Price quote flow: convert, apply price rules, format."""

    @classmethod
    def quote(
        cls,
        amount: Decimal | int | float | str,
        from_code: str,
        to_code: str,
        region_code: str | None = None,
    ) -> Result[PriceQuote, str]:
        """
        Quote a single amount.

        Missing currencies are reported as ``Err``. Broken currency data
        (inactive currency, zero rate) raises ``ConfigurationError``.
        """
        currencies = cls._load_currencies(from_code, to_code)
        if currencies.is_err():
            return currencies
        source, target = currencies.unwrap()

        region_code = cls._normalize_region(region_code)
        rules = cls._load_rules(target, region_code)
        return Ok(cls._build_quote(to_decimal(amount), source, target, region_code, rules))

    @classmethod
    def quote_batch(
        cls,
        amounts: Sequence[Decimal | int | float | str],
        from_code: str,
        to_code: str,
        region_code: str | None = None,
    ) -> Result[list[PriceQuote], str]:
        """Quote many amounts with a single currency and rule lookup."""
        currencies = cls._load_currencies(from_code, to_code)
        if currencies.is_err():
            return currencies
        source, target = currencies.unwrap()

        region_code = cls._normalize_region(region_code)
        rules = cls._load_rules(target, region_code)
        quotes =[cls._build_quote(to_decimal(amount), source, target, region_code, rules) for amount in amounts]

        logger.info(
            "Batch quoted %d amounts %s -> %s",
            len(quotes),
            source.code,
            target.code,
            extra={"from_currency": source.code, "to_currency": target.code, "region_code": region_code},
        )
        return Ok(quotes)

    @staticmethod
    def _load_currencies(from_code: str, to_code: str) -> Result[tuple[Currency, Currency], str]:
        source = CurrencyService.get_by_code(from_code)
        if source is None:
            return Err(f"Source currency {from_code} not found")
        target = CurrencyService.get_by_code(to_code)
        if target is None:
            return Err(f"Target currency {to_code} not found")
        return Ok((source, target))

    @staticmethod
    def _normalize_region(region_code: str | None) -> str | None:
        if region_code is None:
            return None
        return CurrencyService.normalize_code(region_code) or None

    @staticmethod
    def _load_rules(target: Currency, region_code: str | None) -> list:
        if region_code is None and not get_pricing_settings().get("APPLY_RULES_WITHOUT_REGION", False):
            return []
        return PriceRuleService.find_applicable(target.code, region_code)

    @staticmethod
    def _build_quote(
        amount: Decimal,
        source: Currency,
        target: Currency,
        region_code: str | None,
        rules: list,
    ) -> PriceQuote:
        converted = CurrencyConverter.convert(amount, source, target)
        now = timezone.now()
        matched = PriceRuleEngine.applicable_rules(converted, target, region_code, rules, now)
        final_amount = PriceRuleEngine.apply_price_rules(amount, converted, target, region_code, matched, now)

        return PriceQuote(
            original_amount=amount,
            converted_amount=final_amount,
            formatted_amount=CurrencyFormatter.format(final_amount, target),
            exchange_rate=CurrencyConverter.cross_rate(source, target),
            from_currency=source.code,
            to_currency=target.code,
            region_code=region_code,
            rules_applied=len(matched),
        )
