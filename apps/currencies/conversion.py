"""
Currency conversion and display formatting.

Conversion goes through the default (base) currency: the source amount is
divided by the source rate, then multiplied by the target rate. Nothing is
rounded here; rounding happens when a price is formatted or when price rules
or discounts produce a final amount.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Protocol

from apps.common.money import ZERO, quantize_half_up, to_decimal

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class ConvertibleCurrency(Protocol):
    """What the converter needs to know about a currency."""

    code: str
    is_default: bool
    is_active: bool
    exchange_rate: Decimal


class FormattableCurrency(Protocol):
    """What the formatter needs to know about a currency."""

    symbol: str
    decimals: int
    position: str
    thousands_separator: str
    decimal_separator: str


# ===============================================================================
# Converter
# ===============================================================================


class CurrencyConverter:
    """Converts amounts between currencies via the default currency."""

    @classmethod
    def convert(
        cls,
        amount: Decimal | int | float | str,
        from_currency: ConvertibleCurrency,
        to_currency: ConvertibleCurrency,
    ) -> Decimal:
        """
        Convert ``amount`` from one currency into another.

        Raises:
            ConfigurationError: a currency needing conversion is inactive or
                has a zero/negative/missing exchange rate.
        """
        value = to_decimal(amount)

        if from_currency.code == to_currency.code:
            return value

        for currency in (from_currency, to_currency):
            if not currency.is_active:
                logger.error(
                    "Conversion attempted with inactive currency %s",
                    currency.code,
                    extra={"currency_code": currency.code},
                )
                raise ConfigurationError(f"Currency {currency.code} is inactive")

        base_amount = value if from_currency.is_default else value / cls._usable_rate(from_currency)
        if to_currency.is_default:
            return base_amount
        return base_amount * cls._usable_rate(to_currency)

    @classmethod
    def cross_rate(cls, from_currency: ConvertibleCurrency, to_currency: ConvertibleCurrency) -> Decimal:
        """Rate applied when converting one unit of ``from_currency``."""
        return cls.convert(Decimal("1"), from_currency, to_currency)

    @staticmethod
    def _usable_rate(currency: ConvertibleCurrency) -> Decimal:
        rate = to_decimal(currency.exchange_rate, default=ZERO)
        if not rate.is_finite() or rate <= ZERO:
            logger.error(
                "Invalid exchange rate %s for %s",
                currency.exchange_rate,
                currency.code,
                extra={"currency_code": currency.code},
            )
            raise ConfigurationError(f"Currency {currency.code} has an invalid exchange rate: {currency.exchange_rate}")
        return rate


# ===============================================================================
# Formatter
# ===============================================================================


class CurrencyFormatter:
    """Renders amounts using a currency's symbol, separators and precision."""

    @classmethod
    def format(cls, amount: Decimal | int | float | str, currency: FormattableCurrency) -> str:
        """
        Format an amount for display, e.g. ``$1,234.50`` or ``1.234,50€``.

        Rounds half away from zero to the currency's decimals.
        """
        decimals = int(currency.decimals)
        rounded = quantize_half_up(to_decimal(amount), decimals)

        sign = "-" if rounded < 0 else ""
        digits = f"{abs(rounded):.{decimals}f}"
        integer_part, _, fraction_part = digits.partition(".")

        number = cls._group_thousands(integer_part, currency.thousands_separator)
        if decimals > 0:
            number = f"{number}{currency.decimal_separator}{fraction_part}"

        if currency.position == "before":
            return f"{sign}{currency.symbol}{number}"
        return f"{sign}{number}{currency.symbol}"

    @staticmethod
    def _group_thousands(integer_part: str, separator: str) -> str:
        if not separator or len(integer_part) <= 3:
            return integer_part
        groups = []
        while len(integer_part) > 3:
            groups.append(integer_part[-3:])
            integer_part = integer_part[:-3]
        groups.append(integer_part)
        return separator.join(reversed(groups))
