"""
Currency services for the pricing platform.
Currency catalog (lookups and the single-default invariant), pricing regions,
manual exchange rate updates and the price rule store.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from apps.common.money import ZERO, to_decimal
from apps.common.types import Err, Ok, Result

from .exceptions import CurrencyInUseError, DefaultCurrencyDeletionError
from .models import Currency, CurrencyPriceRule, CurrencyRegion

logger = logging.getLogger(__name__)


# ===============================================================================
# Currency Catalog
# ===============================================================================


class CurrencyService:
    """
    Currency catalog.
    Lookups return ``None`` when nothing matches; the caller decides what a
    missing currency means.
    """

    @staticmethod
    def normalize_code(code: str) -> str:
        return code.upper().strip()

    @classmethod
    def get_by_code(cls, code: str) -> Currency | None:
        """Get currency by code (case-insensitive)."""
        return Currency.objects.filter(code=cls.normalize_code(code)).first()

    @classmethod
    def get_default(cls) -> Currency | None:
        """Get the default currency, falling back to the first active one."""
        default = Currency.objects.filter(is_default=True).first()
        if default is not None:
            return default

        fallback = Currency.objects.filter(is_active=True).order_by("name", "code").first()
        if fallback is not None:
            logger.warning(
                "No default currency configured, falling back to %s",
                fallback.code,
                extra={"currency_code": fallback.code},
            )
        return fallback

    @classmethod
    def list_active(cls) -> list[Currency]:
        """Active currencies, default first."""
        return list(Currency.objects.filter(is_active=True).order_by("-is_default", "name", "code"))

    @classmethod
    @transaction.atomic
    def save(cls, currency: Currency) -> Currency:
        """
        Create or update a currency.

        When the currency is flagged default, every current default row is
        locked and cleared in the same transaction before the write, so no
        two currencies are ever default at once. A default currency is
        always active and its rate is 1.
        """
        currency.code = cls.normalize_code(currency.code)

        cleared: list[str] = []
        if currency.is_default:
            currency.is_active = True
            currency.exchange_rate = Decimal("1")

            # Lock current default rows so concurrent saves serialize here
            current_defaults = list(
                Currency.objects.select_for_update().filter(is_default=True).exclude(code=currency.code)
            )
            cleared = [other.code for other in current_defaults]
            if cleared:
                Currency.objects.filter(code__in=cleared).update(is_default=False, updated_at=timezone.now())

        currency.full_clean(validate_unique=False)
        currency.save()

        if cleared:
            logger.info(
                "Default currency changed to %s (cleared %s)",
                currency.code,
                ", ".join(cleared),
                extra={"currency_code": currency.code, "cleared_defaults": cleared},
            )
        return currency

    @classmethod
    @transaction.atomic
    def delete(cls, code: str) -> bool:
        """
        Delete a currency. Returns ``False`` when it does not exist.

        Raises:
            DefaultCurrencyDeletionError: the currency is the default.
            CurrencyInUseError: a pricing region is still priced in it.
        """
        currency = Currency.objects.select_for_update().filter(code=cls.normalize_code(code)).first()
        if currency is None:
            return False

        if currency.is_default:
            raise DefaultCurrencyDeletionError(f"Cannot delete the default currency {currency.code}")

        regions = list(currency.regions.values_list("code", flat=True))
        if regions:
            raise CurrencyInUseError(
                f"Cannot delete currency {currency.code}, still used by regions: {', '.join(regions)}"
            )

        currency.delete()
        logger.info("Currency %s deleted", currency.code, extra={"currency_code": currency.code})
        return True

    @classmethod
    def update_exchange_rates(
        cls,
        rates: Mapping[str, Decimal | int | float | str],
        source: str = "manual",
    ) -> Result[list[str], str]:
        """
        Store new exchange rates relative to the default currency.

        Only well-formed positive rates for known currencies are written;
        everything else is left untouched. The default currency's own rate
        is never changed. Returns the codes that were updated.
        """
        default = cls.get_default()
        if default is None:
            return Err("No default currency found to use as base for exchange rate updates")

        now = timezone.now()
        updated: list[str] = []
        with transaction.atomic():
            for raw_code, raw_rate in rates.items():
                code = cls.normalize_code(raw_code)
                if code == default.code:
                    continue

                try:
                    rate = to_decimal(raw_rate)
                except (TypeError, ValueError):
                    logger.warning("Ignoring malformed rate for %s: %r", code, raw_rate, extra={"source": source})
                    continue
                if not rate.is_finite() or rate <= ZERO:
                    logger.warning("Ignoring non-positive rate for %s: %s", code, rate, extra={"source": source})
                    continue

                if Currency.objects.filter(code=code).update(exchange_rate=rate, last_updated=now, updated_at=now):
                    updated.append(code)

        logger.info(
            "Updated %d exchange rates from %s (base %s)",
            len(updated),
            source,
            default.code,
            extra={"source": source, "base_currency": default.code, "updated_codes": updated},
        )
        return Ok(updated)

    # ---------------------------------------------------------------------------
    # Regions
    # ---------------------------------------------------------------------------

    @classmethod
    def get_region(cls, code: str) -> CurrencyRegion | None:
        return CurrencyRegion.objects.select_related("currency").filter(code=cls.normalize_code(code)).first()

    @classmethod
    def list_regions(cls, active_only: bool = True) -> list[CurrencyRegion]:
        queryset = CurrencyRegion.objects.select_related("currency")
        if active_only:
            queryset = queryset.filter(is_active=True)
        return list(queryset.order_by("name"))

    @classmethod
    def currency_for_region(cls, region_code: str) -> Currency | None:
        """Currency a region is priced in, or ``None`` for unknown/inactive regions."""
        region = cls.get_region(region_code)
        if region is None or not region.is_active:
            return None
        return region.currency


# ===============================================================================
# Price Rule Store
# ===============================================================================


class PriceRuleService:
    """Loads candidate price rules for the price rule engine."""

    @classmethod
    def find_applicable(cls, currency_code: str, region_code: str | None = None) -> list[CurrencyPriceRule]:
        """
        Active rules for a currency.

        Region-less rules always qualify; region-scoped rules only for their
        own region. Date windows and order-value bounds are left to the
        engine, which evaluates them against the amount being priced.
        """
        queryset = CurrencyPriceRule.objects.filter(
            currency_id=CurrencyService.normalize_code(currency_code),
            is_active=True,
        )
        if region_code:
            queryset = queryset.filter(
                Q(region_code__isnull=True) | Q(region_code=CurrencyService.normalize_code(region_code))
            )
        else:
            queryset = queryset.filter(region_code__isnull=True)
        return list(queryset.order_by("priority", "created_at"))
