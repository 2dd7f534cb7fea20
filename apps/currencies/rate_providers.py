"""
Exchange rate providers and the refresh service.

Providers return rates relative to a base currency. The refresh service
applies only the rates that came back valid and leaves every other stored
rate untouched, so a flaky provider can never wipe out working prices.
"""

from __future__ import annotations

import logging
import secrets
import time
from decimal import Decimal
from typing import Any, Protocol

import requests
from django.conf import settings
from django.utils import timezone

from apps.common.money import ZERO, to_decimal
from apps.common.types import Err, Ok, Result

from .exceptions import ExchangeRateProviderError
from .models import Currency, ExchangeRateRefresh
from .services import CurrencyService

logger = logging.getLogger(__name__)

# HTTP status codes below this are considered successful
HTTP_SUCCESS_THRESHOLD = 400


def get_exchange_rate_settings() -> dict[str, Any]:
    """Exchange rate configuration from settings with fallbacks."""
    return getattr(
        settings,
        "EXCHANGE_RATES",
        {
            "PROVIDER_URL": "",
            "REQUEST_TIMEOUT": 10,
            "MAX_RETRIES": 3,
            "BACKOFF_BASE_SECONDS": 1,
        },
    )


class ExchangeRateProvider(Protocol):
    """Source of exchange rates, expressed per 1 unit of ``base_code``."""

    name: str

    def fetch_rates(self, base_code: str) -> dict[str, Decimal]: ...


# ===============================================================================
# HTTP Provider
# ===============================================================================


class HTTPExchangeRateProvider:
    """
    Fetches rates from a JSON HTTP endpoint.

    The endpoint is called as ``GET {url}?base=EUR`` and must answer with
    ``{"rates": {"USD": 1.08, ...}}``. Timeouts, connection errors and
    non-2xx answers are retried with exponential backoff and jitter.
    """

    name = "http"

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        config = get_exchange_rate_settings()
        self.url = url if url is not None else config.get("PROVIDER_URL", "")
        self.timeout = timeout if timeout is not None else config.get("REQUEST_TIMEOUT", 10)
        self.max_retries = max(1, max_retries if max_retries is not None else config.get("MAX_RETRIES", 3))
        self.backoff_base = backoff_base if backoff_base is not None else config.get("BACKOFF_BASE_SECONDS", 1)
        self.session = session or requests.Session()

    def fetch_rates(self, base_code: str) -> dict[str, Decimal]:
        """
        Raises:
            ExchangeRateProviderError: every attempt failed or the payload is unusable.
        """
        if not self.url:
            raise ExchangeRateProviderError("No exchange rate provider URL configured")

        last_error = "no attempt made"
        for attempt in range(self.max_retries):
            try:
                logger.info(
                    "🌐 [Rates] GET %s base=%s (attempt %d/%d)",
                    self.url,
                    base_code,
                    attempt + 1,
                    self.max_retries,
                )
                response = self.session.get(
                    self.url,
                    params={"base": base_code},
                    headers={"Accept": "application/json"},
                    timeout=self.timeout,
                )
                if response.status_code < HTTP_SUCCESS_THRESHOLD:
                    return self._parse_rates(response)

                last_error = f"HTTP {response.status_code}"
                logger.warning("⚠️ [Rates] %s: %s", last_error, response.text[:200])

            except requests.exceptions.Timeout:
                last_error = "Request timeout"
                logger.warning("⏱️ [Rates] Timeout (attempt %d)", attempt + 1)

            except requests.exceptions.ConnectionError as e:
                last_error = "Connection failed"
                logger.warning("🔌 [Rates] Connection error: %s", e)

            if attempt < self.max_retries - 1:
                self._backoff(attempt)

        raise ExchangeRateProviderError(f"Exchange rate fetch failed after {self.max_retries} attempts: {last_error}")

    def _parse_rates(self, response: requests.Response) -> dict[str, Decimal]:
        try:
            payload = response.json()
        except ValueError as e:
            raise ExchangeRateProviderError("Exchange rate provider returned invalid JSON") from e

        raw_rates = payload.get("rates") if isinstance(payload, dict) else None
        if not isinstance(raw_rates, dict):
            raise ExchangeRateProviderError("Exchange rate payload has no 'rates' object")

        rates: dict[str, Decimal] = {}
        for code, raw in raw_rates.items():
            try:
                rates[str(code).upper()] = to_decimal(raw)
            except (TypeError, ValueError):
                logger.warning("⚠️ [Rates] Dropping unparseable rate for %s: %r", code, raw)
        return rates

    def _backoff(self, attempt: int) -> None:
        """Exponential backoff with cryptographic jitter."""
        jitter = secrets.randbelow(1000) / 1000
        time.sleep(self.backoff_base * (2**attempt) + jitter)


# ===============================================================================
# Refresh Service
# ===============================================================================


class ExchangeRateRefreshService:
    """Pulls rates from a provider into the currency catalog."""

    @classmethod
    def refresh(cls, provider: ExchangeRateProvider | None = None) -> Result[ExchangeRateRefresh, str]:
        """
        Refresh every active non-default currency from ``provider``.

        Codes the provider did not return, or returned with a non-positive
        rate, are recorded as failed and keep their stored rate. A provider
        error is recorded as a failed refresh and returned as ``Err``.
        """
        provider = provider or HTTPExchangeRateProvider()
        provider_name = getattr(provider, "name", provider.__class__.__name__)

        default = CurrencyService.get_default()
        if default is None:
            return Err("No default currency configured")

        refresh = ExchangeRateRefresh(provider=provider_name, base_currency_code=default.code)
        wanted = list(
            Currency.objects.filter(is_active=True).exclude(code=default.code).values_list("code", flat=True)
        )

        try:
            fetched = provider.fetch_rates(default.code)
        except Exception as e:  # noqa: BLE001
            logger.error(
                "🔥 [Rates] Refresh from %s failed: %s",
                provider_name,
                e,
                extra={"provider": provider_name, "base_currency": default.code},
            )
            refresh.status = "failed"
            refresh.failed_codes = wanted
            refresh.error_message = str(e)[:1000]
            refresh.completed_at = timezone.now()
            refresh.save()
            return Err(f"Exchange rate refresh failed: {e}")

        valid = {
            code: rate
            for code, rate in fetched.items()
            if code in wanted and rate.is_finite() and rate > ZERO
        }
        result = CurrencyService.update_exchange_rates(valid, source=provider_name)
        if result.is_err():
            return Err(result.unwrap_err())

        updated = result.unwrap()
        failed = [code for code in wanted if code not in updated]

        refresh.updated_codes = updated
        refresh.failed_codes = failed
        refresh.status = "partial" if failed else "success"
        refresh.completed_at = timezone.now()
        refresh.save()

        logger.info(
            "✅ [Rates] Refresh %s: %d updated, %d missing",
            refresh.status,
            len(updated),
            len(failed),
            extra={"provider": provider_name, "updated_codes": updated, "failed_codes": failed},
        )
        return Ok(refresh)
