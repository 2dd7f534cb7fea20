"""
Exceptions raised by currency conversion and rate maintenance.
"""

from __future__ import annotations

from apps.common.types import BusinessError, IntegrationError


class PricingError(BusinessError):
    """Base exception for pricing errors"""


class ConfigurationError(PricingError):
    """Currency data cannot support the requested conversion (zero rate, inactive currency)"""


class DefaultCurrencyDeletionError(PricingError):
    """The default currency cannot be deleted"""


class ExchangeRateProviderError(IntegrationError):
    """External exchange rate provider failed or returned unusable data"""


class CurrencyInUseError(PricingError):
    """The currency is still referenced by a pricing region"""
