# ===============================================================================
# PYTEST CONFIGURATION FOR THE PRICING PLATFORM
# ===============================================================================
"""
Global test configuration for the pricing platform.

Test Structure:
- tests/ mirrors apps/ structure for app-specific tests
- Naming convention: test_{app}_{feature}.py

Test Discovery:
- Run specific app tests: pytest tests/promotions/
- Run all tests: pytest tests/
"""

import os

import django


def pytest_configure():
    """Configure Django settings for pytest"""
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.test')

    # Configure Django
    django.setup()

# ===============================================================================
# PYTEST FIXTURES
# ===============================================================================

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402

from apps.currencies.models import Currency  # noqa: E402


@pytest.fixture
def usd(db):
    """Default currency"""
    return Currency.objects.create(
        code='USD',
        name='US Dollar',
        symbol='$',
        decimals=2,
        exchange_rate=Decimal('1'),
        is_default=True,
        is_active=True,
    )


@pytest.fixture
def eur(db):
    """Secondary currency quoted against USD"""
    return Currency.objects.create(
        code='EUR',
        name='Euro',
        symbol='€',
        decimals=2,
        exchange_rate=Decimal('0.9'),
        position='after',
        is_active=True,
    )
