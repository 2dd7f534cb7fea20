"""
Django settings for the pricing platform - Base Configuration
Currency conversion, price rules and promotion evaluation.
"""

import os
from pathlib import Path
from typing import Any

# ===============================================================================
# CORE DJANGO SETTINGS
# ===============================================================================

BASE_DIR = Path(__file__).resolve().parent.parent.parent

# Application definition
DJANGO_APPS: list[str] = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
]

THIRD_PARTY_APPS: list[str] = [
    'django_q',            # ⏰ Background tasks & schedules (Django-Q2)
]

LOCAL_APPS: list[str] = [
    'apps.common',
    'apps.currencies',     # 💱 Currencies, price rules & exchange rates
    'apps.promotions',     # 🏷️ Promotions, discounts & usage ledger
]

INSTALLED_APPS: list[str] = DJANGO_APPS + THIRD_PARTY_APPS + LOCAL_APPS

MIDDLEWARE: list[str] = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

# ===============================================================================
# DATABASE CONFIGURATION
# ===============================================================================

DATABASES: dict[str, dict[str, Any]] = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.environ.get('DB_NAME', 'pricing'),
        'USER': os.environ.get('DB_USER', 'pricing'),
        'PASSWORD': os.environ.get('DB_PASSWORD', 'development_password'),
        'HOST': os.environ.get('DB_HOST', 'localhost'),
        'PORT': os.environ.get('DB_PORT', '5432'),
        'CONN_MAX_AGE': 60,  # Database connection pooling
        'OPTIONS': {
            'application_name': 'pricing_platform',
        },
    }
}

# ===============================================================================
# INTERNATIONALIZATION & LOCALIZATION
# ===============================================================================

LANGUAGE_CODE = 'en'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# ===============================================================================
# STATIC FILES
# ===============================================================================

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

# ===============================================================================
# PRICING CONFIGURATION 💱
# ===============================================================================

PRICING: dict[str, Any] = {
    # Rounding precision when an order's currency is unknown
    'DEFAULT_DECIMALS': int(os.environ.get('PRICING_DEFAULT_DECIMALS', '2')),
    # Price rules are only consulted for region-specific quotes unless enabled
    'APPLY_RULES_WITHOUT_REGION': os.environ.get('PRICING_APPLY_RULES_WITHOUT_REGION', 'false').lower() == 'true',
}

# ===============================================================================
# EXCHANGE RATE PROVIDER 🌐
# ===============================================================================

EXCHANGE_RATES: dict[str, Any] = {
    'PROVIDER_URL': os.environ.get('EXCHANGE_RATES_PROVIDER_URL', ''),
    'REQUEST_TIMEOUT': int(os.environ.get('EXCHANGE_RATES_REQUEST_TIMEOUT', '10')),
    'MAX_RETRIES': int(os.environ.get('EXCHANGE_RATES_MAX_RETRIES', '3')),
    'BACKOFF_BASE_SECONDS': float(os.environ.get('EXCHANGE_RATES_BACKOFF_BASE_SECONDS', '1')),
    'REFRESH_INTERVAL_MINUTES': int(os.environ.get('EXCHANGE_RATES_REFRESH_INTERVAL_MINUTES', '60')),
}

# ===============================================================================
# DJANGO-Q2 TASK QUEUE ⏰
# ===============================================================================

Q_CLUSTER_BASE = {
    "name": "pricing-cluster",
    "timeout": 300,  # 5 minutes
    "retry": 600,  # 10 minutes retry delay
    "save_limit": 1000,  # Keep last 1000 task results
    "catch_up": False,  # Don't run missed scheduled tasks
    "orm": "default",  # Use the database as broker
    "bulk": 10,
    "queue_limit": 100,
}

Q_CLUSTER = {
    **Q_CLUSTER_BASE,
    "workers": 2,
    "recycle": 500,
    "sync": False,
}

# ===============================================================================
# DEFAULT AUTO FIELD
# ===============================================================================

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# ===============================================================================
# SECURITY SETTINGS (Base - override in prod.py)
# ===============================================================================

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY')
if not SECRET_KEY:
    # Development fallback - never use this in production
    import warnings
    warnings.warn(
        "🚨 SECURITY WARNING: Using default SECRET_KEY. "
        "Set DJANGO_SECRET_KEY environment variable for production!",
        UserWarning,
        stacklevel=2
    )
    SECRET_KEY = 'django-insecure-dev-key-only-change-in-production-or-tests'  # noqa: S105


def validate_production_secret_key() -> None:
    """Validate SECRET_KEY meets production security requirements"""
    if SECRET_KEY and SECRET_KEY.startswith('django-insecure-'):
        raise ValueError(
            "🔥 CRITICAL SECURITY ERROR: Cannot use insecure SECRET_KEY in production! "
            "Generate a secure key: python -c 'from django.core.management.utils import get_random_secret_key; print(get_random_secret_key())'"
        )
