"""
Currencies app configuration.
"""

from django.apps import AppConfig


class CurrenciesConfig(AppConfig):
    """Configuration for the Currencies app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.currencies"
    verbose_name = "Currencies & Price Rules"
