"""
Django Admin configuration for the Currencies app.
"""

from django.contrib import admin, messages
from django.http import HttpResponseRedirect
from django.urls import reverse

from .exceptions import PricingError
from .forms import CurrencyAdminForm
from .models import Currency, CurrencyPriceRule, CurrencyRegion, ExchangeRateRefresh
from .services import CurrencyService


class CurrencyPriceRuleInline(admin.TabularInline):
    """Inline for price rules within a currency."""

    model = CurrencyPriceRule
    extra = 0
    fields = ("name", "type", "value", "region_code", "priority", "is_active")
    show_change_link = True


@admin.register(Currency)
class CurrencyAdmin(admin.ModelAdmin):
    """Admin for currencies. Saves go through CurrencyService to keep a single default."""

    form = CurrencyAdminForm
    list_display = ("code", "name", "symbol", "exchange_rate", "is_default", "is_active", "last_updated")
    list_filter = ("is_default", "is_active")
    search_fields = ("code", "name")
    readonly_fields = ("last_updated", "created_at", "updated_at")
    inlines = [CurrencyPriceRuleInline]

    fieldsets = (
        (None, {
            "fields": ("code", "name", "symbol", "is_default", "is_active")
        }),
        ("Exchange Rate", {
            "fields": ("exchange_rate", "last_updated")
        }),
        ("Display", {
            "fields": ("decimals", "position", "thousands_separator", "decimal_separator", "format")
        }),
        ("Timestamps", {
            "fields": ("created_at", "updated_at"),
            "classes": ("collapse",)
        }),
    )

    def save_model(self, request, obj, form, change):
        CurrencyService.save(obj)

    def has_delete_permission(self, request, obj=None):
        """The default currency cannot be deleted"""
        if obj is not None and obj.is_default:
            return False
        return super().has_delete_permission(request, obj)

    def delete_model(self, request, obj):
        try:
            CurrencyService.delete(obj.code)
        except PricingError as e:
            self.message_user(request, str(e), level=messages.ERROR)

    def delete_queryset(self, request, queryset):
        """Bulk delete one currency at a time so every row gets the service checks."""
        for currency in queryset:
            try:
                CurrencyService.delete(currency.code)
            except PricingError as e:
                self.message_user(request, str(e), level=messages.ERROR)

    def response_delete(self, request, obj_display, obj_id):
        if Currency.objects.filter(pk=obj_id).exists():
            # delete_model refused; its error message is already queued
            return HttpResponseRedirect(
                reverse(f"admin:{self.opts.app_label}_{self.opts.model_name}_changelist")
            )
        return super().response_delete(request, obj_display, obj_id)


@admin.register(CurrencyRegion)
class CurrencyRegionAdmin(admin.ModelAdmin):
    """Admin for pricing regions."""

    list_display = ("code", "name", "currency", "is_active")
    list_filter = ("is_active", "currency")
    search_fields = ("code", "name")


@admin.register(CurrencyPriceRule)
class CurrencyPriceRuleAdmin(admin.ModelAdmin):
    """Admin for currency price rules."""

    list_display = ("name", "currency", "type", "value", "region_code", "priority", "is_active", "start_date", "end_date")
    list_filter = ("type", "is_active", "currency")
    search_fields = ("name", "description", "region_code")
    readonly_fields = ("created_at", "updated_at")
    ordering = ("currency", "priority")


@admin.register(ExchangeRateRefresh)
class ExchangeRateRefreshAdmin(admin.ModelAdmin):
    """Read-only log of exchange rate refreshes."""

    list_display = ("provider", "base_currency_code", "status", "started_at", "completed_at")
    list_filter = ("status", "provider")
    readonly_fields = (
        "provider",
        "base_currency_code",
        "status",
        "updated_codes",
        "failed_codes",
        "error_message",
        "started_at",
        "completed_at",
    )
    date_hierarchy = "started_at"

    def has_add_permission(self, request):
        return False
