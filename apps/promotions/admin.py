"""
Django Admin configuration for the Promotions app.
"""

from django.contrib import admin

from .models import Promotion, PromotionAction, PromotionRule, PromotionUsage


# ===============================================================================
# Inline Admin Classes
# ===============================================================================


class PromotionRuleInline(admin.TabularInline):
    """Inline for conditions within a promotion."""

    model = PromotionRule
    extra = 0
    fields = ("name", "condition", "operator", "value", "is_active")


class PromotionActionInline(admin.TabularInline):
    """Inline for discount actions within a promotion."""

    model = PromotionAction
    extra = 0
    fields = ("type", "value", "target_type", "target_id", "metadata")


class PromotionUsageInline(admin.TabularInline):
    """Inline for redemptions within a promotion."""

    model = PromotionUsage
    extra = 0
    readonly_fields = ("order_id", "customer_id", "discount_amount", "currency_code", "applied_at")
    fields = ("order_id", "customer_id", "discount_amount", "currency_code", "applied_at")
    can_delete = False
    max_num = 0


# ===============================================================================
# Model Admin Classes
# ===============================================================================


@admin.register(Promotion)
class PromotionAdmin(admin.ModelAdmin):
    """Admin for promotions."""

    list_display = (
        "name",
        "status",
        "scope",
        "priority",
        "exclusive",
        "start_date",
        "end_date",
        "usage_display",
    )
    list_filter = ("status", "scope", "exclusive", "discount_type")
    search_fields = ("name", "description", "coupon_id", "merchant_id")
    readonly_fields = ("usage_count", "created_at", "updated_at")
    date_hierarchy = "start_date"
    inlines = [PromotionRuleInline, PromotionActionInline, PromotionUsageInline]

    fieldsets = (
        (None, {
            "fields": ("name", "description", "status", "scope", "priority", "exclusive")
        }),
        ("Schedule", {
            "fields": ("start_date", "end_date")
        }),
        ("Discount", {
            "fields": ("discount_type", "discount_value", "min_order_amount", "max_discount_amount")
        }),
        ("Usage Limits", {
            "fields": ("usage_limit", "usage_count")
        }),
        ("Ownership", {
            "fields": ("coupon_id", "merchant_id", "metadata"),
            "classes": ("collapse",)
        }),
        ("Timestamps", {
            "fields": ("created_at", "updated_at"),
            "classes": ("collapse",)
        }),
    )

    def usage_display(self, obj):
        if obj.usage_limit:
            return f"{obj.usage_count}/{obj.usage_limit}"
        return f"{obj.usage_count}/∞"
    usage_display.short_description = "Usage"


@admin.register(PromotionUsage)
class PromotionUsageAdmin(admin.ModelAdmin):
    """Read-only admin for the usage ledger."""

    list_display = ("promotion", "order_id", "customer_id", "discount_amount", "currency_code", "applied_at")
    list_filter = ("currency_code", "applied_at")
    search_fields = ("order_id", "customer_id", "session_id")
    readonly_fields = (
        "promotion",
        "order_id",
        "customer_id",
        "session_id",
        "discount_amount",
        "currency_code",
        "applied_at",
        "metadata",
    )
    date_hierarchy = "applied_at"

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
