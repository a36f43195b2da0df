# coupons/admin.py

from django.contrib import admin

from coupons.models import Coupon


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = (
        "code",
        "organizer_id",
        "discount_type",
        "discount_value",
        "used_count",
        "usage_limit",
        "expires_at",
        "is_active",
    )
    list_filter = ("discount_type", "is_active")
    search_fields = ("code", "organizer_id")
    readonly_fields = ("used_count", "created_at", "updated_at")
