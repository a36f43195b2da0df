# carts/admin.py

from django.contrib import admin

from carts.models import Cart, CartItem


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0
    readonly_fields = ("ticket_type", "quantity", "unit_price", "created_at")


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ("id", "owner_key", "event", "is_active", "updated_at")
    list_filter = ("is_active",)
    search_fields = ("owner_key",)
    inlines = [CartItemInline]
