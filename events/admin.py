# events/admin.py

from django.contrib import admin

from events.models import Event, TicketType


class TicketTypeInline(admin.TabularInline):
    model = TicketType
    extra = 1


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ("name", "organizer_id", "venue", "starts_at", "is_active")
    search_fields = ("name", "venue", "organizer_id")
    list_filter = ("is_active",)
    inlines = [TicketTypeInline]


@admin.register(TicketType)
class TicketTypeAdmin(admin.ModelAdmin):
    list_display = ("name", "event", "unit_price", "quantity_available", "quantity_total", "is_active")
    list_filter = ("event", "is_active")
    readonly_fields = ("created_at", "updated_at")
