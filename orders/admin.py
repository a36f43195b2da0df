# orders/admin.py

from django.contrib import admin, messages

from orders.models import Order, OrderItem, PaymentAttempt, Ticket
from orders.services.reconciliation import confirm_manual_payment, reject_manual_payment


# ======================================================
# INLINES
# ======================================================


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    readonly_fields = ("ticket_type", "ticket_type_name", "unit_price", "quantity", "line_total")


class PaymentAttemptInline(admin.TabularInline):
    model = PaymentAttempt
    extra = 0
    can_delete = False
    readonly_fields = (
        "correlation_id",
        "method",
        "amount",
        "status",
        "result_code",
        "result_description",
        "receipt_number",
        "created_at",
        "resolved_at",
    )
    exclude = ("raw_payload",)


# ======================================================
# ORDER ADMIN
# ======================================================


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        "order_no",
        "event",
        "customer_email",
        "total_amount",
        "order_status",
        "payment_method",
        "failure_reason",
        "created_at",
    )
    list_filter = ("order_status", "payment_method", "failure_reason", "created_at")
    search_fields = ("order_no", "customer_email", "customer_phone", "checkout_request_id")
    readonly_fields = (
        "order_no",
        "owner_id",
        "original_total_amount",
        "discount_amount",
        "total_amount",
        "coupon",
        "coupon_code",
        "coupon_redeemed",
        "order_status",
        "payment_status",
        "failure_reason",
        "payment_method",
        "checkout_request_id",
        "provider_message",
        "inventory_reserved",
        "inventory_released",
        "tickets_issued_at",
        "supersedes",
        "created_at",
        "totals_locked_at",
        "payment_initiated_at",
        "completed_at",
        "failed_at",
    )
    inlines = [OrderItemInline, PaymentAttemptInline]
    actions = ["confirm_manual_payments", "reject_manual_payments"]

    @admin.action(description="Confirm manual paybill payment")
    def confirm_manual_payments(self, request, queryset):
        done = 0
        for order in queryset.filter(order_status=Order.STATUS_PENDING_MANUAL):
            confirm_manual_payment(order, confirmed_by=str(request.user))
            done += 1
        self.message_user(request, f"Confirmed {done} manual payment(s).", messages.SUCCESS)

    @admin.action(description="Reject manual paybill payment")
    def reject_manual_payments(self, request, queryset):
        done = 0
        for order in queryset.filter(order_status=Order.STATUS_PENDING_MANUAL):
            reject_manual_payment(order, rejected_by=str(request.user))
            done += 1
        self.message_user(request, f"Rejected {done} manual payment(s).", messages.WARNING)


# ======================================================
# TICKET ADMIN
# ======================================================


@admin.register(Ticket)
class TicketAdmin(admin.ModelAdmin):
    list_display = ("ticket_no", "ticket_type_name", "order", "is_redeemed", "issued_at")
    list_filter = ("is_redeemed", "issued_at")
    search_fields = ("ticket_no", "order__order_no")
    readonly_fields = ("ticket_no", "order", "ticket_type", "ticket_type_name", "issued_at", "redeemed_at")
    exclude = ("token",)
