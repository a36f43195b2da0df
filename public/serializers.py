# PATH: public/serializers.py

"""
PATH: public/serializers.py

PUBLIC SERIALIZERS (TICKET STOREFRONT)

Purpose:
- Single, shared schema contracts for Public API endpoints.
- Keeps public/views thin and consistent (no duplicated serializer definitions).

Used by:
- public/views/catalog.py   (events + ticket types)
- public/views/cart.py      (persisted cart)
- public/views/orders.py    (create / pay / retry / status / stream)
- public/views/mpesa.py     (STK callback ack)
- public/views/me.py        (ticket history)

Notes:
- These serializers are "transport layer" only:
  they validate request/response shapes, not business rules.
"""

from __future__ import annotations

from rest_framework import serializers

from carts.services.cart_service import MAX_TICKETS_PER_LINE
from events.models import Event, TicketType
from orders.models import Order, OrderItem, Ticket


# ============================================================
# CATALOG
# ============================================================


class PublicTicketTypeSerializer(serializers.ModelSerializer):
    is_sold_out = serializers.BooleanField(read_only=True)

    class Meta:
        model = TicketType
        fields = ["id", "name", "unit_price", "quantity_available", "is_sold_out"]


class PublicEventSerializer(serializers.ModelSerializer):
    ticket_types = serializers.SerializerMethodField()

    class Meta:
        model = Event
        fields = ["id", "name", "venue", "starts_at", "ticket_types"]

    def get_ticket_types(self, obj):
        active = [tt for tt in obj.ticket_types.all() if tt.is_active]
        return PublicTicketTypeSerializer(active, many=True).data


# ============================================================
# CART
# ============================================================


class CartItemSetSerializer(serializers.Serializer):
    """quantity is absolute; 0 removes the line."""

    ticket_type_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=0, max_value=MAX_TICKETS_PER_LINE)


class CartLineSerializer(serializers.Serializer):
    ticket_type_id = serializers.UUIDField()
    name = serializers.CharField()
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2)
    quantity = serializers.IntegerField()
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2)


class CartResponseSerializer(serializers.Serializer):
    cart_id = serializers.UUIDField()
    event_id = serializers.UUIDField(allow_null=True)
    items = CartLineSerializer(many=True)
    item_count = serializers.IntegerField()
    subtotal_amount = serializers.DecimalField(max_digits=12, decimal_places=2)


# ============================================================
# COUPONS
# ============================================================


class CouponPreviewSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=40)
    event_id = serializers.UUIDField(required=False)


class CouponPreviewResponseSerializer(serializers.Serializer):
    code = serializers.CharField()
    discount_type = serializers.CharField()
    original_total = serializers.DecimalField(max_digits=12, decimal_places=2)
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    discounted_total = serializers.DecimalField(max_digits=12, decimal_places=2)


# ============================================================
# ORDERS
# ============================================================


class OrderCreateSerializer(serializers.Serializer):
    """
    Create an order from the caller's persisted cart, or re-price an
    editable one when order_id is given.
    """

    order_id = serializers.UUIDField(required=False)
    event_id = serializers.UUIDField(required=False)

    customer_name = serializers.CharField(max_length=255)
    customer_email = serializers.CharField(max_length=254)
    customer_phone = serializers.CharField(max_length=20, required=False, allow_blank=True)

    coupon_code = serializers.CharField(max_length=40, required=False, allow_blank=True, allow_null=True)


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ["ticket_type", "ticket_type_name", "unit_price", "quantity", "line_total"]


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    payable_amount = serializers.IntegerField(read_only=True)
    event_name = serializers.CharField(source="event.name", read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_no",
            "event",
            "event_name",
            "customer_name",
            "customer_email",
            "customer_phone",
            "currency",
            "original_total_amount",
            "discount_amount",
            "total_amount",
            "payable_amount",
            "coupon_code",
            "order_status",
            "payment_status",
            "payment_method",
            "failure_reason",
            "result_description",
            "supersedes",
            "items",
            "created_at",
            "completed_at",
        ]
        read_only_fields = fields


class PayOrderSerializer(serializers.Serializer):
    method = serializers.ChoiceField(
        choices=[Order.METHOD_MPESA_STK, Order.METHOD_MANUAL_TRANSFER],
        default=Order.METHOD_MPESA_STK,
    )
    phone = serializers.CharField(max_length=20, required=False, allow_blank=True)


class PaymentInitiationResponseSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    order_status = serializers.CharField()
    method = serializers.CharField()
    correlation_id = serializers.CharField()
    customer_message = serializers.CharField(allow_blank=True)
    manual_instructions = serializers.DictField(required=False)


class TicketSerializer(serializers.ModelSerializer):
    qr_payload = serializers.CharField(read_only=True)

    class Meta:
        model = Ticket
        fields = ["ticket_no", "ticket_type_name", "qr_payload", "is_redeemed", "issued_at"]


class OrderStatusResponseSerializer(serializers.Serializer):
    """
    Merged view of the order record and its payment record:
    - state: pending / processing / awaiting_manual / success / failed
    """

    order_id = serializers.UUIDField()
    order_no = serializers.CharField()
    state = serializers.CharField()
    order_status = serializers.CharField()
    payment_status = serializers.CharField()
    failure_reason = serializers.CharField(allow_blank=True)
    message = serializers.CharField(allow_blank=True)
    total_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    currency = serializers.CharField()
    tickets = serializers.ListField(child=serializers.DictField())


class TicketHistorySerializer(serializers.ModelSerializer):
    event_name = serializers.CharField(source="event.name", read_only=True)
    tickets = TicketSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_no",
            "event",
            "event_name",
            "total_amount",
            "currency",
            "order_status",
            "created_at",
            "completed_at",
            "tickets",
        ]
        read_only_fields = fields


# ============================================================
# PROVIDER CALLBACK
# ============================================================


class MpesaCallbackAckSerializer(serializers.Serializer):
    """Daraja only looks at the HTTP status; the body mirrors its own convention."""

    ResultCode = serializers.IntegerField()
    ResultDesc = serializers.CharField()
