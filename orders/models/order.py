# orders/models/order.py

import uuid
from decimal import ROUND_HALF_UP, Decimal

from django.db import models
from django.utils import timezone

from coupons.models import Coupon
from events.models import Event


class Order(models.Model):
    """
    One checkout attempt: cart lines, locked totals, contact, lifecycle status.

    GUARANTEES:
    - Totals are written only when the server locks them (orders.services.order_service)
    - Terminal orders (completed / failed) are immutable financial records
    - A retry is a NEW order pointing at the failed one through `supersedes`
    """

    ANONYMOUS_OWNER = "anonymous"

    # ------------------------------
    # Order lifecycle
    # ------------------------------
    STATUS_PENDING_CREATION = "pending_creation"
    STATUS_PENDING_PAYMENT_INITIATION = "pending_payment_initiation"
    STATUS_PROCESSING = "processing"
    STATUS_STK_PUSH_SENT = "stk_push_sent"
    STATUS_PENDING_MANUAL = "pending_manual"
    STATUS_COMPLETED = "completed"
    STATUS_FAILED = "failed"

    STATUS_CHOICES = [
        (STATUS_PENDING_CREATION, "Pending creation"),
        (STATUS_PENDING_PAYMENT_INITIATION, "Pending payment initiation"),
        (STATUS_PROCESSING, "Processing"),
        (STATUS_STK_PUSH_SENT, "STK push sent"),
        (STATUS_PENDING_MANUAL, "Pending manual payment"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_FAILED, "Failed"),
    ]

    IN_FLIGHT_STATUSES = (STATUS_PROCESSING, STATUS_STK_PUSH_SENT, STATUS_PENDING_MANUAL)
    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED)

    # ------------------------------
    # Payment status (order-level view)
    # ------------------------------
    PAYMENT_PENDING = "pending"
    PAYMENT_PROCESSING = "processing"
    PAYMENT_COMPLETED = "completed"
    PAYMENT_FAILED = "failed"

    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_PENDING, "Pending"),
        (PAYMENT_PROCESSING, "Processing"),
        (PAYMENT_COMPLETED, "Completed"),
        (PAYMENT_FAILED, "Failed"),
    ]

    # ------------------------------
    # Failure reasons (status detail for `failed`)
    # ------------------------------
    FAILURE_STK_PUSH_FAILED = "stk_push_failed"
    FAILURE_PAYMENT_TIMEOUT = "payment_timeout"
    FAILURE_INTERNAL_ERROR = "internal_error"
    FAILURE_PAYMENT_DECLINED = "payment_declined"
    FAILURE_PAYMENT_CANCELLED = "payment_cancelled"
    FAILURE_MANUAL_REJECTED = "manual_rejected"
    FAILURE_AMOUNT_MISMATCH = "amount_mismatch"

    FAILURE_REASON_CHOICES = [
        (FAILURE_STK_PUSH_FAILED, "STK push failed"),
        (FAILURE_PAYMENT_TIMEOUT, "Payment timeout"),
        (FAILURE_INTERNAL_ERROR, "Internal error"),
        (FAILURE_PAYMENT_DECLINED, "Payment declined"),
        (FAILURE_PAYMENT_CANCELLED, "Payment cancelled"),
        (FAILURE_MANUAL_REJECTED, "Manual payment rejected"),
        (FAILURE_AMOUNT_MISMATCH, "Amount mismatch"),
    ]

    # ------------------------------
    # Payment methods
    # ------------------------------
    METHOD_MPESA_STK = "mpesa_stk"
    METHOD_MANUAL_TRANSFER = "manual_transfer"
    METHOD_COMPLIMENTARY = "complimentary"

    PAYMENT_METHOD_CHOICES = [
        (METHOD_MPESA_STK, "M-Pesa STK push"),
        (METHOD_MANUAL_TRANSFER, "Manual paybill transfer"),
        (METHOD_COMPLIMENTARY, "Complimentary"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order_no = models.CharField(
        max_length=64,
        unique=True,
        blank=True,
        help_text="System-generated public order reference",
    )

    owner_id = models.CharField(max_length=128, default=ANONYMOUS_OWNER, db_index=True)

    customer_name = models.CharField(max_length=255)
    customer_email = models.EmailField()
    customer_phone = models.CharField(max_length=20, blank=True, default="")

    event = models.ForeignKey(Event, on_delete=models.PROTECT, related_name="orders")

    currency = models.CharField(max_length=3, default="KES")

    original_total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    coupon = models.ForeignKey(
        Coupon,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )
    coupon_code = models.CharField(max_length=40, blank=True, default="")
    coupon_redeemed = models.BooleanField(default=False)

    order_status = models.CharField(max_length=40, choices=STATUS_CHOICES, default=STATUS_PENDING_CREATION)
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_PENDING)
    failure_reason = models.CharField(max_length=40, choices=FAILURE_REASON_CHOICES, blank=True, default="")

    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, blank=True, default="")

    checkout_request_id = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        db_index=True,
        help_text="Correlation id of the active payment attempt",
    )

    error_code = models.CharField(max_length=60, blank=True, default="")
    result_description = models.TextField(blank=True, default="", help_text="Payer-safe status description")
    provider_message = models.TextField(blank=True, default="", help_text="Raw provider message (support only)")

    inventory_reserved = models.BooleanField(default=False)
    inventory_released = models.BooleanField(default=False)

    tickets_issued_at = models.DateTimeField(null=True, blank=True)

    supersedes = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="retries",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    totals_locked_at = models.DateTimeField(null=True, blank=True)
    payment_initiated_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["order_status", "payment_initiated_at"], name="order_status_initiated_idx"),
            models.Index(fields=["owner_id", "created_at"], name="order_owner_created_idx"),
        ]

    _IMMUTABLE_FIELDS_WHEN_TERMINAL = (
        "order_status",
        "payment_status",
        "failure_reason",
        "payment_method",
        "original_total_amount",
        "discount_amount",
        "total_amount",
        "coupon_id",
        "checkout_request_id",
        "event_id",
        "owner_id",
        "completed_at",
        "failed_at",
    )

    # ------------------------------
    # Derived
    # ------------------------------
    @property
    def is_terminal(self) -> bool:
        return self.order_status in self.TERMINAL_STATUSES

    @property
    def is_in_flight(self) -> bool:
        return self.order_status in self.IN_FLIGHT_STATUSES

    @property
    def ticket_count(self) -> int:
        return sum(int(i.quantity) for i in self.items.all())

    @property
    def payable_amount(self) -> int:
        """Whole-currency amount sent to the mobile money provider."""
        return int(Decimal(self.total_amount or 0).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def quantities(self) -> dict[str, int]:
        out: dict[str, int] = {}
        for item in self.items.all():
            key = str(item.ticket_type_id)
            out[key] = out.get(key, 0) + int(item.quantity)
        return out

    # ------------------------------
    # Persistence
    # ------------------------------
    def _validate_immutable(self, previous: "Order"):
        if previous.order_status not in self.TERMINAL_STATUSES:
            return

        for field in self._IMMUTABLE_FIELDS_WHEN_TERMINAL:
            if getattr(self, field) != getattr(previous, field):
                raise ValueError(
                    f"Order is immutable once {previous.order_status}. "
                    f"Field '{field}' cannot be changed."
                )

    def save(self, *args, **kwargs):
        if self.pk and not self._state.adding:
            previous = Order.objects.filter(pk=self.pk).first()
            if previous is not None:
                self._validate_immutable(previous)

        if not self.order_no:
            prefix = timezone.now().strftime("ORD%Y%m%d")
            self.order_no = f"{prefix}-{uuid.uuid4().hex[:8].upper()}"

        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.order_no} | {self.order_status} | {self.total_amount}"
