# orders/models/payment_attempt.py

"""
PAYMENT ATTEMPT (transaction record keyed by correlation id)

- One row per initiation attempt; the correlation id is the provider's
  CheckoutRequestID (push), the paybill account reference (manual) or a
  generated id (complimentary).
- Written by the initiation path and by reconciliation, which is why the
  order-level status and this record are merged before reporting success.
"""

import uuid
from decimal import Decimal

from django.db import models

from .order import Order


class PaymentAttempt(models.Model):
    STATUS_INITIATED = "initiated"
    STATUS_PENDING = "pending"
    STATUS_COMPLETED = "completed"
    STATUS_FAILED = "failed"
    STATUS_CANCELLED = "cancelled"
    STATUS_EXPIRED = "expired"

    STATUS_CHOICES = [
        (STATUS_INITIATED, "Initiated"),
        (STATUS_PENDING, "Pending"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_FAILED, "Failed"),
        (STATUS_CANCELLED, "Cancelled"),
        (STATUS_EXPIRED, "Expired"),
    ]

    OPEN_STATUSES = (STATUS_INITIATED, STATUS_PENDING)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="payments")

    correlation_id = models.CharField(max_length=100, unique=True)
    merchant_request_id = models.CharField(max_length=100, blank=True, default="")

    method = models.CharField(max_length=20, choices=Order.PAYMENT_METHOD_CHOICES)
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    phone_number = models.CharField(max_length=20, blank=True, default="")

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_INITIATED)

    result_code = models.IntegerField(null=True, blank=True)
    result_description = models.TextField(blank=True, default="")
    receipt_number = models.CharField(max_length=40, blank=True, default="")
    paid_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    raw_payload = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]

    @property
    def is_open(self) -> bool:
        return self.status in self.OPEN_STATUSES

    def __str__(self):
        return f"{self.correlation_id} | {self.method} | {self.status}"
