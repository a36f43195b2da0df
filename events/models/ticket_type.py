# events/models/ticket_type.py

"""
TICKET TYPE (CATALOG + INVENTORY)

INVENTORY MODEL (IMPORTANT):
- quantity_total is the organizer's allocation
- quantity_available is the remaining, un-reserved stock
- quantity_available is ONLY changed through events.services.inventory
  (atomic compare-and-decrement / guarded release), never by the cart
"""

import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from .event import Event


class TicketType(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    event = models.ForeignKey(
        Event,
        on_delete=models.CASCADE,
        related_name="ticket_types",
    )

    name = models.CharField(max_length=120)

    unit_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )

    quantity_total = models.PositiveIntegerField()
    quantity_available = models.PositiveIntegerField()

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["event", "unit_price"]
        indexes = [
            models.Index(fields=["event", "is_active"], name="ticket_type_event_active_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity_available__lte=models.F("quantity_total")),
                name="ticket_type_available_within_total",
            ),
        ]

    def clean(self):
        if self.quantity_available is not None and self.quantity_total is not None:
            if int(self.quantity_available) > int(self.quantity_total):
                raise ValidationError(
                    {"quantity_available": "Available quantity cannot exceed total quantity"}
                )

    @property
    def is_sold_out(self) -> bool:
        return int(self.quantity_available or 0) <= 0

    def __str__(self):
        return f"{self.event.name} | {self.name} | {self.unit_price}"
