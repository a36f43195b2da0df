# orders/models/order_item.py

import uuid
from decimal import Decimal

from django.db import models

from events.models import TicketType

from .order import Order


class OrderItem(models.Model):
    """
    Priced line written when the order locks totals.
    Unit price comes from the catalog at lock time, never from the client.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    ticket_type = models.ForeignKey(TicketType, on_delete=models.PROTECT, related_name="order_items")

    ticket_type_name = models.CharField(max_length=120)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField()
    line_total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    class Meta:
        ordering = ["ticket_type_name"]
        constraints = [
            models.UniqueConstraint(fields=["order", "ticket_type"], name="unique_ticket_type_per_order"),
        ]

    def __str__(self):
        return f"{self.ticket_type_name} x {self.quantity}"
