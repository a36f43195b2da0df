# carts/models/cart_item.py

"""
CART ITEM MODEL

Rules:
- One ticket type per cart (DB constraint).
- Quantity must be > 0 (zero-quantity lines are deleted, never stored).
- Unit price is a display snapshot taken when the line was last touched.
"""

import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models

from events.models import TicketType

from .cart import Cart


class CartItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    cart = models.ForeignKey(
        Cart,
        on_delete=models.CASCADE,
        related_name="items",
    )

    ticket_type = models.ForeignKey(
        TicketType,
        on_delete=models.PROTECT,
        related_name="cart_items",
    )

    quantity = models.PositiveIntegerField(help_text="Must be greater than zero")

    unit_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Snapshot price at time of adding to cart (display only)",
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["cart", "ticket_type"],
                name="unique_ticket_type_per_cart",
            )
        ]

    def clean(self):
        if self.quantity is None or int(self.quantity) <= 0:
            raise ValidationError({"quantity": "Quantity must be greater than zero"})

        if self.unit_price is None or self.unit_price < 0:
            raise ValidationError({"unit_price": "Unit price cannot be negative"})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)

    @property
    def line_total(self) -> Decimal:
        return (self.unit_price or Decimal("0.00")) * Decimal(int(self.quantity or 0))

    def __str__(self):
        return f"{getattr(self.ticket_type, 'name', 'Ticket')} x {self.quantity}"
