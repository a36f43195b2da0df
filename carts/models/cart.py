"""
PATH: carts/models/cart.py

CART MODEL

Purpose:
- Persisted ticket cart (temporary, mutable), one active cart per owner.
- Owner is either a signed-in user ("user:<id>") or a guest session ("guest:<session key>").
- A cart is bound to exactly ONE event: the first ticket type added pins it.

Rules:
- Mixing events in one cart is rejected at mutation time (carts.services.cart_service).
- Prices stored on items are display snapshots only; totals are recomputed
  server-side when an order locks them.
"""

import uuid
from decimal import Decimal

from django.db import models
from django.db.models import F, Sum

from events.models import Event


class Cart(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    owner_key = models.CharField(max_length=160, db_index=True)

    event = models.ForeignKey(
        Event,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="carts",
        help_text="Pinned by the first item; cleared when the cart empties.",
    )

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["owner_key"],
                condition=models.Q(is_active=True),
                name="one_active_cart_per_owner",
            )
        ]

    @property
    def item_count(self) -> int:
        total = self.items.aggregate(total=Sum("quantity")).get("total")
        return int(total or 0)

    @property
    def subtotal_amount(self) -> Decimal:
        total = (
            self.items.annotate(line_total=F("quantity") * F("unit_price"))
            .aggregate(total=Sum("line_total"))
            .get("total")
        )
        return total or Decimal("0.00")

    @property
    def is_empty(self) -> bool:
        return not self.items.exists()

    def assert_active(self):
        if not self.is_active:
            raise ValueError("Cart is inactive and cannot be modified")

    def __str__(self):
        status = "ACTIVE" if self.is_active else "CLOSED"
        return f"Cart {self.id} | {self.owner_key} | {status}"
