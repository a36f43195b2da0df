# carts/services/snapshot.py

"""
CART SNAPSHOT

An immutable view of "what the buyer asked for":
(event, ticket type, quantity) lines with zero-quantity lines dropped.

The snapshot deliberately carries the cart's display prices only as a hint;
the order pipeline re-reads authoritative prices from the catalog when it
locks totals.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from carts.models import Cart
from orders.services.exceptions import CartEventMismatchError, EmptyCartError


@dataclass(frozen=True)
class CartLine:
    ticket_type_id: str
    quantity: int
    name: str = ""
    display_unit_price: Decimal = Decimal("0.00")


@dataclass(frozen=True)
class CartSnapshot:
    event_id: str
    lines: tuple[CartLine, ...]

    @classmethod
    def from_lines(cls, event_id, lines: Iterable[CartLine]) -> "CartSnapshot":
        kept = tuple(line for line in lines if int(line.quantity) > 0)
        if not kept:
            raise EmptyCartError()
        return cls(event_id=str(event_id), lines=kept)

    @property
    def quantities(self) -> dict[str, int]:
        out: dict[str, int] = {}
        for line in self.lines:
            out[line.ticket_type_id] = out.get(line.ticket_type_id, 0) + int(line.quantity)
        return out

    @property
    def ticket_count(self) -> int:
        return sum(int(line.quantity) for line in self.lines)


def build_cart_snapshot(cart: Cart, *, event_id=None) -> CartSnapshot:
    """
    Freeze a persisted cart into a CartSnapshot.

    Raises:
        EmptyCartError: cart has no positive-quantity lines.
        CartEventMismatchError: caller expects a different event than the cart holds.
    """
    items = list(cart.items.select_related("ticket_type").order_by("created_at"))
    lines = [
        CartLine(
            ticket_type_id=str(item.ticket_type_id),
            quantity=int(item.quantity),
            name=item.ticket_type.name,
            display_unit_price=item.unit_price,
        )
        for item in items
        if int(item.quantity or 0) > 0
    ]

    if not lines or cart.event_id is None:
        raise EmptyCartError()

    if event_id is not None and str(event_id) != str(cart.event_id):
        raise CartEventMismatchError()

    return CartSnapshot.from_lines(cart.event_id, lines)
