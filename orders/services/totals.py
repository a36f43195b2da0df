# orders/services/totals.py

"""
AUTHORITATIVE TOTALS

lock_totals() is a pure function: cart snapshot + catalog snapshot + coupon
in, LockedTotal out. Prices always come from the catalog, never from the
cart's display prices or any client payload.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping

from carts.services.snapshot import CartSnapshot
from coupons.models import Coupon
from coupons.services.resolver import ZERO, compute_discount, money
from events.services.inventory import CatalogEntry
from orders.services.exceptions import CartEventMismatchError, InvalidAmountError, SoldOutError


@dataclass(frozen=True)
class LockedLine:
    ticket_type_id: str
    name: str
    unit_price: Decimal
    quantity: int

    @property
    def line_total(self) -> Decimal:
        return money(self.unit_price * self.quantity)


@dataclass(frozen=True)
class LockedTotal:
    event_id: str
    lines: tuple[LockedLine, ...]
    original_total: Decimal
    discount_amount: Decimal
    total: Decimal
    coupon: Coupon | None = None

    @property
    def quantities(self) -> dict[str, int]:
        return {line.ticket_type_id: line.quantity for line in self.lines}

    @property
    def is_complimentary(self) -> bool:
        return self.total == ZERO


def lock_totals(
    cart: CartSnapshot,
    catalog: Mapping[str, CatalogEntry],
    coupon: Coupon | None = None,
) -> LockedTotal:
    """
    Price every cart line from the catalog and apply the (already validated) coupon.

    Raises:
        SoldOutError: a ticket type is missing, inactive or short on stock.
        CartEventMismatchError: a ticket type belongs to another event.
        InvalidAmountError: total is zero without a coupon covering it.
    """
    lines = []
    for ticket_type_id, qty in sorted(cart.quantities.items()):
        entry = catalog.get(ticket_type_id)
        if entry is None or not entry.is_active:
            name = entry.name if entry else "ticket"
            raise SoldOutError(ticket_type_name=name, remaining=0, requested=qty)

        if entry.event_id != cart.event_id:
            raise CartEventMismatchError()

        if entry.available < qty:
            raise SoldOutError(ticket_type_name=entry.name, remaining=entry.available, requested=qty)

        lines.append(
            LockedLine(
                ticket_type_id=ticket_type_id,
                name=entry.name,
                unit_price=money(entry.unit_price),
                quantity=int(qty),
            )
        )

    original = money(sum((line.line_total for line in lines), ZERO))
    application = compute_discount(coupon, original)

    if application.discounted_total <= ZERO and coupon is None:
        raise InvalidAmountError()

    return LockedTotal(
        event_id=cart.event_id,
        lines=tuple(lines),
        original_total=application.original_total,
        discount_amount=application.discount_amount,
        total=application.discounted_total,
        coupon=coupon,
    )
