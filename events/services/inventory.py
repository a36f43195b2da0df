# events/services/inventory.py

"""
TICKET INVENTORY ENGINE

Purpose:
- Read an authoritative catalog snapshot (price + remaining stock) for pricing.
- Reserve stock at total-locking time with an atomic compare-and-decrement.
- Release reserved stock when an order fails / times out.

HARD RULES:
- Quantities are integer units.
- Reservation is a single conditional UPDATE per ticket type
  (WHERE quantity_available >= requested), so two concurrent checkouts can
  never both take the last units. No check-then-write.
- Rows are touched in a stable (id) order so concurrent multi-line
  reservations do not deadlock.
- A failed line rolls back every line already reserved in the same call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from events.models import TicketType
from orders.services.exceptions import SoldOutError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogEntry:
    """Server-side truth for one ticket type at a point in time."""

    ticket_type_id: str
    event_id: str
    name: str
    unit_price: Decimal
    available: int
    is_active: bool


def to_int_qty(value) -> int:
    """
    Quantity normalizer.
    HARD RULE: quantities are integer units in this system.
    """
    if value is None or value == "":
        return 0

    if isinstance(value, bool):
        raise ValueError("quantity must be a whole integer unit")

    if isinstance(value, int):
        return value

    if isinstance(value, str):
        s = value.strip()
        if s.isdigit():
            return int(s)

    raise ValueError("quantity must be a whole integer unit")


def catalog_snapshot(ticket_type_ids: Iterable) -> dict[str, CatalogEntry]:
    ids = {str(i) for i in ticket_type_ids}
    if not ids:
        return {}

    rows = TicketType.objects.filter(id__in=ids).select_related("event")
    return {
        str(tt.id): CatalogEntry(
            ticket_type_id=str(tt.id),
            event_id=str(tt.event_id),
            name=tt.name,
            unit_price=Decimal(tt.unit_price),
            available=int(tt.quantity_available or 0),
            is_active=bool(tt.is_active and tt.event.is_active),
        )
        for tt in rows
    }


def _normalized(quantities: Mapping) -> list[tuple[str, int]]:
    out = []
    for ticket_type_id, qty in quantities.items():
        q = to_int_qty(qty)
        if q > 0:
            out.append((str(ticket_type_id), q))
    return sorted(out)


@transaction.atomic
def reserve_tickets(quantities: Mapping) -> None:
    """
    Atomically decrement remaining stock for every ticket type in `quantities`.

    Raises:
        SoldOutError: naming the first ticket type that cannot be satisfied.
    """
    now = timezone.now()

    for ticket_type_id, qty in _normalized(quantities):
        updated = TicketType.objects.filter(
            id=ticket_type_id,
            is_active=True,
            quantity_available__gte=qty,
        ).update(
            quantity_available=F("quantity_available") - qty,
            updated_at=now,
        )

        if updated == 1:
            continue

        current = TicketType.objects.filter(id=ticket_type_id).values("name", "quantity_available").first()
        name = (current or {}).get("name") or "ticket"
        remaining = int((current or {}).get("quantity_available") or 0)

        logger.info(
            "Reservation rejected: sold out",
            extra={"ticket_type_id": ticket_type_id, "requested": qty, "remaining": remaining},
        )
        raise SoldOutError(ticket_type_name=name, remaining=remaining, requested=qty)


@transaction.atomic
def release_tickets(quantities: Mapping) -> int:
    """
    Return previously reserved units to availability.

    Guarded so availability can never exceed the organizer's allocation.
    Returns the number of ticket types restored.
    """
    now = timezone.now()
    restored = 0

    for ticket_type_id, qty in _normalized(quantities):
        updated = TicketType.objects.filter(
            id=ticket_type_id,
            quantity_available__lte=F("quantity_total") - qty,
        ).update(
            quantity_available=F("quantity_available") + qty,
            updated_at=now,
        )

        if updated:
            restored += 1
        else:
            logger.error(
                "Release skipped: would exceed allocation",
                extra={"ticket_type_id": ticket_type_id, "quantity": qty},
            )

    return restored
