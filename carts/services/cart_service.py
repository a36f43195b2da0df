# carts/services/cart_service.py

"""
CART MUTATIONS

Rules:
- One active cart per owner (get_or_create under a row lock).
- A cart holds tickets for ONE event; adding another event's ticket type
  raises CartEventMismatchError.
- Setting quantity to zero removes the line; an emptied cart is unpinned.
- Cart quantities are NOT reservations. Availability is only a soft check
  here; the hard check happens when the order locks totals.
"""

from __future__ import annotations

import logging

from django.db import IntegrityError, transaction

from carts.models import Cart, CartItem
from events.models import TicketType
from events.services.inventory import to_int_qty
from orders.services.exceptions import CartEventMismatchError, SoldOutError

logger = logging.getLogger(__name__)

MAX_TICKETS_PER_LINE = 50


def owner_key_for(*, user=None, session_key: str | None = None) -> str:
    if user is not None and getattr(user, "is_authenticated", False):
        return f"user:{user.pk}"
    if session_key:
        return f"guest:{session_key}"
    raise ValueError("An authenticated user or a session key is required")


def get_or_create_active_cart(owner_key: str) -> Cart:
    cart = Cart.objects.filter(owner_key=owner_key, is_active=True).first()
    if cart:
        return cart

    try:
        with transaction.atomic():
            return Cart.objects.create(owner_key=owner_key)
    except IntegrityError:
        # Lost the race against a concurrent create for the same owner.
        return Cart.objects.get(owner_key=owner_key, is_active=True)


@transaction.atomic
def set_item_quantity(cart: Cart, *, ticket_type_id, quantity) -> Cart:
    """
    Upsert a cart line to an absolute quantity (0 removes the line).
    """
    cart = Cart.objects.select_for_update().get(pk=cart.pk)
    cart.assert_active()

    qty = to_int_qty(quantity)
    if qty < 0:
        raise ValueError("quantity cannot be negative")
    if qty > MAX_TICKETS_PER_LINE:
        raise ValueError(f"quantity cannot exceed {MAX_TICKETS_PER_LINE} per ticket type")

    ticket_type = TicketType.objects.select_related("event").get(pk=ticket_type_id)

    if qty == 0:
        CartItem.objects.filter(cart=cart, ticket_type=ticket_type).delete()
        return _unpin_if_empty(cart)

    if not (ticket_type.is_active and ticket_type.event.is_active):
        raise SoldOutError(ticket_type_name=ticket_type.name, remaining=0, requested=qty)

    if cart.event_id is not None and cart.event_id != ticket_type.event_id:
        logger.info(
            "Cart mutation rejected: event mismatch",
            extra={"cart_id": str(cart.id), "cart_event": str(cart.event_id), "event": str(ticket_type.event_id)},
        )
        raise CartEventMismatchError()

    if qty > int(ticket_type.quantity_available or 0):
        raise SoldOutError(
            ticket_type_name=ticket_type.name,
            remaining=int(ticket_type.quantity_available or 0),
            requested=qty,
        )

    if cart.event_id is None:
        cart.event = ticket_type.event
        cart.save(update_fields=["event", "updated_at"])

    item = CartItem.objects.filter(cart=cart, ticket_type=ticket_type).first()
    if item:
        item.quantity = qty
        item.unit_price = ticket_type.unit_price
        item.save()
    else:
        CartItem.objects.create(
            cart=cart,
            ticket_type=ticket_type,
            quantity=qty,
            unit_price=ticket_type.unit_price,
        )

    cart.save(update_fields=["updated_at"])
    return cart


def remove_item(cart: Cart, *, ticket_type_id) -> Cart:
    return set_item_quantity(cart, ticket_type_id=ticket_type_id, quantity=0)


@transaction.atomic
def clear_cart(cart: Cart) -> Cart:
    cart = Cart.objects.select_for_update().get(pk=cart.pk)
    cart.assert_active()
    cart.items.all().delete()
    return _unpin_if_empty(cart)


def _unpin_if_empty(cart: Cart) -> Cart:
    if cart.event_id is not None and not cart.items.exists():
        cart.event = None
        cart.save(update_fields=["event", "updated_at"])
    return cart
