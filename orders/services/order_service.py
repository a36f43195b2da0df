# orders/services/order_service.py

"""
ORDER AGGREGATE SERVICE

SINGLE SOURCE OF TRUTH for:
- Order creation from a cart snapshot
- Authoritative total locking + inventory reservation
- Failing an order (with inventory release)

GUARANTEES:
- An order is created (pending_creation) before anything can fail on it,
  so resource errors are recorded ON the order for async observers
- Inventory is reserved exactly when totals are locked, never at cart time
- Reserved inventory is released at most once
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction
from django.utils import timezone

from carts.services.snapshot import CartLine, CartSnapshot
from coupons.services.resolver import resolve_coupon
from events.models import Event
from events.services.inventory import catalog_snapshot, release_tickets, reserve_tickets
from orders.models import Order, OrderItem
from orders.services.config import CheckoutConfig
from orders.services.exceptions import (
    CartEventMismatchError,
    CheckoutError,
    EmptyCartError,
    InvalidContactError,
)
from orders.services.order_lifecycle import InvalidOrderTransitionError, validate_transition
from orders.services.totals import LockedTotal, lock_totals

logger = logging.getLogger(__name__)

EDITABLE_STATES = (Order.STATUS_PENDING_CREATION, Order.STATUS_PENDING_PAYMENT_INITIATION)


@dataclass(frozen=True)
class CustomerContact:
    name: str
    email: str
    phone: str = ""


def validate_contact(name, email, phone=None) -> CustomerContact:
    name = str(name or "").strip()
    email = str(email or "").strip().lower()

    if not name:
        raise InvalidContactError("Customer name is required.")

    try:
        validate_email(email)
    except ValidationError:
        raise InvalidContactError("A valid email address is required.")

    return CustomerContact(name=name, email=email, phone=str(phone or "").strip())


# ============================================================
# CREATE / UPDATE
# ============================================================


def create_or_update_order(
    cart: CartSnapshot,
    contact: CustomerContact,
    coupon_code: str | None = None,
    *,
    owner_id: str = Order.ANONYMOUS_OWNER,
    order: Order | None = None,
    supersedes: Order | None = None,
    config: CheckoutConfig | None = None,
) -> Order:
    """
    Create a new order (or re-price an editable one) and lock its totals.

    The order row is committed in pending_creation first. If locking fails
    (sold out, coupon rejected) the order stays in pending_creation with
    the error recorded on it, and the error is re-raised to the caller.
    """
    if not cart.lines:
        raise EmptyCartError()

    event = Event.objects.filter(pk=cart.event_id, is_active=True).first()
    if event is None:
        raise EmptyCartError("This event is no longer available for sale.")

    if order is None:
        order = Order.objects.create(
            owner_id=owner_id or Order.ANONYMOUS_OWNER,
            customer_name=contact.name,
            customer_email=contact.email,
            customer_phone=contact.phone,
            event=event,
            currency=(config or CheckoutConfig.from_settings()).currency,
            supersedes=supersedes,
        )
        logger.info("Order created", extra={"order_id": str(order.id), "order_no": order.order_no})
    else:
        order = _reopen_for_update(order, contact=contact, event=event, owner_id=owner_id)

    try:
        return lock_order_totals(order, cart, coupon_code)
    except CheckoutError as exc:
        _record_error(order, exc)
        raise


@transaction.atomic
def _reopen_for_update(order: Order, *, contact: CustomerContact, event: Event, owner_id: str) -> Order:
    order = Order.objects.select_for_update().get(pk=order.pk)

    if order.owner_id != (owner_id or Order.ANONYMOUS_OWNER):
        raise InvalidOrderTransitionError(f"Order {order.order_no} belongs to another buyer")

    if order.order_status not in EDITABLE_STATES:
        raise InvalidOrderTransitionError(
            f"Order {order.order_no} cannot be edited in status '{order.order_status}'"
        )

    if order.order_status == Order.STATUS_PENDING_PAYMENT_INITIATION:
        validate_transition(order=order, target_status=Order.STATUS_PENDING_CREATION)
        _release_inventory(order)
        order.order_status = Order.STATUS_PENDING_CREATION
        order.inventory_reserved = False
        order.inventory_released = False

    order.items.all().delete()
    order.customer_name = contact.name
    order.customer_email = contact.email
    order.customer_phone = contact.phone
    order.event = event
    order.save()
    return order


@transaction.atomic
def lock_order_totals(order: Order, cart: CartSnapshot, coupon_code: str | None = None) -> Order:
    """
    pending_creation -> pending_payment_initiation

    Re-reads prices/stock, re-validates the coupon, reserves inventory and
    writes priced lines. Everything rolls back together on failure.
    """
    order = Order.objects.select_for_update().select_related("event").get(pk=order.pk)
    validate_transition(order=order, target_status=Order.STATUS_PENDING_PAYMENT_INITIATION)

    if str(order.event_id) != str(cart.event_id):
        raise CartEventMismatchError()

    coupon = None
    if coupon_code and str(coupon_code).strip():
        coupon = resolve_coupon(coupon_code, event=order.event, owner_id=order.owner_id)

    catalog = catalog_snapshot(cart.quantities.keys())
    locked = lock_totals(cart, catalog, coupon)

    reserve_tickets(locked.quantities)

    _write_locked_totals(order, locked)

    logger.info(
        "Order totals locked",
        extra={
            "order_id": str(order.id),
            "original_total": str(locked.original_total),
            "total": str(locked.total),
            "coupon": order.coupon_code,
        },
    )
    return order


def _write_locked_totals(order: Order, locked: LockedTotal):
    order.items.all().delete()
    OrderItem.objects.bulk_create(
        [
            OrderItem(
                order=order,
                ticket_type_id=line.ticket_type_id,
                ticket_type_name=line.name,
                unit_price=line.unit_price,
                quantity=line.quantity,
                line_total=line.line_total,
            )
            for line in locked.lines
        ]
    )

    order.original_total_amount = locked.original_total
    order.discount_amount = locked.discount_amount
    order.total_amount = locked.total
    order.coupon = locked.coupon
    order.coupon_code = locked.coupon.code if locked.coupon else ""
    order.inventory_reserved = True
    order.inventory_released = False
    order.order_status = Order.STATUS_PENDING_PAYMENT_INITIATION
    order.totals_locked_at = timezone.now()
    order.error_code = ""
    order.result_description = ""
    order.save()


def _record_error(order: Order, exc: CheckoutError):
    Order.objects.filter(pk=order.pk, order_status=Order.STATUS_PENDING_CREATION).update(
        error_code=exc.code,
        result_description=exc.payer_message,
        updated_at=timezone.now(),
    )
    logger.info(
        "Order totals rejected",
        extra={"order_id": str(order.id), "error_code": exc.code, "detail": str(exc)},
    )


# ============================================================
# FAILURE + INVENTORY RELEASE
# ============================================================


def _release_inventory(order: Order) -> bool:
    if not order.inventory_reserved or order.inventory_released:
        return False

    release_tickets(order.quantities())
    order.inventory_released = True
    return True


def mark_order_failed(
    order: Order,
    *,
    reason: str,
    description: str = "",
    provider_message: str = "",
    now=None,
) -> Order:
    """
    Transition a LOCKED (select_for_update) order to failed and release its stock.
    Caller owns the transaction.
    """
    validate_transition(order=order, target_status=Order.STATUS_FAILED)

    released = _release_inventory(order)

    order.order_status = Order.STATUS_FAILED
    order.payment_status = Order.PAYMENT_FAILED
    order.failure_reason = reason
    order.result_description = description or dict(Order.FAILURE_REASON_CHOICES).get(reason, reason)
    if provider_message:
        order.provider_message = provider_message
    order.failed_at = now or timezone.now()
    order.save()

    logger.warning(
        "Order failed",
        extra={
            "order_id": str(order.id),
            "reason": reason,
            "inventory_released": released,
            "provider_message": provider_message,
        },
    )
    return order


# ============================================================
# RETRY
# ============================================================


def snapshot_from_order(order: Order) -> CartSnapshot:
    return CartSnapshot.from_lines(
        order.event_id,
        [
            CartLine(
                ticket_type_id=str(item.ticket_type_id),
                quantity=int(item.quantity),
                name=item.ticket_type_name,
                display_unit_price=item.unit_price,
            )
            for item in order.items.all()
        ],
    )


def retry_order(order: Order, *, owner_id: str = Order.ANONYMOUS_OWNER) -> Order:
    """
    "Try again" after a failed payment: a brand-new order with the same
    lines, contact and coupon, linked back through `supersedes`.
    """
    if order.order_status != Order.STATUS_FAILED:
        raise InvalidOrderTransitionError(f"Only failed orders can be retried (order {order.order_no})")

    if order.owner_id != (owner_id or Order.ANONYMOUS_OWNER):
        raise InvalidOrderTransitionError(f"Order {order.order_no} belongs to another buyer")

    contact = CustomerContact(
        name=order.customer_name,
        email=order.customer_email,
        phone=order.customer_phone,
    )
    return create_or_update_order(
        snapshot_from_order(order),
        contact,
        order.coupon_code or None,
        owner_id=order.owner_id,
        supersedes=order,
        config=replace(CheckoutConfig.from_settings(), currency=order.currency),
    )
