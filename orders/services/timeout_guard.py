# orders/services/timeout_guard.py

"""
TIMEOUT GUARD

Orders holding inventory (pending_payment_initiation) or waiting on a payment
(processing / stk_push_sent / pending_manual) longer than
payment_timeout_seconds are failed with `payment_timeout`; their open
payment attempts are marked expired and inventory is released.

Entry points:
- expire_stale_orders()  cron / management command sweep
- expire_if_stale(order) lazy check on status reads
"""

from __future__ import annotations

import logging
from datetime import timedelta

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from orders.models import Order, PaymentAttempt
from orders.services.config import CheckoutConfig
from orders.services.order_service import mark_order_failed

logger = logging.getLogger(__name__)

GUARDED_STATES = (Order.STATUS_PENDING_PAYMENT_INITIATION,) + Order.IN_FLIGHT_STATUSES


def _started_at(order: Order):
    if order.order_status == Order.STATUS_PENDING_PAYMENT_INITIATION:
        return order.totals_locked_at or order.created_at
    return order.payment_initiated_at or order.updated_at


def is_stale(order: Order, *, config: CheckoutConfig, now=None) -> bool:
    if order.order_status not in GUARDED_STATES:
        return False
    started = _started_at(order)
    if started is None:
        return False
    now = now or timezone.now()
    return now - started >= timedelta(seconds=config.payment_timeout_seconds)


@transaction.atomic
def expire_order(order_id, *, config: CheckoutConfig, now=None) -> bool:
    order = Order.objects.select_for_update().get(pk=order_id)
    now = now or timezone.now()

    if not is_stale(order, config=config, now=now):
        return False

    PaymentAttempt.objects.filter(order=order, status__in=PaymentAttempt.OPEN_STATUSES).update(
        status=PaymentAttempt.STATUS_EXPIRED,
        resolved_at=now,
        updated_at=now,
    )

    mark_order_failed(
        order,
        reason=Order.FAILURE_PAYMENT_TIMEOUT,
        description="Payment was not confirmed in time. Please try again.",
        now=now,
    )
    return True


def expire_if_stale(order: Order, *, config: CheckoutConfig, now=None) -> Order:
    if is_stale(order, config=config, now=now) and expire_order(order.pk, config=config, now=now):
        order.refresh_from_db()
    return order


def stale_order_ids(*, config: CheckoutConfig, now=None) -> list:
    now = now or timezone.now()
    cutoff = now - timedelta(seconds=config.payment_timeout_seconds)

    locked_stale = Q(order_status=Order.STATUS_PENDING_PAYMENT_INITIATION, totals_locked_at__lte=cutoff)
    paying_stale = Q(order_status__in=Order.IN_FLIGHT_STATUSES, payment_initiated_at__lte=cutoff)

    return list(Order.objects.filter(locked_stale | paying_stale).values_list("id", flat=True))


def expire_stale_orders(*, config: CheckoutConfig | None = None, now=None, dry_run: bool = False) -> list:
    """Returns the ids of the orders that were (or, on dry run, would be) expired."""
    config = config or CheckoutConfig.from_settings()
    now = now or timezone.now()

    candidates = stale_order_ids(config=config, now=now)
    if dry_run:
        return candidates

    expired = []
    for order_id in candidates:
        if expire_order(order_id, config=config, now=now):
            expired.append(order_id)

    if expired:
        logger.info("Expired stale orders", extra={"count": len(expired)})
    return expired
