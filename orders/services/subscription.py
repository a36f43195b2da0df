# orders/services/subscription.py

"""
Order status observation for the storefront.

order_status_snapshot(order) -> dict      (one-shot, used by the polling endpoint)
subscribe(order_id, ...)   -> Iterator[dict]  (re-reads both signals until final)

Two guards are applied lazily on every read:
- the timeout guard, so an order that never hears back from the provider
  still reaches `failed` on schedule even when no cron runs
- ticket recovery, so a completed order whose issuance failed gets its
  tickets on the next read
"""

from __future__ import annotations

import time
from typing import Callable, Iterator

from orders.models import Order, PaymentAttempt
from orders.services.config import CheckoutConfig
from orders.services.status_merge import STATE_SUCCESS, StatusTracker
from orders.services.ticket_issuance import ensure_tickets_issued
from orders.services.timeout_guard import expire_if_stale


def refresh_on_read(order: Order, *, config: CheckoutConfig) -> Order:
    order = expire_if_stale(order, config=config)
    return ensure_tickets_issued(order)


def _latest_attempt_status(order: Order) -> str | None:
    if not order.checkout_request_id:
        return None
    return (
        PaymentAttempt.objects.filter(order=order, correlation_id=order.checkout_request_id)
        .values_list("status", flat=True)
        .first()
    )


def order_status_snapshot(order: Order, *, tracker: StatusTracker | None = None) -> dict:
    tracker = tracker or StatusTracker()
    tracker.observe_order(order.order_status)
    tracker.observe_payment(_latest_attempt_status(order))
    tracker.observe_tickets(order.tickets_issued_at is not None)

    data = {
        "order_id": str(order.id),
        "order_no": order.order_no,
        "state": tracker.state,
        "order_status": order.order_status,
        "payment_status": order.payment_status,
        "failure_reason": order.failure_reason,
        "message": order.result_description,
        "total_amount": str(order.total_amount),
        "currency": order.currency,
        "tickets": [],
    }

    if tracker.state == STATE_SUCCESS:
        data["tickets"] = [
            {
                "ticket_no": t.ticket_no,
                "ticket_type_name": t.ticket_type_name,
                "qr_payload": t.qr_payload,
                "is_redeemed": t.is_redeemed,
            }
            for t in order.tickets.all()
        ]

    return data


def subscribe(
    order_id,
    *,
    config: CheckoutConfig | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> Iterator[dict]:
    """
    Yield a snapshot whenever the merged state changes; stop once it is
    final or after `subscription_max_seconds`.
    """
    config = config or CheckoutConfig.from_settings()
    deadline = clock() + config.subscription_max_seconds
    tracker = StatusTracker()
    last = None

    while True:
        order = refresh_on_read(Order.objects.get(pk=order_id), config=config)
        snapshot = order_status_snapshot(order, tracker=tracker)

        key = (snapshot["state"], snapshot["order_status"], len(snapshot["tickets"]))
        if key != last:
            last = key
            yield snapshot

        if tracker.is_final or clock() >= deadline:
            return

        sleep(config.subscription_poll_seconds)
