# orders/services/status_merge.py

"""
Merging the two independently-updated status signals of a checkout:
the Order row (reconciliation worker) and the PaymentAttempt row
(provider-facing record).

Rules:
- Signals only move forward: a lower-ranked status never replaces a
  higher-ranked one, and a terminal status is never replaced at all.
- The buyer sees "success" only when BOTH signals report success and the
  order's tickets have been issued.
- A failed order is final even if the attempt later reports success.
"""

from __future__ import annotations

from dataclasses import dataclass

from orders.models import Order, PaymentAttempt

STATE_PENDING = "pending"
STATE_PROCESSING = "processing"
STATE_AWAITING_MANUAL = "awaiting_manual_payment"
STATE_SUCCESS = "success"
STATE_FAILED = "failed"

PUBLIC_TERMINAL_STATES = (STATE_SUCCESS, STATE_FAILED)

ORDER_RANK = {
    Order.STATUS_PENDING_CREATION: 0,
    Order.STATUS_PENDING_PAYMENT_INITIATION: 1,
    Order.STATUS_PROCESSING: 2,
    Order.STATUS_STK_PUSH_SENT: 3,
    Order.STATUS_PENDING_MANUAL: 3,
    Order.STATUS_COMPLETED: 9,
    Order.STATUS_FAILED: 9,
}

PAYMENT_RANK = {
    "": 0,
    PaymentAttempt.STATUS_INITIATED: 1,
    PaymentAttempt.STATUS_PENDING: 2,
    PaymentAttempt.STATUS_COMPLETED: 9,
    PaymentAttempt.STATUS_FAILED: 9,
    PaymentAttempt.STATUS_CANCELLED: 9,
    PaymentAttempt.STATUS_EXPIRED: 9,
}

TERMINAL_RANK = 9


def _merge(previous: str | None, incoming: str | None, ranks: dict) -> str | None:
    if previous is None:
        return incoming
    if incoming is None:
        return previous

    prev_rank = ranks.get(previous, 0)
    if prev_rank >= TERMINAL_RANK:
        return previous
    if ranks.get(incoming, 0) >= prev_rank:
        return incoming
    return previous


def merge_order_status(previous: str | None, incoming: str | None) -> str | None:
    return _merge(previous, incoming, ORDER_RANK)


def merge_payment_status(previous: str | None, incoming: str | None) -> str | None:
    return _merge(previous, incoming, PAYMENT_RANK)


def public_state(order_status: str | None, payment_status: str | None, tickets_issued: bool = False) -> str:
    if order_status == Order.STATUS_FAILED:
        return STATE_FAILED

    if order_status == Order.STATUS_COMPLETED:
        if payment_status == PaymentAttempt.STATUS_COMPLETED and tickets_issued:
            return STATE_SUCCESS
        return STATE_PROCESSING

    if order_status == Order.STATUS_PENDING_MANUAL:
        return STATE_AWAITING_MANUAL

    if order_status in (Order.STATUS_PROCESSING, Order.STATUS_STK_PUSH_SENT):
        return STATE_PROCESSING

    return STATE_PENDING


@dataclass
class StatusTracker:
    """
    Holds the latest-known value of each signal for one order and exposes
    the merged buyer-facing state. Safe to feed signals in any order.
    """

    order_status: str | None = None
    payment_status: str | None = None
    tickets_issued: bool = False

    def observe_order(self, status: str | None) -> str:
        self.order_status = merge_order_status(self.order_status, status)
        return self.state

    def observe_payment(self, status: str | None) -> str:
        self.payment_status = merge_payment_status(self.payment_status, status)
        return self.state

    def observe_tickets(self, issued: bool) -> str:
        self.tickets_issued = self.tickets_issued or bool(issued)
        return self.state

    @property
    def state(self) -> str:
        return public_state(self.order_status, self.payment_status, self.tickets_issued)

    @property
    def is_final(self) -> bool:
        return self.state in PUBLIC_TERMINAL_STATES
