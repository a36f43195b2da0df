"""
ORDER LIFECYCLE DOMAIN RULES

This module defines the ONLY allowed lifecycle transitions
for Order entities.

DESIGN PRINCIPLES:
- No database writes
- No inventory mutation
- No side effects
"""

from orders.models import Order

# ============================================================
# DOMAIN ERRORS
# ============================================================


class OrderLifecycleError(Exception):
    pass


class InvalidOrderTransitionError(OrderLifecycleError):
    pass


# ============================================================
# STATE DEFINITIONS
# ============================================================

TERMINAL_STATES = set(Order.TERMINAL_STATUSES)

ALLOWED_TRANSITIONS = {
    Order.STATUS_PENDING_CREATION: {
        Order.STATUS_PENDING_PAYMENT_INITIATION,
        Order.STATUS_FAILED,
    },
    Order.STATUS_PENDING_PAYMENT_INITIATION: {
        # re-lock after the buyer edits the order before paying
        Order.STATUS_PENDING_CREATION,
        Order.STATUS_PROCESSING,
        Order.STATUS_FAILED,
    },
    Order.STATUS_PROCESSING: {
        Order.STATUS_STK_PUSH_SENT,
        Order.STATUS_PENDING_MANUAL,
        Order.STATUS_COMPLETED,
        Order.STATUS_FAILED,
    },
    Order.STATUS_STK_PUSH_SENT: {
        Order.STATUS_COMPLETED,
        Order.STATUS_FAILED,
    },
    Order.STATUS_PENDING_MANUAL: {
        Order.STATUS_COMPLETED,
        Order.STATUS_FAILED,
    },
}


# ============================================================
# DOMAIN RULES
# ============================================================


def can_transition(*, from_status: str, to_status: str) -> bool:
    if from_status in TERMINAL_STATES:
        return False

    return to_status in ALLOWED_TRANSITIONS.get(from_status, set())


def validate_transition(*, order: Order, target_status: str):
    if not can_transition(
        from_status=order.order_status,
        to_status=target_status,
    ):
        raise InvalidOrderTransitionError(
            f"Order {order.order_no or order.id} cannot transition from "
            f"'{order.order_status}' to '{target_status}'"
        )
