# orders/services/reconciliation.py

"""
RECONCILIATION LISTENER

Applies an asynchronous payment outcome to (PaymentAttempt, Order) exactly once.

Inputs are provider-neutral ProviderCallback tuples; the M-Pesa webhook and
the staff manual-payment actions both feed this module.

GUARANTEES:
- Order + attempt rows are locked together (order first); a redelivered
  callback is a no-op
- Terminal orders never change (a late success after timeout is recorded on
  the attempt only, for support follow-up)
- Success: attempt completed -> order completed -> coupon redeemed, in one
  transaction; tickets are issued AFTER that transaction commits, and a
  failed issuance is retried by the ticket recovery paths
- Failure: order failed + reserved inventory released
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from coupons.services.resolver import redeem_coupon
from orders.models import Order, PaymentAttempt
from orders.services.order_lifecycle import validate_transition
from orders.services.order_service import mark_order_failed
from orders.services.ticket_issuance import try_issue_tickets

logger = logging.getLogger(__name__)

OUTCOME_SUCCESS = "success"
OUTCOME_FAILED = "failed"
OUTCOME_CANCELLED = "cancelled"
OUTCOME_REJECTED = "rejected"

FAILURE_REASON_BY_OUTCOME = {
    OUTCOME_FAILED: Order.FAILURE_PAYMENT_DECLINED,
    OUTCOME_CANCELLED: Order.FAILURE_PAYMENT_CANCELLED,
    OUTCOME_REJECTED: Order.FAILURE_MANUAL_REJECTED,
}

ATTEMPT_STATUS_BY_OUTCOME = {
    OUTCOME_SUCCESS: PaymentAttempt.STATUS_COMPLETED,
    OUTCOME_FAILED: PaymentAttempt.STATUS_FAILED,
    OUTCOME_CANCELLED: PaymentAttempt.STATUS_CANCELLED,
    OUTCOME_REJECTED: PaymentAttempt.STATUS_FAILED,
}

ACTION_COMPLETED = "completed"
ACTION_FAILED = "failed"
ACTION_DUPLICATE = "duplicate"
ACTION_LATE_SUCCESS = "late_success"
ACTION_UNKNOWN = "unknown"


@dataclass(frozen=True)
class ProviderCallback:
    correlation_id: str
    outcome: str
    result_code: int | None = None
    result_description: str = ""
    amount: Decimal | None = None
    receipt_number: str = ""
    phone_number: str = ""
    raw: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ReconciliationResult:
    action: str
    order_id: str | None = None
    order_status: str | None = None
    tickets_issued: int = 0


def reconcile_payment(callback: ProviderCallback) -> ReconciliationResult:
    if callback.outcome not in ATTEMPT_STATUS_BY_OUTCOME:
        raise ValueError(f"Unknown payment outcome: {callback.outcome}")

    order_id = (
        PaymentAttempt.objects.filter(correlation_id=callback.correlation_id)
        .values_list("order_id", flat=True)
        .first()
    )
    if order_id is None:
        logger.warning(
            "Callback for unknown correlation id",
            extra={"correlation_id": callback.correlation_id, "outcome": callback.outcome},
        )
        return ReconciliationResult(action=ACTION_UNKNOWN)

    with transaction.atomic():
        # Order row first, then the attempt: same lock order as the timeout guard.
        order = Order.objects.select_for_update().get(pk=order_id)
        attempt = PaymentAttempt.objects.select_for_update().get(correlation_id=callback.correlation_id)
        result = _apply(order, attempt, callback)

    if result.action == ACTION_COMPLETED or (
        result.action == ACTION_DUPLICATE and result.order_status == Order.STATUS_COMPLETED
    ):
        return ReconciliationResult(
            action=result.action,
            order_id=result.order_id,
            order_status=result.order_status,
            tickets_issued=try_issue_tickets(order),
        )

    return result


def _apply(order: Order, attempt: PaymentAttempt, callback: ProviderCallback) -> ReconciliationResult:
    now = timezone.now()

    if not attempt.is_open or order.is_terminal:
        late_success = (
            callback.outcome == OUTCOME_SUCCESS
            and order.order_status == Order.STATUS_FAILED
            and attempt.status != PaymentAttempt.STATUS_COMPLETED
        )
        if late_success:
            _record_on_attempt(attempt, callback, PaymentAttempt.STATUS_COMPLETED, now)
            logger.error(
                "Late payment success on failed order; refund or manual follow-up required",
                extra={
                    "order_id": str(order.id),
                    "correlation_id": attempt.correlation_id,
                    "receipt": callback.receipt_number,
                    "failure_reason": order.failure_reason,
                },
            )
            return ReconciliationResult(ACTION_LATE_SUCCESS, str(order.id), order.order_status)

        logger.info(
            "Duplicate callback ignored",
            extra={"order_id": str(order.id), "correlation_id": attempt.correlation_id, "outcome": callback.outcome},
        )
        return ReconciliationResult(ACTION_DUPLICATE, str(order.id), order.order_status)

    if callback.outcome == OUTCOME_SUCCESS:
        if callback.amount is not None and Decimal(callback.amount) != Decimal(order.payable_amount):
            _record_on_attempt(attempt, callback, PaymentAttempt.STATUS_COMPLETED, now)
            mark_order_failed(
                order,
                reason=Order.FAILURE_AMOUNT_MISMATCH,
                description="Payment amount did not match the order total.",
                provider_message=f"paid={callback.amount} expected={order.payable_amount}",
                now=now,
            )
            return ReconciliationResult(ACTION_FAILED, str(order.id), order.order_status)

        _record_on_attempt(attempt, callback, PaymentAttempt.STATUS_COMPLETED, now)
        complete_order(order, now=now, description=callback.result_description)
        return ReconciliationResult(ACTION_COMPLETED, str(order.id), order.order_status)

    _record_on_attempt(attempt, callback, ATTEMPT_STATUS_BY_OUTCOME[callback.outcome], now)
    mark_order_failed(
        order,
        reason=FAILURE_REASON_BY_OUTCOME[callback.outcome],
        description=callback.result_description,
        provider_message=callback.result_description,
        now=now,
    )
    return ReconciliationResult(ACTION_FAILED, str(order.id), order.order_status)


def _record_on_attempt(attempt: PaymentAttempt, callback: ProviderCallback, status: str, now):
    attempt.status = status
    attempt.result_code = callback.result_code
    attempt.result_description = callback.result_description
    attempt.receipt_number = callback.receipt_number or attempt.receipt_number
    attempt.paid_amount = callback.amount
    attempt.raw_payload = callback.raw or {}
    attempt.resolved_at = now
    attempt.save()


def complete_order(order: Order, *, now=None, description: str = "") -> Order:
    """
    Transition a LOCKED order to completed and redeem its coupon.
    Caller owns the transaction.
    """
    validate_transition(order=order, target_status=Order.STATUS_COMPLETED)

    if order.coupon_id and not order.coupon_redeemed:
        # False when concurrent orders exhausted the limit; the order still completes.
        order.coupon_redeemed = redeem_coupon(order.coupon_id)

    order.order_status = Order.STATUS_COMPLETED
    order.payment_status = Order.PAYMENT_COMPLETED
    order.failure_reason = ""
    order.result_description = description or "Payment received."
    order.completed_at = now or timezone.now()
    order.save()

    logger.info("Order completed", extra={"order_id": str(order.id), "order_no": order.order_no})
    return order


# ============================================================
# MANUAL PAYBILL TRANSFERS (staff actions)
# ============================================================


def confirm_manual_payment(order: Order, *, receipt_number: str = "", confirmed_by: str = "") -> ReconciliationResult:
    if order.payment_method != Order.METHOD_MANUAL_TRANSFER or not order.checkout_request_id:
        raise ValueError(f"Order {order.order_no} is not awaiting a manual transfer")

    return reconcile_payment(
        ProviderCallback(
            correlation_id=order.checkout_request_id,
            outcome=OUTCOME_SUCCESS,
            result_description="Manual transfer confirmed.",
            receipt_number=receipt_number,
            raw={"confirmed_by": confirmed_by},
        )
    )


def reject_manual_payment(order: Order, *, reason: str = "", rejected_by: str = "") -> ReconciliationResult:
    if order.payment_method != Order.METHOD_MANUAL_TRANSFER or not order.checkout_request_id:
        raise ValueError(f"Order {order.order_no} is not awaiting a manual transfer")

    return reconcile_payment(
        ProviderCallback(
            correlation_id=order.checkout_request_id,
            outcome=OUTCOME_REJECTED,
            result_description=reason or "Manual transfer could not be verified.",
            raw={"rejected_by": rejected_by},
        )
    )
