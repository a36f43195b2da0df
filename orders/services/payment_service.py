# orders/services/payment_service.py

"""
PAYMENT INITIATION ORCHESTRATOR

initiate_payment(order, method, phone=..., gateway=...) -> PaymentInitiation

ORDER OF OPERATIONS (push payment):
1) Validate method + normalize phone            (no DB, no network)
2) Lock order row, idempotency guard,
   pending_payment_initiation -> processing      (committed)
3) Call the provider                             (outside any DB lock)
4a) Accepted: processing -> stk_push_sent, PaymentAttempt(pending)
4b) Rejected/unreachable: processing -> failed (stk_push_failed),
    inventory released, PaymentInitiationError raised

Manual transfer never calls a provider: processing -> pending_manual with a
paybill account reference the payer must quote.

Zero-total orders (fully discounted) complete immediately as complimentary.
"""

from __future__ import annotations

import logging
import secrets
import string
import uuid
from dataclasses import dataclass, field

from django.db import transaction
from django.utils import timezone

from orders.models import Order, PaymentAttempt
from orders.services.config import CheckoutConfig
from orders.services.exceptions import (
    DuplicatePaymentAttemptError,
    PaymentInitiationError,
    PaymentProviderError,
    UnsupportedPaymentMethodError,
)
from orders.services.order_lifecycle import validate_transition
from orders.services.order_service import mark_order_failed
from orders.services.phone import normalize_msisdn
from orders.services.reconciliation import complete_order
from orders.services.ticket_issuance import try_issue_tickets

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = (Order.METHOD_MPESA_STK, Order.METHOD_MANUAL_TRANSFER)


@dataclass(frozen=True)
class PaymentInitiation:
    order_id: str
    order_status: str
    method: str
    correlation_id: str
    customer_message: str = ""
    manual_instructions: dict = field(default_factory=dict)


MANUAL_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits
MANUAL_REFERENCE_ATTEMPTS = 5


def generate_manual_reference(config: CheckoutConfig) -> str:
    # Paybill account references are capped at 12 characters.
    prefix = (config.manual_reference_prefix or "NAKS")[:4]
    body = "".join(secrets.choice(MANUAL_REFERENCE_ALPHABET) for _ in range(11 - len(prefix)))
    return f"{prefix}_{body}"


def _unused_manual_reference(config: CheckoutConfig) -> str:
    for _ in range(MANUAL_REFERENCE_ATTEMPTS):
        reference = generate_manual_reference(config)
        if not PaymentAttempt.objects.filter(correlation_id=reference).exists():
            return reference
        logger.warning("Manual reference collision", extra={"reference": reference})
    raise PaymentProviderError("Could not allocate a unique paybill account reference")


def _account_reference(order: Order) -> str:
    return order.order_no.rsplit("-", 1)[-1][:12]


def initiate_payment(
    order: Order,
    method: str,
    *,
    phone: str | None = None,
    gateway=None,
    config: CheckoutConfig | None = None,
) -> PaymentInitiation:
    config = config or CheckoutConfig.from_settings()
    method = str(method or "").strip().lower()

    if method not in SUPPORTED_METHODS:
        raise UnsupportedPaymentMethodError()

    msisdn = ""
    if method == Order.METHOD_MPESA_STK:
        msisdn = normalize_msisdn(phone)

    complimentary = None
    with transaction.atomic():
        order = _lock_for_initiation(order)

        if order.total_amount <= 0:
            complimentary = _complete_complimentary(order)
        elif method == Order.METHOD_MANUAL_TRANSFER:
            return _start_manual_transfer(order, config)
        elif gateway is None:
            raise PaymentInitiationError("No payment gateway configured", order_id=order.pk)
        else:
            order.order_status = Order.STATUS_PROCESSING
            order.payment_status = Order.PAYMENT_PROCESSING
            order.payment_method = Order.METHOD_MPESA_STK
            order.customer_phone = msisdn
            order.payment_initiated_at = timezone.now()
            order.save()

    if complimentary is not None:
        try_issue_tickets(order)
        return complimentary

    logger.info("STK push requested", extra={"order_id": str(order.id), "amount": order.payable_amount})

    try:
        result = gateway.stk_push(
            amount=order.payable_amount,
            phone_number=msisdn,
            account_reference=_account_reference(order),
            description=f"Tkt {_account_reference(order)}",
        )
    except PaymentProviderError as exc:
        _fail_initiation(order, reason=Order.FAILURE_STK_PUSH_FAILED, provider_message=exc.provider_message)
        raise PaymentInitiationError(exc.provider_message, order_id=order.pk) from exc
    except Exception as exc:
        logger.exception("STK push crashed", extra={"order_id": str(order.id)})
        _fail_initiation(order, reason=Order.FAILURE_INTERNAL_ERROR, provider_message=str(exc))
        raise

    return _record_push_sent(order, result, msisdn)


def _lock_for_initiation(order: Order) -> Order:
    order = Order.objects.select_for_update().get(pk=order.pk)

    if order.is_in_flight:
        logger.info(
            "Duplicate payment initiation rejected",
            extra={"order_id": str(order.id), "correlation_id": order.checkout_request_id},
        )
        raise DuplicatePaymentAttemptError(order_id=order.id, correlation_id=order.checkout_request_id)

    validate_transition(order=order, target_status=Order.STATUS_PROCESSING)
    return order


def _start_manual_transfer(order: Order, config: CheckoutConfig) -> PaymentInitiation:
    now = timezone.now()
    reference = _unused_manual_reference(config)

    validate_transition(order=order, target_status=Order.STATUS_PROCESSING)
    order.order_status = Order.STATUS_PROCESSING
    order.payment_method = Order.METHOD_MANUAL_TRANSFER
    order.payment_initiated_at = now
    order.save()

    PaymentAttempt.objects.create(
        order=order,
        correlation_id=reference,
        method=Order.METHOD_MANUAL_TRANSFER,
        amount=order.total_amount,
        phone_number=order.customer_phone,
        status=PaymentAttempt.STATUS_PENDING,
    )

    validate_transition(order=order, target_status=Order.STATUS_PENDING_MANUAL)
    order.order_status = Order.STATUS_PENDING_MANUAL
    order.payment_status = Order.PAYMENT_PROCESSING
    order.checkout_request_id = reference
    order.result_description = "Awaiting manual payment confirmation."
    order.save()

    instructions = {
        "paybill_number": config.manual_paybill_number,
        "account_reference": reference,
        "amount": order.payable_amount,
        "currency": order.currency,
    }
    logger.info("Manual transfer pledged", extra={"order_id": str(order.id), "reference": reference})

    return PaymentInitiation(
        order_id=str(order.id),
        order_status=order.order_status,
        method=Order.METHOD_MANUAL_TRANSFER,
        correlation_id=reference,
        customer_message=(
            f"Pay {order.currency} {order.payable_amount} to paybill {config.manual_paybill_number}, "
            f"account {reference}."
        ),
        manual_instructions=instructions,
    )


def _complete_complimentary(order: Order) -> PaymentInitiation:
    correlation_id = f"COMP-{uuid.uuid4().hex[:12].upper()}"
    now = timezone.now()

    order.order_status = Order.STATUS_PROCESSING
    order.payment_method = Order.METHOD_COMPLIMENTARY
    order.payment_initiated_at = now
    order.checkout_request_id = correlation_id
    order.save()

    PaymentAttempt.objects.create(
        order=order,
        correlation_id=correlation_id,
        method=Order.METHOD_COMPLIMENTARY,
        amount=order.total_amount,
        status=PaymentAttempt.STATUS_COMPLETED,
        result_description="Fully discounted order.",
        resolved_at=now,
    )
    complete_order(order, now=now, description="Fully discounted order.")

    return PaymentInitiation(
        order_id=str(order.id),
        order_status=order.order_status,
        method=Order.METHOD_COMPLIMENTARY,
        correlation_id=correlation_id,
        customer_message="Your tickets are confirmed.",
    )


@transaction.atomic
def _fail_initiation(order: Order, *, reason: str, provider_message: str):
    order = Order.objects.select_for_update().get(pk=order.pk)
    if order.is_terminal:
        return order
    return mark_order_failed(
        order,
        reason=reason,
        description=PaymentInitiationError.payer_message,
        provider_message=provider_message,
    )


@transaction.atomic
def _record_push_sent(order: Order, result, msisdn: str) -> PaymentInitiation:
    order = Order.objects.select_for_update().get(pk=order.pk)

    attempt_status = PaymentAttempt.STATUS_PENDING
    if order.order_status == Order.STATUS_PROCESSING:
        validate_transition(order=order, target_status=Order.STATUS_STK_PUSH_SENT)
        order.order_status = Order.STATUS_STK_PUSH_SENT
        order.checkout_request_id = result.checkout_request_id
        order.result_description = result.customer_message or "Check your phone to complete payment."
        order.save()
    else:
        # Timed out (or failed) while the provider call was in flight.
        attempt_status = PaymentAttempt.STATUS_EXPIRED
        logger.warning(
            "STK push accepted after order left processing",
            extra={"order_id": str(order.id), "order_status": order.order_status},
        )

    PaymentAttempt.objects.create(
        order=order,
        correlation_id=result.checkout_request_id,
        merchant_request_id=result.merchant_request_id,
        method=Order.METHOD_MPESA_STK,
        amount=order.total_amount,
        phone_number=msisdn,
        status=attempt_status,
        raw_payload=result.raw or {},
    )

    return PaymentInitiation(
        order_id=str(order.id),
        order_status=order.order_status,
        method=Order.METHOD_MPESA_STK,
        correlation_id=result.checkout_request_id,
        customer_message=result.customer_message,
    )
