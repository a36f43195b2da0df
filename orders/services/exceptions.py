# orders/services/exceptions.py

"""
CHECKOUT SERVICE ERRORS

Centralized domain errors for the checkout flow (cart -> order -> payment -> tickets).

Every error carries:
- code:          stable machine-readable identifier
- category:      input | resource | idempotency | provider
- payer_message: safe to show to the buyer (never provider internals)

Categories:
- input        rejected before any external call, no state mutation
- resource     rejected at total-locking / coupon application
- idempotency  absorbed as "already in progress" where possible
- provider     order transitions to failed, raw message kept for support
"""

from __future__ import annotations

CATEGORY_INPUT = "input"
CATEGORY_RESOURCE = "resource"
CATEGORY_IDEMPOTENCY = "idempotency"
CATEGORY_PROVIDER = "provider"


class CheckoutError(Exception):
    """Base exception for all checkout failures."""

    code = "checkout_error"
    category = CATEGORY_INPUT
    payer_message = "We could not complete your checkout. Please try again."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.payer_message)

    @property
    def detail(self) -> str:
        return str(self)


# ============================================================
# INPUT ERRORS
# ============================================================


class EmptyCartError(CheckoutError):
    code = "empty_cart"
    payer_message = "Your cart is empty. Please add tickets before checking out."


class CartEventMismatchError(CheckoutError):
    code = "cart_event_mismatch"
    payer_message = "Your cart already holds tickets for a different event."


class InvalidContactError(CheckoutError):
    code = "invalid_contact"
    payer_message = "Please provide your name and a valid email address."


class InvalidPhoneNumberError(CheckoutError):
    code = "invalid_phone_number"
    payer_message = "Please enter a valid M-Pesa phone number (e.g. 07XXXXXXXX)."


class InvalidAmountError(CheckoutError):
    code = "invalid_amount"
    payer_message = "The order total is not payable."


class UnsupportedPaymentMethodError(CheckoutError):
    code = "unsupported_payment_method"
    payer_message = "That payment method is not supported."


# ============================================================
# RESOURCE ERRORS
# ============================================================


class SoldOutError(CheckoutError):
    code = "sold_out"
    category = CATEGORY_RESOURCE

    def __init__(self, *, ticket_type_name: str, remaining: int, requested: int):
        self.ticket_type_name = ticket_type_name
        self.remaining = int(remaining)
        self.requested = int(requested)
        super().__init__(
            f"Not enough '{ticket_type_name}' tickets left. "
            f"Requested: {self.requested}, Remaining: {self.remaining}"
        )

    @property
    def payer_message(self) -> str:
        return str(self)


class CouponError(CheckoutError):
    code = "coupon_error"
    category = CATEGORY_RESOURCE
    payer_message = "Invalid or expired coupon code."


class CouponNotFoundError(CouponError):
    code = "coupon_not_found"


class CouponExpiredError(CouponError):
    code = "coupon_expired"
    payer_message = "This coupon has expired."


class CouponExhaustedError(CouponError):
    code = "coupon_exhausted"
    payer_message = "This coupon has reached its usage limit."


class CouponNotApplicableError(CouponError):
    code = "coupon_not_applicable"
    payer_message = "This coupon does not apply to this event."


class CouponUserLimitError(CouponError):
    code = "coupon_user_limit"
    payer_message = "You have already used this coupon the maximum number of times."


# ============================================================
# IDEMPOTENCY ERRORS
# ============================================================


class DuplicatePaymentAttemptError(CheckoutError):
    code = "duplicate_payment_attempt"
    category = CATEGORY_IDEMPOTENCY
    payer_message = "A payment for this order is already in progress."

    def __init__(self, *, order_id, correlation_id: str | None):
        self.order_id = order_id
        self.correlation_id = correlation_id
        super().__init__(f"Order {order_id} already has a payment in flight ({correlation_id or 'pending'})")


class AlreadyIssuedError(CheckoutError):
    code = "already_issued"
    category = CATEGORY_IDEMPOTENCY
    payer_message = "Tickets for this order have already been issued."

    def __init__(self, *, order_id):
        self.order_id = order_id
        super().__init__(f"Tickets already issued for order {order_id}")


# ============================================================
# PROVIDER / TRANSPORT ERRORS
# ============================================================


class PaymentProviderError(CheckoutError):
    """Raised by gateway clients when the provider rejects or cannot be reached."""

    code = "payment_provider_error"
    category = CATEGORY_PROVIDER
    payer_message = "We could not reach M-Pesa. Please try again."

    def __init__(self, provider_message: str):
        self.provider_message = provider_message
        super().__init__(provider_message)

    @property
    def detail(self) -> str:
        return self.payer_message


class PaymentInitiationError(PaymentProviderError):
    """Raised by the initiation flow after the order was transitioned to failed."""

    code = "payment_initiation_failed"
    payer_message = "Payment could not be started. Please try again."

    def __init__(self, provider_message: str, *, order_id=None):
        self.order_id = order_id
        super().__init__(provider_message)
