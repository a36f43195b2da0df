# public/views/common.py
"""
Shared plumbing for the public views:
- throttle scopes (REST_FRAMEWORK['DEFAULT_THROTTLE_RATES'])
- caller identity (signed-in user or guest session)
- CheckoutError -> HTTP response mapping
"""

from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle

from carts.services import owner_key_for
from orders.services.exceptions import (
    CATEGORY_IDEMPOTENCY,
    CATEGORY_INPUT,
    CATEGORY_PROVIDER,
    CATEGORY_RESOURCE,
    AlreadyIssuedError,
    CheckoutError,
    DuplicatePaymentAttemptError,
)
from orders.services.order_lifecycle import InvalidOrderTransitionError

logger = logging.getLogger(__name__)


class PublicWriteThrottle(AnonRateThrottle):
    """
    For public write endpoints (cart, order create, pay, retry).
    """

    scope = "public_write"


class PublicPollThrottle(AnonRateThrottle):
    """
    For public read/polling endpoints (catalog, order status, stream).
    """

    scope = "public_poll"


class WebhookThrottle(AnonRateThrottle):
    scope = "webhook"


def caller_owner_key(request) -> str:
    """
    "user:<pk>" for a signed-in caller, otherwise "guest:<session key>".
    A session is created on first use so guests keep their cart.
    """
    user = getattr(request, "user", None)
    if user is not None and user.is_authenticated:
        return owner_key_for(user=user)

    session = request.session
    if not session.session_key:
        session.save()
    return owner_key_for(session_key=session.session_key)


STATUS_BY_CATEGORY = {
    CATEGORY_INPUT: status.HTTP_400_BAD_REQUEST,
    CATEGORY_RESOURCE: status.HTTP_409_CONFLICT,
    CATEGORY_PROVIDER: status.HTTP_502_BAD_GATEWAY,
}


def checkout_error_response(exc: CheckoutError) -> Response:
    if isinstance(exc, DuplicatePaymentAttemptError):
        return Response(
            {
                "status": "in_progress",
                "code": exc.code,
                "detail": exc.payer_message,
                "order_id": str(exc.order_id),
                "correlation_id": exc.correlation_id,
            },
            status=status.HTTP_200_OK,
        )

    if isinstance(exc, AlreadyIssuedError):
        return Response(
            {
                "status": "already_issued",
                "code": exc.code,
                "detail": exc.payer_message,
                "order_id": str(exc.order_id),
            },
            status=status.HTTP_200_OK,
        )

    body = {"code": exc.code, "detail": exc.payer_message}

    order_id = getattr(exc, "order_id", None)
    if order_id is not None:
        body["order_id"] = str(order_id)

    if exc.category == CATEGORY_PROVIDER:
        logger.warning("Checkout provider error", extra={"code": exc.code, "order_id": body.get("order_id")})
    elif exc.category == CATEGORY_IDEMPOTENCY:
        return Response({"status": "ok", **body}, status=status.HTTP_200_OK)

    return Response(body, status=STATUS_BY_CATEGORY.get(exc.category, status.HTTP_400_BAD_REQUEST))


def transition_error_response(exc: InvalidOrderTransitionError) -> Response:
    return Response(
        {"code": "invalid_transition", "detail": str(exc)},
        status=status.HTTP_409_CONFLICT,
    )
