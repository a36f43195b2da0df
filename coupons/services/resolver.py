# coupons/services/resolver.py

"""
COUPON RESOLVER

Two phases:
1) apply (provisional): look up + validate a code and compute the discount.
   Used by the preview endpoint and again, authoritatively, when an order
   locks its totals. Never touches used_count.
2) redeem (final): at order completion, atomically increment used_count,
   refusing to pass the usage limit even under concurrent completions.

Discount math:
- percentage: original_total * pct / 100 (rounded to cents, clamped to total)
- fixed:      min(value, original_total)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.db.models import F, Q
from django.utils import timezone

from coupons.models import Coupon
from orders.services.exceptions import (
    CouponExhaustedError,
    CouponExpiredError,
    CouponNotApplicableError,
    CouponNotFoundError,
    CouponUserLimitError,
)

logger = logging.getLogger(__name__)

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def money(v) -> Decimal:
    if v is None or v == "":
        return ZERO
    return Decimal(str(v)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CouponApplication:
    coupon: Coupon | None
    original_total: Decimal
    discount_amount: Decimal
    discounted_total: Decimal


def compute_discount(coupon: Coupon | None, original_total) -> CouponApplication:
    """Pure discount math; never returns a negative total."""
    total = money(original_total)
    if total < ZERO:
        raise ValueError("original_total cannot be negative")

    if coupon is None:
        return CouponApplication(None, total, ZERO, total)

    value = money(coupon.discount_value)
    if coupon.discount_type == Coupon.TYPE_PERCENTAGE:
        pct = min(max(value, ZERO), Decimal("100"))
        discount = money(total * pct / Decimal("100"))
    elif coupon.discount_type == Coupon.TYPE_FIXED:
        discount = max(value, ZERO)
    else:
        raise ValueError(f"Unknown discount type: {coupon.discount_type}")

    discount = min(discount, total)
    return CouponApplication(coupon, total, discount, total - discount)


def redemptions_by_owner(coupon: Coupon, owner_id: str) -> int:
    from orders.models import Order

    return Order.objects.filter(coupon=coupon, owner_id=owner_id, coupon_redeemed=True).count()


def resolve_coupon(code, *, event, owner_id: str | None = None, now=None) -> Coupon:
    """
    Find and validate a coupon for `event` (scoped to the event's organizer).

    Raises the CouponError subclass describing the first failed rule.
    """
    normalized = Coupon.normalize_code(code)
    if not normalized:
        raise CouponNotFoundError()

    coupon = Coupon.objects.filter(
        organizer_id=event.organizer_id,
        code=normalized,
        is_active=True,
    ).first()
    if coupon is None:
        raise CouponNotFoundError()

    now = now or timezone.now()

    if coupon.valid_from and now < coupon.valid_from:
        raise CouponNotFoundError("This coupon is not active yet.")

    if coupon.is_expired(now):
        raise CouponExpiredError()

    if coupon.is_exhausted():
        raise CouponExhaustedError()

    if not coupon.applies_to_event(event.id):
        raise CouponNotApplicableError()

    if coupon.per_user_limit is not None and owner_id and owner_id != "anonymous":
        if redemptions_by_owner(coupon, owner_id) >= coupon.per_user_limit:
            raise CouponUserLimitError()

    return coupon


def apply_coupon(code, original_total, *, event, owner_id: str | None = None, now=None) -> CouponApplication:
    coupon = resolve_coupon(code, event=event, owner_id=owner_id, now=now)
    application = compute_discount(coupon, original_total)

    logger.debug(
        "Coupon applied",
        extra={"coupon": coupon.code, "event_id": str(event.id), "discount": str(application.discount_amount)},
    )
    return application


def redeem_coupon(coupon_id) -> bool:
    """
    Atomic increment of used_count.

    Returns False (and changes nothing) if the limit was already reached
    by concurrently completing orders.
    """
    updated = (
        Coupon.objects.filter(pk=coupon_id)
        .filter(Q(usage_limit__isnull=True) | Q(used_count__lt=F("usage_limit")))
        .update(used_count=F("used_count") + 1, updated_at=timezone.now())
    )
    if not updated:
        logger.warning("Coupon redemption refused: usage limit reached", extra={"coupon_id": str(coupon_id)})
    return bool(updated)
