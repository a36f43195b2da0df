from .resolver import (
    CouponApplication,
    apply_coupon,
    compute_discount,
    redeem_coupon,
    resolve_coupon,
)

__all__ = [
    "CouponApplication",
    "apply_coupon",
    "compute_discount",
    "redeem_coupon",
    "resolve_coupon",
]
